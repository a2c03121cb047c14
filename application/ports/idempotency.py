"""
Idempotency store port.

Records map an idempotency key to the first successful result of an
operation. `reserve` is the atomic check-and-reserve step: at most one caller
per key gets a reservation token and runs the side-effecting operation; the
others get None and `wait`. `store` and `release` clear a reservation only
when handed the token that created it, so a holder whose reservation expired
cannot clear a newer one.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class IdempotencyStore(Protocol):
    default_ttl: int

    async def get(self, key: str) -> Optional[dict[str, Any]]: ...

    async def reserve(self, key: str) -> Optional[str]: ...

    async def wait(self, key: str, timeout: float) -> Optional[dict[str, Any]]: ...

    async def store(
        self,
        key: str,
        result: dict[str, Any],
        ttl: Optional[int] = None,
        token: Optional[str] = None,
    ) -> None: ...

    async def release(self, key: str, token: str) -> None: ...

    async def purge_expired(self) -> int: ...
