"""
Idempotency store adapters.

Both adapters implement first-writer-wins: once a result is stored for a key
it is returned verbatim until it expires, and later `store` calls for the
same key are ignored. A reservation marks a key as in flight so concurrent
duplicates wait instead of executing the operation again. Each reservation
carries a random token, and only the holder of that token can clear it.
"""
from __future__ import annotations

import asyncio
import copy
import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from redis import asyncio as aioredis

from core.logging_config import get_logger


logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60

# delete the reservation only while it still holds the caller's token
_RELEASE_IF_OWNER = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


@dataclass
class _Record:
    result: dict[str, Any]
    expires_at: float


@dataclass
class _Reservation:
    token: str
    done: asyncio.Event = field(default_factory=asyncio.Event)


class InMemoryIdempotencyStore:
    """Process-local store owned by the service instance that creates it."""

    def __init__(
        self,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._records: dict[str, _Record] = {}
        self._inflight: dict[str, _Reservation] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def _live(self, key: str) -> Optional[dict[str, Any]]:
        record = self._records.get(key)
        if record is None:
            return None
        if record.expires_at <= self._clock():
            # lazy expiry
            del self._records[key]
            return None
        return copy.deepcopy(record.result)

    def _clear(self, key: str, token: Optional[str]) -> None:
        reservation = self._inflight.get(key)
        if reservation is None or token is None:
            return
        if reservation.token != token:
            logger.warning("idempotency_reservation_not_owned", key=key)
            return
        del self._inflight[key]
        reservation.done.set()

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        async with self._lock:
            return self._live(key)

    async def reserve(self, key: str) -> Optional[str]:
        async with self._lock:
            if self._live(key) is not None or key in self._inflight:
                return None
            token = uuid.uuid4().hex
            self._inflight[key] = _Reservation(token)
            return token

    async def wait(self, key: str, timeout: float) -> Optional[dict[str, Any]]:
        async with self._lock:
            result = self._live(key)
            if result is not None:
                return result
            reservation = self._inflight.get(key)
        if reservation is not None:
            try:
                await asyncio.wait_for(reservation.done.wait(), timeout)
            except asyncio.TimeoutError:
                return None
        return await self.get(key)

    async def is_in_flight(self, key: str) -> bool:
        async with self._lock:
            return key in self._inflight

    async def store(
        self,
        key: str,
        result: dict[str, Any],
        ttl: Optional[int] = None,
        token: Optional[str] = None,
    ) -> None:
        expire = self.default_ttl if ttl is None else ttl
        async with self._lock:
            if self._live(key) is None:
                self._records[key] = _Record(copy.deepcopy(result), self._clock() + expire)
            else:
                logger.warning("idempotency_store_ignored_second_write", key=key)
            self._clear(key, token)

    async def release(self, key: str, token: str) -> None:
        async with self._lock:
            self._clear(key, token)

    async def purge_expired(self) -> int:
        async with self._lock:
            now = self._clock()
            expired = [k for k, r in self._records.items() if r.expires_at <= now]
            for k in expired:
                del self._records[k]
        if expired:
            logger.debug("idempotency_keys_purged", count=len(expired))
        return len(expired)


class RedisIdempotencyStore:
    """Redis-backed store shared by every worker process.

    Results live under ``{ns}:idem:{key}`` with a native TTL; reservations
    live under ``{ns}:idem:lock:{key}`` and expire on their own if a worker
    dies mid-operation.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        namespace: str = "",
        default_ttl: int = DEFAULT_TTL_SECONDS,
        reservation_ttl: int = 60,
        poll_interval: float = 0.05,
    ) -> None:
        self._client = client
        self._namespace = namespace.strip(":")
        self.default_ttl = default_ttl
        self._reservation_ttl = reservation_ttl
        self._poll_interval = poll_interval

    def _format_key(self, key: str) -> str:
        base = f"idem:{key}"
        return f"{self._namespace}:{base}" if self._namespace else base

    def _lock_key(self, key: str) -> str:
        base = f"idem:lock:{key}"
        return f"{self._namespace}:{base}" if self._namespace else base

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        raw = await self._client.get(self._format_key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def reserve(self, key: str) -> Optional[str]:
        if await self._client.exists(self._format_key(key)):
            return None
        token = uuid.uuid4().hex
        acquired = await self._client.set(
            self._lock_key(key), token, nx=True, ex=self._reservation_ttl
        )
        if not acquired:
            return None
        # a result may have landed between EXISTS and SET NX
        if await self._client.exists(self._format_key(key)):
            await self._clear(key, token)
            return None
        return token

    async def wait(self, key: str, timeout: float) -> Optional[dict[str, Any]]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            result = await self.get(key)
            if result is not None:
                return result
            if not await self._client.exists(self._lock_key(key)):
                return None
            if loop.time() >= deadline:
                return None
            await asyncio.sleep(self._poll_interval)

    async def is_in_flight(self, key: str) -> bool:
        return bool(await self._client.exists(self._lock_key(key)))

    async def _clear(self, key: str, token: Optional[str]) -> None:
        if token is None:
            return
        removed = await self._client.eval(_RELEASE_IF_OWNER, 1, self._lock_key(key), token)
        if not removed:
            logger.warning("idempotency_reservation_not_owned", key=key)

    async def store(
        self,
        key: str,
        result: dict[str, Any],
        ttl: Optional[int] = None,
        token: Optional[str] = None,
    ) -> None:
        expire = self.default_ttl if ttl is None else ttl
        payload = json.dumps(result, default=str)
        written = await self._client.set(self._format_key(key), payload, nx=True, ex=expire)
        if not written:
            logger.warning("idempotency_store_ignored_second_write", key=key)
        await self._clear(key, token)

    async def release(self, key: str, token: str) -> None:
        await self._clear(key, token)

    async def purge_expired(self) -> int:
        # Redis expires keys natively
        return 0
