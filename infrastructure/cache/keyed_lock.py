"""
Per-key mutual exclusion for read-modify-write sequences (wallet balances,
transaction status). One lock per key; unused locks are dropped.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis import asyncio as aioredis

from core.logging_config import get_logger


logger = get_logger(__name__)


class _Slot:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.holders = 0


class InMemoryKeyedLock:
    """Serializes coroutines per key inside one event loop."""

    def __init__(self) -> None:
        self._slots: dict[str, _Slot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _Slot()
        slot.holders += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.holders -= 1
            if slot.holders == 0:
                self._slots.pop(key, None)


class RedisKeyedLock:
    """Distributed variant built on redis-py's Lock (multi-worker deployments)."""

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        namespace: str = "",
        timeout: int = 30,
        blocking_timeout: int = 10,
    ) -> None:
        self._client = client
        self._namespace = namespace.strip(":")
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        name = f"{self._namespace}:lock:{key}" if self._namespace else f"lock:{key}"
        lock = self._client.lock(name, timeout=self._timeout, blocking_timeout=self._blocking_timeout)
        acquired = await lock.acquire()
        if not acquired:
            raise TimeoutError(f"Could not acquire lock: {name}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except Exception as exc:
                logger.error("keyed_lock_release_failed", lock=name, error=str(exc))
