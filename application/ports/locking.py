"""
Per-key lock port.

`hold(key)` returns an async context manager; holders of the same key run
one at a time, different keys never block each other.
"""
from __future__ import annotations

from typing import AsyncContextManager, Protocol, runtime_checkable


@runtime_checkable
class KeyedLock(Protocol):
    def hold(self, key: str) -> AsyncContextManager[None]: ...
