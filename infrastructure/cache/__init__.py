"""缓存层对外暴露的接口"""
from .idempotency_store import InMemoryIdempotencyStore, RedisIdempotencyStore
from .keyed_lock import InMemoryKeyedLock, RedisKeyedLock
from .redis_cache import create_redis_client, close_redis_client

__all__ = [
    "InMemoryIdempotencyStore",
    "RedisIdempotencyStore",
    "InMemoryKeyedLock",
    "RedisKeyedLock",
    "create_redis_client",
    "close_redis_client",
]
