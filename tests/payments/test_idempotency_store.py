import asyncio

import pytest

from infrastructure.cache import InMemoryIdempotencyStore, RedisIdempotencyStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FakeRedis:
    """Subset of redis.asyncio.Redis used by the idempotency store."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def exists(self, key):
        return 1 if key in self.data else 0

    async def delete(self, key):
        self.data.pop(key, None)
        self.ttls.pop(key, None)

    async def eval(self, script, numkeys, *keys_and_args):
        # only the compare-and-delete release script is used
        key, token = keys_and_args[0], keys_and_args[numkeys]
        if self.data.get(key) != token:
            return 0
        await self.delete(key)
        return 1


@pytest.mark.asyncio
async def test_first_writer_wins():
    store = InMemoryIdempotencyStore()
    await store.store("k", {"balance": 300})
    await store.store("k", {"balance": 100})
    assert await store.get("k") == {"balance": 300}


@pytest.mark.asyncio
async def test_results_are_copies():
    store = InMemoryIdempotencyStore()
    await store.store("k", {"nested": {"v": 1}})
    got = await store.get("k")
    got["nested"]["v"] = 2
    assert (await store.get("k"))["nested"]["v"] == 1


@pytest.mark.asyncio
async def test_entries_expire_after_ttl():
    clock = FakeClock()
    store = InMemoryIdempotencyStore(default_ttl=60, clock=clock)
    await store.store("a", {"x": 1})
    await store.store("b", {"x": 2}, ttl=600)
    clock.now += 61
    assert await store.get("a") is None
    assert await store.purge_expired() == 0  # "a" already dropped lazily
    clock.now += 600
    assert await store.purge_expired() == 1
    assert len(store) == 0


@pytest.mark.asyncio
async def test_only_one_concurrent_reserve_wins():
    store = InMemoryIdempotencyStore()
    results = await asyncio.gather(*(store.reserve("k") for _ in range(20)))
    assert len([token for token in results if token]) == 1
    assert await store.is_in_flight("k")


@pytest.mark.asyncio
async def test_reserve_refused_once_result_stored():
    store = InMemoryIdempotencyStore()
    token = await store.reserve("k")
    assert token
    await store.store("k", {"ok": True}, token=token)
    assert not await store.is_in_flight("k")
    assert await store.reserve("k") is None


@pytest.mark.asyncio
async def test_waiter_receives_winner_result():
    store = InMemoryIdempotencyStore()
    token = await store.reserve("k")

    async def finish():
        await asyncio.sleep(0.01)
        await store.store("k", {"id": "pi_1"}, token=token)

    waiter = asyncio.create_task(store.wait("k", timeout=1.0))
    await finish()
    assert await waiter == {"id": "pi_1"}


@pytest.mark.asyncio
async def test_release_wakes_waiters_without_result():
    store = InMemoryIdempotencyStore()
    token = await store.reserve("k")
    waiter = asyncio.create_task(store.wait("k", timeout=1.0))
    await asyncio.sleep(0)
    await store.release("k", token)
    assert await waiter is None
    assert await store.reserve("k")


@pytest.mark.asyncio
async def test_release_with_foreign_token_keeps_reservation():
    store = InMemoryIdempotencyStore()
    token = await store.reserve("k")
    await store.release("k", "someone-else")
    assert await store.is_in_flight("k")
    await store.store("k", {"ok": True}, token="someone-else")
    assert await store.is_in_flight("k")
    await store.release("k", token)
    assert not await store.is_in_flight("k")


@pytest.mark.asyncio
async def test_wait_times_out():
    store = InMemoryIdempotencyStore()
    assert await store.reserve("k")
    assert await store.wait("k", timeout=0.01) is None
    assert await store.is_in_flight("k")


@pytest.mark.asyncio
async def test_redis_store_round_trip_and_namespacing():
    client = FakeRedis()
    store = RedisIdempotencyStore(client, namespace="pc", default_ttl=120)

    token = await store.reserve("op:k")
    assert client.data["pc:idem:lock:op:k"] == token
    assert await store.reserve("op:k") is None

    await store.store("op:k", {"transaction_id": "t1", "new_balance": 30000}, token=token)
    assert client.ttls["pc:idem:op:k"] == 120
    assert "pc:idem:lock:op:k" not in client.data
    assert await store.get("op:k") == {"transaction_id": "t1", "new_balance": 30000}

    await store.store("op:k", {"transaction_id": "t2", "new_balance": 10000})
    assert (await store.get("op:k"))["transaction_id"] == "t1"
    assert await store.reserve("op:k") is None


@pytest.mark.asyncio
async def test_redis_store_wait_returns_none_after_release():
    client = FakeRedis()
    store = RedisIdempotencyStore(client, poll_interval=0.001)
    token = await store.reserve("k")
    await store.release("k", token)
    assert await store.wait("k", timeout=0.1) is None
    assert await store.reserve("k")


@pytest.mark.asyncio
async def test_redis_expired_holder_cannot_clear_newer_reservation():
    client = FakeRedis()
    store = RedisIdempotencyStore(client, namespace="pc")

    stale = await store.reserve("op:k")
    # the reservation TTL lapses while the first holder is still running
    await client.delete("pc:idem:lock:op:k")
    fresh = await store.reserve("op:k")
    assert fresh and fresh != stale

    await store.release("op:k", stale)
    assert client.data["pc:idem:lock:op:k"] == fresh
    assert await store.reserve("op:k") is None

    await store.store("op:k", {"transaction_id": "t1"}, token=stale)
    assert client.data["pc:idem:lock:op:k"] == fresh

    await store.release("op:k", fresh)
    assert "pc:idem:lock:op:k" not in client.data
