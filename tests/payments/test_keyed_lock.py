import asyncio

import pytest

from infrastructure.cache import InMemoryKeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    locks = InMemoryKeyedLock()
    inside = 0
    peak = 0

    async def worker():
        nonlocal inside, peak
        async with locks.hold("wallet:u1"):
            inside += 1
            peak = max(peak, inside)
            await asyncio.sleep(0.001)
            inside -= 1

    await asyncio.gather(*(worker() for _ in range(10)))
    assert peak == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_different_keys_do_not_block():
    locks = InMemoryKeyedLock()
    entered = asyncio.Event()

    async with locks.hold("a"):
        async def other():
            async with locks.hold("b"):
                entered.set()

        await asyncio.wait_for(other(), timeout=0.5)
    assert entered.is_set()


@pytest.mark.asyncio
async def test_slot_released_on_error():
    locks = InMemoryKeyedLock()
    with pytest.raises(RuntimeError):
        async with locks.hold("k"):
            raise RuntimeError("boom")
    assert len(locks) == 0
