# tests/test_locks.py
import asyncio

import pytest

from matterflow.core.locks import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    locks = KeyedLock()
    order = []

    async def worker(name: str, delay: float):
        async with locks.hold("CASE-1"):
            order.append(f"{name}-in")
            await asyncio.sleep(delay)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a", 0.02), worker("b", 0))

    assert order == ["a-in", "a-out", "b-in", "b-out"]


@pytest.mark.asyncio
async def test_different_keys_run_concurrently():
    locks = KeyedLock()
    entered = asyncio.Event()

    async def first():
        async with locks.hold("CASE-1"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def second():
        async with locks.hold("CASE-2"):
            entered.set()

    await asyncio.gather(first(), second())


@pytest.mark.asyncio
async def test_locks_are_released_and_dropped():
    locks = KeyedLock()

    async with locks.hold("CASE-1"):
        assert locks.is_locked("CASE-1")
        assert len(locks) == 1

    assert not locks.is_locked("CASE-1")
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_released_on_error():
    locks = KeyedLock()

    with pytest.raises(RuntimeError):
        async with locks.hold("CASE-1"):
            raise RuntimeError("boom")

    assert len(locks) == 0
