"""Tests for the per-key lock registry."""

import asyncio

import pytest

from bullywatch.util.keyed_lock import KeyedLockRegistry


@pytest.mark.asyncio
async def test_same_key_is_serialised():
    registry = KeyedLockRegistry()
    order = []

    async def worker(name):
        async with registry.hold("g1"):
            order.append(f"{name}-start")
            await asyncio.sleep(0.01)
            order.append(f"{name}-end")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a-start", "a-end", "b-start", "b-end"]


@pytest.mark.asyncio
async def test_different_keys_run_concurrently():
    registry = KeyedLockRegistry()
    inside = asyncio.Event()

    async def holder():
        async with registry.hold("g1"):
            inside.set()
            await asyncio.sleep(0.05)

    task = asyncio.create_task(holder())
    await inside.wait()
    assert registry.is_locked("g1")
    async with registry.hold("g2"):
        assert registry.is_locked("g1")
    await task


@pytest.mark.asyncio
async def test_idle_keys_are_released():
    registry = KeyedLockRegistry()
    async with registry.hold("g1"):
        assert len(registry) == 1
    assert len(registry) == 0
    assert registry.is_locked("g1") is False


@pytest.mark.asyncio
async def test_lock_released_on_cancellation():
    registry = KeyedLockRegistry()
    entered = asyncio.Event()

    async def blocked():
        async with registry.hold("g1"):
            entered.set()
            await asyncio.sleep(10)

    task = asyncio.create_task(blocked())
    await entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(registry) == 0
