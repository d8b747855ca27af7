"""Tests for the key-value store implementations."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import FakeClock

from bullywatch.database.kv_store import KeyValueStore, MemoryKeyValueStore
from bullywatch.database.resilient_store import ResilientKeyValueStore
from bullywatch.database.sqlite_kv_store import SqliteKeyValueStore


async def exercise_store(store: KeyValueStore, clock: FakeClock) -> None:
    await store.set("plain", "v1")
    assert await store.get("plain") == "v1"
    assert await store.ttl("plain") is None

    await store.set("short", "v2", ttl=10)
    assert await store.ttl("short") == pytest.approx(10)

    assert await store.increment("counter") == 1
    assert await store.increment("counter", 4) == 5
    assert await store.expire("counter", 5) is True
    assert await store.expire("missing", 5) is False

    await store.set_json("json", {"a": [1, 2]})
    assert await store.get_json("json") == {"a": [1, 2]}
    assert await store.get_json("absent", default=[]) == []

    clock.advance(11)
    assert await store.get("short") is None
    assert await store.get("counter") is None
    assert await store.get("plain") == "v1"

    assert await store.delete("plain") is True
    assert await store.delete("plain") is False


@pytest.mark.asyncio
async def test_memory_store_contract(clock):
    await exercise_store(MemoryKeyValueStore(clock), clock)


@pytest.mark.asyncio
async def test_memory_store_purge(clock):
    store = MemoryKeyValueStore(clock)
    await store.set("a", "1", ttl=1)
    await store.set("b", "1")
    clock.advance(2)
    assert await store.purge_expired() == 1
    assert len(store) == 1


@pytest.mark.asyncio
async def test_increment_keeps_existing_ttl(clock):
    store = MemoryKeyValueStore(clock)
    await store.set("n", "1", ttl=100)
    await store.increment("n")
    assert await store.ttl("n") == pytest.approx(100)


@pytest.mark.asyncio
async def test_undecodable_json_returns_default(clock):
    store = MemoryKeyValueStore(clock)
    await store.set("bad", "{not json")
    assert await store.get_json("bad", default="fallback") == "fallback"


@pytest.mark.asyncio
async def test_sqlite_store_contract(tmp_path, clock):
    store = SqliteKeyValueStore(tmp_path / "kv.db", clock)
    await store.initialize()
    try:
        await exercise_store(store, clock)
        await store.set("expiring", "x", ttl=1)
        clock.advance(2)
        assert await store.purge_expired() >= 1
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_sqlite_store_persists_across_reopen(tmp_path, clock):
    path = tmp_path / "nested" / "kv.db"
    store = SqliteKeyValueStore(path, clock)
    await store.initialize()
    await store.set_json("history:1", [[1.0, 2]])
    await store.close()

    reopened = SqliteKeyValueStore(path, clock)
    await reopened.initialize()
    try:
        assert await reopened.get_json("history:1") == [[1.0, 2]]
    finally:
        await reopened.close()


class TestResilientStore:
    @pytest.mark.asyncio
    async def test_passes_through_while_healthy(self, clock):
        primary = MemoryKeyValueStore(clock)
        store = ResilientKeyValueStore(primary)
        await store.set("k", "v")
        assert await primary.get("k") == "v"
        assert store.degraded is False

    @pytest.mark.asyncio
    async def test_degrades_once_and_stays_in_memory(self):
        primary = MagicMock(spec=KeyValueStore)
        primary.set = AsyncMock(side_effect=OSError("disk gone"))
        primary.get = AsyncMock(return_value="stale")

        with patch("bullywatch.database.resilient_store.logger") as mock_logger:
            store = ResilientKeyValueStore(primary)
            await store.set("k", "v")
            await store.set("k2", "v2")
            value = await store.get("k")

        assert store.degraded is True
        assert value == "v"
        primary.set.assert_awaited_once()
        primary.get.assert_not_awaited()
        assert mock_logger.warning.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_primary_is_memory_only(self):
        store = ResilientKeyValueStore(None)
        assert store.degraded is True
        assert await store.increment("n") == 1
