"""Tests for the whitelist and sender history services."""

import pytest

from conftest import make_message

from bullywatch.configuration.pipeline_settings import ScoringSettings
from bullywatch.database.kv_store import MemoryKeyValueStore
from bullywatch.datatypes.message_datatypes import GroupContext
from bullywatch.datatypes.scoring_datatypes import SeverityTier
from bullywatch.detection.temporal_analyzer import TemporalAnalyzer
from bullywatch.services.sender_history_service import SenderHistoryService
from bullywatch.services.whitelist_service import WhitelistService


@pytest.fixture()
def store(clock) -> MemoryKeyValueStore:
    return MemoryKeyValueStore(clock)


class TestWhitelistService:
    @pytest.mark.asyncio
    async def test_entry_sets_multiplier_until_expiry(self, store, clock):
        service = WhitelistService(store, ScoringSettings(), TemporalAnalyzer(), clock)
        await service.add("g1", multiplier=0.6, ttl=60, reason="cousins")

        assert await service.friend_group_multiplier("g1", GroupContext()) == 0.6
        clock.advance(61)
        assert await service.friend_group_multiplier("g1", GroupContext()) == 1.0

    @pytest.mark.asyncio
    async def test_entry_is_loaded_from_store(self, store, clock):
        await WhitelistService(store, ScoringSettings(), TemporalAnalyzer(), clock).add("g1")
        fresh = WhitelistService(store, ScoringSettings(), TemporalAnalyzer(), clock)
        entry = await fresh.get_entry("g1")
        assert entry is not None and entry.multiplier == 0.5

    @pytest.mark.asyncio
    async def test_remove(self, store, clock):
        service = WhitelistService(store, ScoringSettings(), TemporalAnalyzer(), clock)
        await service.add("g1")
        assert await service.remove("g1") is True
        assert await service.get_entry("g1") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("multiplier", [0.0, 1.5, -1])
    async def test_invalid_multiplier(self, store, clock, multiplier):
        service = WhitelistService(store, ScoringSettings(), TemporalAnalyzer(), clock)
        with pytest.raises(ValueError):
            await service.add("g1", multiplier=multiplier)

    @pytest.mark.asyncio
    async def test_transport_whitelist_flag(self, store, clock):
        service = WhitelistService(store, ScoringSettings(), TemporalAnalyzer(), clock)
        assert await service.friend_group_multiplier("g1", GroupContext(whitelisted=True)) == 0.5

    @pytest.mark.asyncio
    async def test_auto_detection_requires_opt_in(self, store, clock):
        temporal = TemporalAnalyzer()
        for sender in ("a", "b", "c", "d", "e"):
            temporal.commit(make_message("hi", sender=sender), (), None, SeverityTier.SAFE)
        context = GroupContext(size=5)

        disabled = WhitelistService(store, ScoringSettings(), temporal, clock)
        enabled = WhitelistService(store, ScoringSettings(auto_friend_group=True), temporal, clock)

        assert await disabled.friend_group_multiplier("g1", context) == 1.0
        assert await enabled.friend_group_multiplier("g1", context) == 0.5
        assert await enabled.friend_group_multiplier("g1", GroupContext(size=40)) == 1.0

    @pytest.mark.asyncio
    async def test_prune_cache_keeps_only_live_entries(self, store, clock):
        service = WhitelistService(store, ScoringSettings(), TemporalAnalyzer(), clock)
        await service.add("friends", multiplier=0.6)
        await service.add("short", ttl=30)
        for n in range(50):
            assert await service.get_entry(f"group-{n}") is None

        clock.advance(60)
        assert service.prune_cache() == 51
        assert service.prune_cache() == 0

        await service.add("group-7")
        assert (await service.get_entry("group-7")).multiplier == 0.5
        assert (await service.get_entry("friends")).multiplier == 0.6


class TestSenderHistoryService:
    @pytest.mark.asyncio
    async def test_save_and_load_round_trip(self, store):
        temporal = TemporalAnalyzer()
        service = SenderHistoryService(store, temporal, ttl=7 * 86400)
        message = make_message("x", sender="s1")
        temporal.commit(message, ("general_insult",), None, SeverityTier.ORANGE)
        await service.save("s1")
        assert await store.ttl("history:s1") == pytest.approx(7 * 86400)

        fresh = TemporalAnalyzer()
        await SenderHistoryService(store, fresh, ttl=7 * 86400).ensure_loaded("s1")
        later = make_message("y", sender="s1", seconds=60)
        assert fresh.observe(later, (), None).repeat_offender == 8

    @pytest.mark.asyncio
    async def test_ensure_loaded_does_not_overwrite_memory(self, store):
        temporal = TemporalAnalyzer()
        temporal.commit(make_message("x", sender="s1"), (), None, SeverityTier.SAFE)
        await store.set_json("history:s1", [[0.0, 5]] * 4)
        await SenderHistoryService(store, temporal, ttl=60).ensure_loaded("s1")
        assert len(temporal.history("s1")) == 1
