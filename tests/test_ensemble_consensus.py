"""Tests for the ensemble vote, its statistics and the disagreement log."""

import asyncio

import pytest

from bullywatch.ai.classifier_client import Classifier
from bullywatch.ai.ensemble_consensus import (
    DISAGREEMENT_LOG_KEY,
    STATS_KEY,
    EnsembleConsensus,
    EnsembleStats,
    combine,
)
from bullywatch.configuration.pipeline_settings import EnsembleSettings
from bullywatch.database.kv_store import MemoryKeyValueStore
from bullywatch.datatypes.classifier_datatypes import (
    ClassifierRequest,
    ClassifierResponse,
    ClassifierVerdict,
    ConsensusOutcome,
)
from bullywatch.util.hashing import hash_text

SAFE = ClassifierVerdict.SAFE
HARMFUL = ClassifierVerdict.HARMFUL
AMBIGUOUS = ClassifierVerdict.AMBIGUOUS


class StubClassifier(Classifier):
    def __init__(self, verdict, confidence=0.9, categories=None, delay=0.0, error=None):
        self.name = "stub"
        self.response = ClassifierResponse(verdict, confidence, "stub", list(categories or []))
        self.delay = delay
        self.error = error
        self.requests = []

    async def classify(self, request: ClassifierRequest) -> ClassifierResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response


class TestCombine:
    @pytest.mark.parametrize(
        "gate, second, outcome, skip, escalate",
        [
            ((SAFE, 0.9), (SAFE, 0.95), ConsensusOutcome.SAFE, True, False),
            ((SAFE, 0.9), (SAFE, 0.6), ConsensusOutcome.SAFE, False, False),
            ((HARMFUL, 0.9), (HARMFUL, 0.9), ConsensusOutcome.HARMFUL, False, False),
            ((SAFE, 0.9), (HARMFUL, 0.9), ConsensusOutcome.DISAGREEMENT, False, True),
            ((HARMFUL, 0.9), (SAFE, 0.9), ConsensusOutcome.DISAGREEMENT, False, True),
            ((AMBIGUOUS, 0.0), (SAFE, 0.99), ConsensusOutcome.AMBIGUOUS, False, False),
            ((HARMFUL, 0.9), (AMBIGUOUS, 0.0), ConsensusOutcome.AMBIGUOUS, False, False),
        ],
    )
    def test_voting_table(self, gate, second, outcome, skip, escalate):
        result = combine(ClassifierResponse(*gate), ClassifierResponse(*second), 0.85)
        assert result.outcome is outcome
        assert result.skip_scoring is skip
        assert result.escalate is escalate

    def test_threshold_is_inclusive(self):
        result = combine(ClassifierResponse(SAFE, 0.85), ClassifierResponse(SAFE, 0.85), 0.85)
        assert result.skip_scoring is True


class TestVote:
    @pytest.mark.asyncio
    async def test_both_classifiers_are_called_concurrently(self):
        gate = StubClassifier(SAFE, delay=0.05)
        second = StubClassifier(SAFE, delay=0.05)
        ensemble = EnsembleConsensus(gate, second)

        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await ensemble.vote("hello friends")
        elapsed = loop.time() - started

        assert result.skip_scoring is True
        assert len(gate.requests) == 1 and len(second.requests) == 1
        assert elapsed < 0.095

    @pytest.mark.asyncio
    async def test_raising_classifier_fails_open(self):
        ensemble = EnsembleConsensus(StubClassifier(SAFE, error=RuntimeError("boom")), StubClassifier(SAFE))
        result = await ensemble.vote("hello friends")
        assert result.outcome is ConsensusOutcome.AMBIGUOUS
        assert result.gate.confidence == 0.0

    @pytest.mark.asyncio
    async def test_disagreement_is_logged_hashed_and_persisted(self):
        store = MemoryKeyValueStore()
        ensemble = EnsembleConsensus(StubClassifier(SAFE), StubClassifier(HARMFUL), store=store)

        result = await ensemble.vote("you are trash")

        assert result.escalate is True
        entries = await store.get_json(DISAGREEMENT_LOG_KEY)
        assert len(entries) == 1
        assert entries[0]["text_hash"] == hash_text("you are trash")
        assert "you are trash" not in str(entries)
        assert await store.ttl(DISAGREEMENT_LOG_KEY) == pytest.approx(7 * 86400, rel=1e-3)

    @pytest.mark.asyncio
    async def test_disagreement_log_is_bounded(self):
        ensemble = EnsembleConsensus(
            StubClassifier(SAFE), StubClassifier(HARMFUL), EnsembleSettings(disagreement_log_size=3)
        )
        for i in range(5):
            await ensemble.vote(f"message {i}")
        assert len(ensemble.disagreements()) == 3
        assert ensemble.disagreements()[-1]["text_hash"] == hash_text("message 4")

    @pytest.mark.asyncio
    async def test_stats_persist_and_reload(self):
        store = MemoryKeyValueStore()
        ensemble = EnsembleConsensus(StubClassifier(HARMFUL), StubClassifier(HARMFUL), store=store)
        await ensemble.vote("you are trash")
        await ensemble.persist_stats()

        restored = EnsembleConsensus(StubClassifier(SAFE), StubClassifier(SAFE), store=store)
        await restored.load()
        assert restored.stats.consensus_harmful == 1
        assert (await store.get_json(STATS_KEY))["health"] == "underdispersed"

    @pytest.mark.asyncio
    async def test_lexicon_gap_counters(self):
        store = MemoryKeyValueStore()
        ensemble = EnsembleConsensus(StubClassifier(HARMFUL), StubClassifier(HARMFUL), store=store)
        await ensemble.record_lexicon_gap("new slang insult", ["insult"])
        await ensemble.record_lexicon_gap("new slang insult", ["insult"])
        assert await store.get(f"lexicon_gap:{hash_text('new slang insult')}") == "2"
        assert await store.get("lexicon_gap:category:insult") == "2"


class TestHealth:
    @pytest.mark.parametrize(
        "agreements, disagreements, health",
        [
            (0, 0, "insufficient_data"),
            (99, 1, "underdispersed"),
            (90, 10, "healthy"),
            (80, 20, "warning"),
            (60, 40, "critical"),
        ],
    )
    def test_bands(self, agreements, disagreements, health):
        stats = EnsembleStats(total=agreements + disagreements, agreements=agreements, disagreements=disagreements)
        assert stats.health == health

    def test_ambiguous_votes_do_not_dilute_rate(self):
        stats = EnsembleStats(total=1000, agreements=9, disagreements=1, ambiguous=990)
        assert stats.disagreement_rate == pytest.approx(0.1)
        assert stats.health == "healthy"
