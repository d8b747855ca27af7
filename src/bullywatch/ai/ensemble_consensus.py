"""
Two-classifier ensemble vote.

The gate and the independent second classifier are asked concurrently. Their
verdicts are combined with a fixed voting table:

    safe + safe          -> consensus safe (skip scoring if both are confident)
    harmful + harmful    -> consensus harmful
    safe vs harmful      -> disagreement, escalate to the tiebreaker
    anything ambiguous   -> continue with rule-based scoring

Disagreements are kept in a bounded log (text hashed, never stored raw) and
persisted to the key-value store together with running vote statistics.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Callable, Deque, Dict, List, Sequence

from bullywatch.ai.classifier_client import Classifier
from bullywatch.configuration.pipeline_settings import EnsembleSettings
from bullywatch.database.kv_store import KeyValueStore
from bullywatch.datatypes.classifier_datatypes import (
    ClassifierResponse,
    ClassifierVerdict,
    ConsensusOutcome,
    ConsensusResult,
)
from bullywatch.util.hashing import hash_text
from bullywatch.util.logger import get_logger

logger = get_logger("ensemble_consensus")

DISAGREEMENT_LOG_KEY = "ensemble:disagreements"
STATS_KEY = "ensemble:stats"
LEXICON_GAP_PREFIX = "lexicon_gap"

HEALTHY_LOW = 0.05
HEALTHY_HIGH = 0.15
WARNING_HIGH = 0.30


@dataclass(slots=True)
class EnsembleStats:
    """Running vote counters."""

    total: int = 0
    agreements: int = 0
    disagreements: int = 0
    escalations: int = 0
    consensus_safe: int = 0
    consensus_harmful: int = 0
    ambiguous: int = 0
    skipped: int = 0

    @property
    def decisive(self) -> int:
        return self.agreements + self.disagreements

    @property
    def disagreement_rate(self) -> float:
        """Share of decisive votes (no ambiguous side) on which the classifiers disagreed."""
        return self.disagreements / self.decisive if self.decisive else 0.0

    @property
    def health(self) -> str:
        if not self.decisive:
            return "insufficient_data"
        rate = self.disagreement_rate
        if rate < HEALTHY_LOW:
            return "underdispersed"
        if rate <= HEALTHY_HIGH:
            return "healthy"
        if rate <= WARNING_HIGH:
            return "warning"
        return "critical"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["disagreement_rate"] = round(self.disagreement_rate, 4)
        data["health"] = self.health
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnsembleStats":
        counters = {}
        for name in cls.__dataclass_fields__:
            try:
                counters[name] = int(data.get(name, 0))
            except (TypeError, ValueError):
                counters[name] = 0
        return cls(**counters)


def combine(gate: ClassifierResponse, second: ClassifierResponse, skip_threshold: float) -> ConsensusResult:
    """Apply the voting table to two classifier responses."""
    verdicts = {gate.verdict, second.verdict}
    if ClassifierVerdict.AMBIGUOUS in verdicts:
        return ConsensusResult(ConsensusOutcome.AMBIGUOUS, False, False, gate, second)
    if verdicts == {ClassifierVerdict.SAFE}:
        confident = gate.confidence >= skip_threshold and second.confidence >= skip_threshold
        return ConsensusResult(ConsensusOutcome.SAFE, confident, False, gate, second)
    if verdicts == {ClassifierVerdict.HARMFUL}:
        return ConsensusResult(ConsensusOutcome.HARMFUL, False, False, gate, second)
    return ConsensusResult(ConsensusOutcome.DISAGREEMENT, False, True, gate, second)


class EnsembleConsensus:
    """
    Runs the gate and second classifiers and tracks how often they disagree.

    Args:
        gate: Fast first classifier.
        second: Independent second classifier.
        settings: Skip threshold and disagreement log limits.
        store: Persistence for the disagreement log, stats and lexicon gaps.
        clock: Time source for log entries.
    """

    def __init__(
        self,
        gate: Classifier,
        second: Classifier,
        settings: EnsembleSettings | None = None,
        store: KeyValueStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.gate = gate
        self.second = second
        self.settings = settings or EnsembleSettings()
        self.store = store
        self._clock = clock
        self.stats = EnsembleStats()
        self._disagreements: Deque[Dict[str, Any]] = deque(maxlen=self.settings.disagreement_log_size)

    async def _ask(self, classifier: Classifier, text: str) -> ClassifierResponse:
        try:
            return await classifier.classify_text(text)
        except Exception as exc:
            logger.error("[ENSEMBLE] %s raised instead of failing open: %s", classifier.name, exc)
            return ClassifierResponse.ambiguous("classifier error")

    async def vote(self, text: str) -> ConsensusResult:
        """Ask both classifiers concurrently and combine their verdicts."""
        gate, second = await asyncio.gather(self._ask(self.gate, text), self._ask(self.second, text))
        result = combine(gate, second, self.settings.skip_confidence_threshold)
        self._count(result)
        if result.outcome is ConsensusOutcome.DISAGREEMENT:
            await self._log_disagreement(text, result)
        return result

    def _count(self, result: ConsensusResult) -> None:
        stats = self.stats
        stats.total += 1
        if result.outcome is ConsensusOutcome.AMBIGUOUS:
            stats.ambiguous += 1
        elif result.outcome is ConsensusOutcome.DISAGREEMENT:
            stats.disagreements += 1
            stats.escalations += 1
        else:
            stats.agreements += 1
            if result.outcome is ConsensusOutcome.SAFE:
                stats.consensus_safe += 1
            else:
                stats.consensus_harmful += 1
            if result.skip_scoring:
                stats.skipped += 1

    async def _log_disagreement(self, text: str, result: ConsensusResult) -> None:
        entry = {
            "timestamp": self._clock(),
            "text_hash": hash_text(text),
            "gate": str(result.gate.verdict),
            "gate_confidence": result.gate.confidence,
            "second": str(result.second.verdict),
            "second_confidence": result.second.confidence,
        }
        self._disagreements.append(entry)
        logger.info(
            "[ENSEMBLE] Disagreement on %s: gate=%s (%.2f) second=%s (%.2f)",
            entry["text_hash"], entry["gate"], entry["gate_confidence"],
            entry["second"], entry["second_confidence"],
        )
        if self.store is None:
            return
        try:
            await self.store.set_json(DISAGREEMENT_LOG_KEY, list(self._disagreements), self.settings.disagreement_ttl)
        except Exception as exc:
            logger.warning("[ENSEMBLE] Failed to persist disagreement log: %s", exc)

    def disagreements(self) -> List[Dict[str, Any]]:
        return list(self._disagreements)

    async def record_lexicon_gap(self, text: str, categories: Sequence[str]) -> None:
        """Count a message both classifiers called harmful that the lexicon missed."""
        if self.store is None:
            return
        text_hash = hash_text(text)
        try:
            await self.store.increment(f"{LEXICON_GAP_PREFIX}:{text_hash}")
            for category in categories:
                await self.store.increment(f"{LEXICON_GAP_PREFIX}:category:{category}")
        except Exception as exc:
            logger.warning("[ENSEMBLE] Failed to record lexicon gap %s: %s", text_hash, exc)
            return
        logger.debug("[ENSEMBLE] Lexicon gap %s (classifier categories: %s)", text_hash, list(categories))

    async def load(self) -> None:
        """Restore persisted stats and the disagreement log."""
        if self.store is None:
            return
        stats = await self.store.get_json(STATS_KEY)
        if isinstance(stats, dict):
            self.stats = EnsembleStats.from_dict(stats)
        entries = await self.store.get_json(DISAGREEMENT_LOG_KEY, [])
        if isinstance(entries, list):
            self._disagreements.extend(e for e in entries if isinstance(e, dict))

    async def persist_stats(self) -> None:
        if self.store is None:
            return
        await self.store.set_json(STATS_KEY, self.stats.to_dict())
        logger.debug(
            "[ENSEMBLE] Stats persisted: %d votes, disagreement rate %.3f (%s)",
            self.stats.total, self.stats.disagreement_rate, self.stats.health,
        )
