"""
Construction and lifecycle of the moderation runtime.

``build_pipeline`` turns an ``AppConfig`` into a fully wired
``ModerationRuntime``: persistence store, classifiers, scorers, services,
feedback loop and the periodic maintenance tasks. Everything is an explicit
instance; nothing is stored at module level.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from bullywatch.ai.classifier_client import (
    Classifier,
    DisabledClassifier,
    EscalationClassifier,
    GateClassifier,
    NarrativeClassifier,
    SentimentClassifier,
)
from bullywatch.ai.ensemble_consensus import EnsembleConsensus
from bullywatch.ai.escalation_service import EscalationService
from bullywatch.configuration.app_configuration import AppConfig
from bullywatch.database.kv_store import KeyValueStore, MemoryKeyValueStore
from bullywatch.database.resilient_store import ResilientKeyValueStore
from bullywatch.database.sqlite_kv_store import SqliteKeyValueStore
from bullywatch.detection.critical_term_filter import CriticalTermFilter
from bullywatch.detection.lexicon_scorer import LexiconScorer
from bullywatch.detection.lexicon_tables import DEFAULT_ENTRIES, GENERIC, entries_from_config
from bullywatch.detection.lexicon_weights import LexiconWeights, LexiconWeightStore
from bullywatch.detection.temporal_analyzer import TemporalAnalyzer
from bullywatch.feedback.feedback_loop import FeedbackLoop
from bullywatch.moderation.moderation_pipeline import ModerationPipeline
from bullywatch.scheduler.periodic_scheduler import PeriodicTaskScheduler, seconds_until_next_month
from bullywatch.scoring.composite_scorer import CompositeScorer
from bullywatch.services.sender_history_service import SenderHistoryService
from bullywatch.services.whitelist_service import WhitelistService
from bullywatch.util.logger import get_logger

logger = get_logger("pipeline_factory")


@dataclass
class ModerationRuntime:
    """Everything a host process needs to score messages and feed back reviews."""

    pipeline: ModerationPipeline
    store: KeyValueStore
    feedback: FeedbackLoop
    weight_store: LexiconWeightStore
    schedulers: List[PeriodicTaskScheduler] = field(default_factory=list)

    def start(self) -> None:
        """Start the periodic maintenance tasks. Requires a running event loop."""
        for scheduler in self.schedulers:
            scheduler.start()

    async def shutdown(self) -> None:
        """Stop maintenance, flush pending feedback and statistics, close the store."""
        for scheduler in self.schedulers:
            await scheduler.shutdown()
        await self.feedback.wait_idle()
        await self.feedback.process_pending()
        await self.pipeline.ensemble.persist_stats()
        await self.store.close()
        logger.info("[RUNTIME] Shutdown complete")


async def open_store(app_config: AppConfig) -> KeyValueStore:
    """Open the configured store, degrading to memory if it cannot be opened."""
    storage = app_config.storage
    if storage.backend == "memory":
        logger.info("[RUNTIME] Using in-memory store")
        return MemoryKeyValueStore()
    if storage.backend != "sqlite":
        logger.error("[RUNTIME] Unknown storage backend %r", storage.backend)
        return ResilientKeyValueStore(None)

    primary = SqliteKeyValueStore(Path(storage.path))
    try:
        await primary.initialize()
    except Exception as exc:
        logger.error("[RUNTIME] Could not open SQLite store at %s: %s", storage.path, exc)
        return ResilientKeyValueStore(None)
    logger.info("[RUNTIME] Using SQLite store at %s", storage.path)
    return ResilientKeyValueStore(primary)


def build_classifiers(app_config: AppConfig) -> tuple[Classifier, Classifier, Classifier | None]:
    gate_settings = app_config.classifier("gate")
    second_settings = app_config.classifier("second")
    escalation_settings = app_config.classifier("escalation")

    gate = GateClassifier(gate_settings) if gate_settings.enabled else DisabledClassifier("gate")
    second = SentimentClassifier(second_settings) if second_settings.enabled else DisabledClassifier("second")
    escalation = EscalationClassifier(escalation_settings) if escalation_settings.enabled else None
    if not gate_settings.enabled or not second_settings.enabled:
        logger.warning("[RUNTIME] Ensemble classifier disabled; every vote will be ambiguous")
    return gate, second, escalation


def build_narrative_classifier(app_config: AppConfig) -> Classifier | None:
    settings = app_config.classifier("narrative")
    if not settings.enabled:
        logger.info("[RUNTIME] Narrative check disabled; high lexicon scores are never dampened")
        return None
    return NarrativeClassifier(settings)


async def build_pipeline(app_config: AppConfig, store: KeyValueStore | None = None) -> ModerationRuntime:
    """Wire a moderation runtime from configuration.

    Args:
        app_config: Loaded application configuration.
        store: Pre-opened store; opened from ``storage`` settings when omitted.

    Returns:
        The runtime. Call ``start()`` inside the event loop to begin maintenance.
    """
    load_dotenv()
    store = store or await open_store(app_config)

    scoring = app_config.scoring
    temporal_settings = app_config.temporal
    storage = app_config.storage

    critical_filter = CriticalTermFilter()
    critical_filter.add_terms(app_config.critical_terms)

    weight_store = LexiconWeightStore(LexiconWeights(category_weights={GENERIC: scoring.unknown_category_weight}))
    lexicon = LexiconScorer(weight_store, list(DEFAULT_ENTRIES) + entries_from_config(app_config.lexicon_entries))

    temporal = TemporalAnalyzer(temporal_settings)
    whitelist = WhitelistService(store, scoring, temporal)
    gate, second, escalation_classifier = build_classifiers(app_config)
    ensemble = EnsembleConsensus(gate, second, app_config.ensemble, store)
    escalation = (
        EscalationService(escalation_classifier, app_config.escalation) if escalation_classifier is not None else None
    )

    feedback = FeedbackLoop(store, weight_store, app_config.feedback)
    await feedback.load()
    await ensemble.load()

    pipeline = ModerationPipeline(
        settings=scoring,
        critical_filter=critical_filter,
        ensemble=ensemble,
        lexicon=lexicon,
        temporal=temporal,
        composite=CompositeScorer(scoring),
        whitelist=whitelist,
        history=SenderHistoryService(store, temporal, storage.history_ttl),
        escalation=escalation,
        narrative=build_narrative_classifier(app_config),
    )

    async def maintenance() -> None:
        temporal.evict_expired()
        whitelist.prune_cache()
        if escalation is not None:
            escalation.rate_limiter.cleanup()
        await ensemble.persist_stats()

    async def purge() -> None:
        removed = await store.purge_expired()
        if removed:
            logger.info("[RUNTIME] Purged %d expired keys", removed)

    schedulers = [
        PeriodicTaskScheduler("eviction", maintenance, lambda: temporal_settings.eviction_interval),
        PeriodicTaskScheduler("purge", purge, lambda: storage.purge_interval),
    ]
    if app_config.feedback.monthly_retune:
        schedulers.append(PeriodicTaskScheduler("feedback", feedback.process_pending, seconds_until_next_month))

    logger.info(
        "[RUNTIME] Pipeline ready (monitor_mode=%s, %d critical terms, escalation=%s)",
        scoring.monitor_mode, len(critical_filter.terms()), escalation is not None,
    )
    return ModerationRuntime(pipeline, store, feedback, weight_store, schedulers)
