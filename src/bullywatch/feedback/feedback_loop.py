"""
Reviewer feedback and lexicon weight tuning.

``record`` only enqueues, so callers on the moderation path never wait on it.
Once ``batch_size`` records are pending a processing task is scheduled; the
monthly scheduler drains whatever is left. Processing folds verdicts into
cumulative per-category counts, persists them, and publishes a new
``LexiconWeights`` snapshot derived from each category's precision.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Deque, Dict, Set

from bullywatch.configuration.pipeline_settings import FeedbackSettings
from bullywatch.database.kv_store import KeyValueStore
from bullywatch.datatypes.feedback_datatypes import (
    AccuracyMetrics,
    CategoryCounts,
    FeedbackRecord,
    FeedbackVerdict,
)
from bullywatch.detection.lexicon_weights import LexiconWeights, LexiconWeightStore
from bullywatch.util.logger import get_logger

logger = get_logger("feedback_loop")

COUNTS_KEY = "feedback:category_counts"
WEIGHTS_KEY = "lexicon:weights"

PRECISION_STEPS = (
    (0.9, 1.2),
    (0.7, 1.1),
    (0.5, 1.0),
    (0.3, 0.8),
)
MIN_WEIGHT = 0.5


def precision_to_weight(precision: float) -> float:
    """Map a category's precision to its lexicon weight."""
    for threshold, weight in PRECISION_STEPS:
        if precision > threshold:
            return weight
    return MIN_WEIGHT


class FeedbackLoop:
    """
    Collects reviewer verdicts and retunes category weights.

    Args:
        store: Persistence for counts and published weights.
        weight_store: Holder of the live weight snapshot read by the scorer.
        settings: Batch size and stats TTL.
    """

    def __init__(
        self,
        store: KeyValueStore,
        weight_store: LexiconWeightStore,
        settings: FeedbackSettings | None = None,
    ) -> None:
        self.store = store
        self.weight_store = weight_store
        self.settings = settings or FeedbackSettings()
        self._pending: Deque[FeedbackRecord] = deque()
        self._counts: Dict[str, CategoryCounts] = {}
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(self, feedback: FeedbackRecord) -> None:
        """Queue a verdict. Schedules processing when a full batch is waiting.

        Outside a running event loop the batch stays queued until the next
        ``process_pending`` call (at the latest, the monthly run).
        """
        if feedback.verdict is FeedbackVerdict.UNCERTAIN:
            logger.debug("[FEEDBACK] Ignoring uncertain verdict for %s", feedback.message_id)
            return
        self._pending.append(feedback)
        if len(self._pending) < self.settings.batch_size:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[FEEDBACK] No running event loop; leaving %d verdicts pending", len(self._pending))
            return
        task = loop.create_task(self.process_pending())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Wait for scheduled processing tasks to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def load(self) -> None:
        """Restore counts and the last published weights from the store."""
        counts = await self.store.get_json(COUNTS_KEY, {})
        if isinstance(counts, dict):
            self._counts = {
                str(category): CategoryCounts.from_dict(value)
                for category, value in counts.items() if isinstance(value, dict)
            }
        weights = await self.store.get_json(WEIGHTS_KEY)
        if isinstance(weights, dict):
            snapshot = LexiconWeights.from_dict(weights)
            if snapshot.version > self.weight_store.current.version:
                self.weight_store.publish(snapshot)

    async def process_pending(self) -> LexiconWeights | None:
        """Fold every queued verdict into the counts and publish new weights.

        Returns:
            The published snapshot, or None when nothing was pending.
        """
        async with self._lock:
            if not self._pending:
                return None
            batch = list(self._pending)
            self._pending.clear()

            for feedback in batch:
                current = self._counts.get(feedback.category, CategoryCounts())
                self._counts[feedback.category] = current.add(feedback.verdict)

            updates = {
                category: precision_to_weight(counts.precision)
                for category, counts in self._counts.items()
                if counts.true_positive + counts.false_positive
            }
            snapshot = self.weight_store.current.with_category_weights(updates)
            self.weight_store.publish(snapshot)
            logger.info("[FEEDBACK] Processed %d verdicts, weights now v%d: %s", len(batch), snapshot.version, updates)

            ttl = self.settings.stats_ttl
            await self.store.set_json(
                COUNTS_KEY, {category: c.to_dict() for category, c in self._counts.items()}, ttl
            )
            await self.store.set_json(WEIGHTS_KEY, snapshot.to_dict())
            return snapshot

    def category_counts(self) -> Dict[str, CategoryCounts]:
        return dict(self._counts)

    def category_precision(self) -> Dict[str, float]:
        return {category: counts.precision for category, counts in self._counts.items()}

    def metrics(self) -> AccuracyMetrics:
        """Precision, recall, F1 and accuracy over all processed reviews."""
        total = CategoryCounts()
        for counts in self._counts.values():
            total = CategoryCounts(
                total.true_positive + counts.true_positive,
                total.false_positive + counts.false_positive,
                total.true_negative + counts.true_negative,
                total.false_negative + counts.false_negative,
            )
        return AccuracyMetrics.from_counts(total)
