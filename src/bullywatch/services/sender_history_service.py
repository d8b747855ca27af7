"""Persistence of sender violation history."""

from __future__ import annotations

from typing import List, Sequence

from bullywatch.database.kv_store import KeyValueStore
from bullywatch.datatypes.message_datatypes import SenderID
from bullywatch.detection.temporal_analyzer import TemporalAnalyzer
from bullywatch.util.logger import get_logger

logger = get_logger("sender_history_service")

KEY_PREFIX = "history:"


class SenderHistoryService:
    """Loads sender histories into the temporal analyzer and saves them back.

    Args:
        store: Persistence store.
        temporal: Analyzer holding the in-memory histories.
        ttl: Seconds a persisted history lives after its last update.
    """

    def __init__(self, store: KeyValueStore, temporal: TemporalAnalyzer, ttl: float) -> None:
        self._store = store
        self._temporal = temporal
        self._ttl = ttl

    async def ensure_loaded(self, sender_id: SenderID) -> None:
        """Hydrate a sender's history from the store the first time it is seen."""
        if self._temporal.has_history(sender_id):
            return
        rows = await self._store.get_json(KEY_PREFIX + sender_id, default=[])
        # Another task may have created the history while we awaited the store.
        if self._temporal.has_history(sender_id):
            return
        self._temporal.load_history(sender_id, rows if isinstance(rows, list) else [])
        if rows:
            logger.debug("[HISTORY] Loaded %d history rows for sender %s", len(rows), sender_id)

    async def save(self, sender_id: SenderID) -> None:
        rows: List[Sequence[float]] = self._temporal.history(sender_id).to_list()
        await self._store.set_json(KEY_PREFIX + sender_id, rows, self._ttl)
