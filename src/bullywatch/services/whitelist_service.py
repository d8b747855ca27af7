"""
Friend-group whitelist.

Verified small friend groups get a dampening multiplier so in-group banter is
not scored like harassment. A group is dampened when:

1. it has an active ``WhitelistEntry`` (admin-added, optional expiry), or
2. the transport marks it as whitelisted in the group context, or
3. auto-detection is enabled and the group is small with very high
   participation (size < 10 and > 80% of members active in the window).
"""

from __future__ import annotations

import time
from typing import Callable, Dict

from bullywatch.configuration.pipeline_settings import ScoringSettings
from bullywatch.database.kv_store import KeyValueStore
from bullywatch.datatypes.message_datatypes import GroupContext, GroupID, WhitelistEntry
from bullywatch.detection.temporal_analyzer import TemporalAnalyzer
from bullywatch.util.logger import get_logger

logger = get_logger("whitelist_service")

KEY_PREFIX = "whitelist:"


class WhitelistService:
    def __init__(
        self,
        store: KeyValueStore,
        settings: ScoringSettings,
        temporal: TemporalAnalyzer,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._settings = settings
        self._temporal = temporal
        self._clock = clock
        self._cache: Dict[GroupID, WhitelistEntry | None] = {}

    async def add(
        self,
        group_id: GroupID,
        multiplier: float | None = None,
        ttl: float | None = None,
        reason: str = "",
    ) -> WhitelistEntry:
        """Whitelist a group.

        Args:
            group_id: Group to dampen.
            multiplier: Friend-group multiplier; defaults to the configured one.
            ttl: Seconds until the entry lapses, or None for no expiry.
            reason: Administrator note.

        Returns:
            The stored entry.
        """
        value = self._settings.friend_group_multiplier if multiplier is None else multiplier
        if not 0.0 < value <= 1.0:
            raise ValueError(f"friend-group multiplier must be in (0, 1], got {value}")
        expires_at = self._clock() + ttl if ttl is not None else None
        entry = WhitelistEntry(group_id=group_id, multiplier=value, expires_at=expires_at, reason=reason)
        await self._store.set_json(KEY_PREFIX + group_id, entry.to_dict(), ttl)
        self._cache[group_id] = entry
        logger.info("[WHITELIST] Group %s whitelisted (multiplier=%.2f, ttl=%s)", group_id, value, ttl)
        return entry

    async def remove(self, group_id: GroupID) -> bool:
        self._cache[group_id] = None
        removed = await self._store.delete(KEY_PREFIX + group_id)
        logger.info("[WHITELIST] Group %s removed from whitelist", group_id)
        return removed

    async def get_entry(self, group_id: GroupID) -> WhitelistEntry | None:
        if group_id in self._cache:
            entry = self._cache[group_id]
        else:
            data = await self._store.get_json(KEY_PREFIX + group_id)
            entry = WhitelistEntry.from_dict(data) if isinstance(data, dict) else None
            self._cache[group_id] = entry
        if entry is not None and not entry.is_active(self._clock()):
            self._cache[group_id] = None
            return None
        return entry

    def prune_cache(self) -> int:
        """Drop cached misses and lapsed entries so the cache only holds live whitelists.

        Returns:
            Number of groups dropped.
        """
        now = self._clock()
        stale = [g for g, entry in self._cache.items() if entry is None or not entry.is_active(now)]
        for group_id in stale:
            del self._cache[group_id]
        if stale:
            logger.debug("[WHITELIST] Pruned %d cached groups, %d remain", len(stale), len(self._cache))
        return len(stale)

    def is_auto_friend_group(self, group_id: GroupID, context: GroupContext) -> bool:
        s = self._settings
        if not s.auto_friend_group or context.size <= 0 or context.size >= s.friend_group_max_size:
            return False
        return self._temporal.participation(group_id, context.size) > s.friend_group_min_participation

    async def friend_group_multiplier(self, group_id: GroupID, context: GroupContext) -> float:
        """Return the friend-group multiplier for a message in ``group_id`` (1.0 when none applies)."""
        entry = await self.get_entry(group_id)
        if entry is not None:
            return entry.multiplier
        if context.whitelisted or self.is_auto_friend_group(group_id, context):
            return self._settings.friend_group_multiplier
        return 1.0
