"""
Per-conversation temporal pattern detection.

The analyzer owns one bounded ``ConversationWindow`` per group and one
``SenderHistory`` per sender. Scoring a message is split in two steps:

* ``observe`` reads the window and history and returns behavior points
  (pile-on, repeat targeting, repeat offender, message velocity, victim
  silencing). It only evicts expired entries.
* ``commit`` appends the message to the window and its final tier to the
  sender history once the pipeline has settled on a result.

Keeping the mutation in ``commit`` means a message whose processing is
cancelled part-way never leaves a partial entry behind. Callers serialise
``observe``/``commit`` per group and per sender (see ``KeyedLockRegistry``).
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Iterable, Iterator, List, Sequence, Tuple

from bullywatch.configuration.pipeline_settings import TemporalSettings
from bullywatch.datatypes.message_datatypes import GroupID, Message, MessageID, SenderID
from bullywatch.datatypes.scoring_datatypes import SeverityTier, TemporalSignals
from bullywatch.util.logger import get_logger

logger = get_logger("temporal_analyzer")

MEDIUM_TIER = SeverityTier.YELLOW
HIGH_TIER = SeverityTier.ORANGE
MAX_CONTEXT_TEXT = 500


@dataclass(frozen=True, slots=True)
class WindowEntry:
    message_id: MessageID
    sender_id: SenderID
    target_id: SenderID | None
    timestamp: float
    categories: Tuple[str, ...]
    text: str = ""
    base_score: float = 0.0

    @property
    def is_attack(self) -> bool:
        return bool(self.categories) and self.target_id is not None


class ConversationWindow:
    """Bounded ring buffer of recent messages in one group.

    Evicted by count (``maxlen``) and by age, whichever is tighter.
    """

    def __init__(self, group_id: GroupID, max_entries: int, max_age: float) -> None:
        self.group_id = group_id
        self.max_age = max_age
        self._entries: Deque[WindowEntry] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[WindowEntry]:
        return iter(self._entries)

    def evict(self, now: float) -> int:
        cutoff = now - self.max_age
        removed = 0
        while self._entries and self._entries[0].timestamp < cutoff:
            self._entries.popleft()
            removed += 1
        return removed

    def append(self, entry: WindowEntry) -> None:
        self._entries.append(entry)

    def since(self, cutoff: float) -> List[WindowEntry]:
        return [e for e in self._entries if e.timestamp >= cutoff]

    def distinct_senders(self) -> int:
        return len({e.sender_id for e in self._entries})

    def activity(self, sender_id: SenderID) -> Tuple[int, float | None]:
        """Number of messages from ``sender_id`` in the window and the time of the latest."""
        count, last = 0, None
        for e in self._entries:
            if e.sender_id == sender_id:
                count += 1
                last = e.timestamp if last is None else max(last, e.timestamp)
        return count, last

    def context_around(
        self, message_id: MessageID, before: int, after: int
    ) -> Tuple[List[WindowEntry], List[WindowEntry]]:
        """Return up to ``before`` entries preceding and ``after`` entries following a message.

        When the message is not in the window (it has not been committed yet)
        the most recent entries are returned as the preceding context.
        """
        entries = list(self._entries)
        index = next((i for i, e in enumerate(entries) if e.message_id == message_id), None)
        if index is None:
            return entries[-before:] if before else [], []
        return entries[max(0, index - before):index], entries[index + 1:index + 1 + after]


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    timestamp: float
    tier: SeverityTier


class SenderHistory:
    """Rolling list of a sender's scored severities, pruned to a fixed horizon."""

    def __init__(self, sender_id: SenderID, horizon: float, max_entries: int) -> None:
        self.sender_id = sender_id
        self.horizon = horizon
        self._entries: Deque[HistoryEntry] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def prune(self, now: float) -> int:
        cutoff = now - self.horizon
        removed = 0
        while self._entries and self._entries[0].timestamp < cutoff:
            self._entries.popleft()
            removed += 1
        return removed

    def record(self, timestamp: float, tier: SeverityTier) -> None:
        self._entries.append(HistoryEntry(timestamp, tier))

    def count_at_least(self, tier: SeverityTier, since: float) -> int:
        return sum(1 for e in self._entries if e.tier >= tier and e.timestamp >= since)

    def to_list(self) -> List[List[float]]:
        return [[e.timestamp, int(e.tier)] for e in self._entries]

    def extend_from(self, rows: Iterable[Sequence[float]]) -> None:
        parsed: List[HistoryEntry] = []
        for row in rows:
            try:
                parsed.append(HistoryEntry(float(row[0]), SeverityTier(int(row[1]))))
            except (IndexError, KeyError, TypeError, ValueError):
                logger.warning("[TEMPORAL] Skipping malformed history row for %s: %r", self.sender_id, row)
        self._entries.extend(sorted(parsed, key=lambda e: e.timestamp))


class TemporalAnalyzer:
    """Detect pile-ons, repeat targeting, repeat offenders, bursts and silenced victims.

    Args:
        settings: Window sizes and bonus values.
        clock: Time source for periodic eviction. Message timestamps are used
            for everything computed while scoring.
    """

    def __init__(self, settings: TemporalSettings | None = None, clock: Callable[[], float] = time.time) -> None:
        self.settings = settings or TemporalSettings()
        self._clock = clock
        self._windows: Dict[GroupID, ConversationWindow] = {}
        self._histories: Dict[SenderID, SenderHistory] = {}

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def window(self, group_id: GroupID) -> ConversationWindow:
        window = self._windows.get(group_id)
        if window is None:
            window = ConversationWindow(group_id, self.settings.window_max_entries, self.settings.window_max_age)
            self._windows[group_id] = window
        return window

    def history(self, sender_id: SenderID) -> SenderHistory:
        history = self._histories.get(sender_id)
        if history is None:
            history = SenderHistory(sender_id, self.settings.offender_pattern_window, self.settings.history_max_entries)
            self._histories[sender_id] = history
        return history

    def has_history(self, sender_id: SenderID) -> bool:
        return sender_id in self._histories

    def load_history(self, sender_id: SenderID, rows: Iterable[Sequence[float]]) -> None:
        """Seed a sender's history from persisted rows (no-op if already loaded)."""
        if sender_id in self._histories:
            return
        self.history(sender_id).extend_from(rows)

    def participation(self, group_id: GroupID, group_size: int) -> float:
        """Fraction of group members who posted within the window."""
        window = self._windows.get(group_id)
        if window is None or group_size <= 0:
            return 0.0
        return min(1.0, window.distinct_senders() / group_size)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def observe(
        self,
        message: Message,
        categories: Sequence[str],
        target_id: SenderID | None,
        base_score: float = 0.0,
    ) -> TemporalSignals:
        """Compute behavior points for a message without recording it.

        Velocity and victim silencing only apply to a message that scored on
        the lexicon itself; a harmless message posted into a heated thread
        earns nothing.

        Args:
            message: The message being scored.
            categories: Lexicon categories detected in it.
            target_id: Who the message is aimed at, if anyone.
            base_score: Lexicon base score of the message.

        Returns:
            Points per behavior pattern.
        """
        now = message.epoch_seconds
        window = self.window(message.group_id)
        window.evict(now)

        pile_on = 0.0
        repeat_targeting = 0.0
        if categories and target_id is not None and target_id != message.sender_id:
            pile_on = self._pile_on_bonus(window, message.sender_id, target_id, now)
            repeat_targeting = self._repeat_targeting_bonus(window, message.sender_id, target_id, now)

        repeat_offender = self._repeat_offender_bonus(message.sender_id, now)

        velocity = 0.0
        victim_silencing = 0.0
        if base_score > 0:
            velocity = self._velocity_bonus(window, now)
            victim_silencing = self._victim_silencing_bonus(window, message.sender_id, now)

        signals = TemporalSignals(
            pile_on=pile_on,
            repeat_targeting=repeat_targeting,
            repeat_offender=repeat_offender,
            velocity=velocity,
            victim_silencing=victim_silencing,
            target_id=target_id,
        )
        if signals.total:
            logger.info(
                "[TEMPORAL] group=%s sender=%s pile_on=%.1f repeat_targeting=%.1f repeat_offender=%.1f "
                "velocity=%.1f silencing=%.1f",
                message.group_id, message.sender_id, pile_on, repeat_targeting, repeat_offender,
                velocity, victim_silencing,
            )
        return signals

    def _pile_on_bonus(self, window: ConversationWindow, sender_id: SenderID, target_id: SenderID, now: float) -> float:
        s = self.settings
        attacks = [e for e in window.since(now - s.pile_on_window) if e.is_attack and e.target_id == target_id]
        if not attacks:
            return 0.0
        # The first attacker is scored on their own message only, even when
        # they attack again later in the same window.
        if attacks[0].sender_id == sender_id:
            return 0.0
        attackers = {e.sender_id for e in attacks} | {sender_id}
        if len(attackers) < 2:
            return 0.0
        return s.pile_on_severe_bonus if len(attackers) >= s.pile_on_severe_attackers else s.pile_on_bonus

    def _repeat_targeting_bonus(
        self, window: ConversationWindow, sender_id: SenderID, target_id: SenderID, now: float
    ) -> float:
        s = self.settings
        prior = sum(
            1 for e in window.since(now - s.repeat_targeting_window)
            if e.is_attack and e.sender_id == sender_id and e.target_id == target_id
        )
        hits = prior + 1
        if hits >= 3:
            return s.repeat_targeting_third_bonus
        if hits == 2:
            return s.repeat_targeting_second_bonus
        return 0.0

    def _repeat_offender_bonus(self, sender_id: SenderID, now: float) -> float:
        history = self._histories.get(sender_id)
        if history is None:
            return 0.0
        history.prune(now)

        s = self.settings
        bonus = 0.0
        if history.count_at_least(MEDIUM_TIER, now - s.offender_recent_window) >= 1:
            bonus += s.offender_recent_bonus
        if history.count_at_least(HIGH_TIER, now - s.offender_high_window) >= 1:
            bonus += s.offender_high_bonus
        if history.count_at_least(MEDIUM_TIER, now - s.offender_pattern_window) >= s.offender_pattern_count:
            bonus += s.offender_pattern_bonus
        return bonus

    def _velocity_bonus(self, window: ConversationWindow, now: float) -> float:
        """Burst of negative messages in the group. Counts include the message being scored."""
        s = self.settings
        recent = window.since(now - s.velocity_window)
        total = len(recent) + 1
        negative = sum(1 for e in recent if e.base_score > 0) + 1
        if total >= s.velocity_high_messages and negative >= s.velocity_high_negative:
            return s.velocity_high_bonus
        if total >= s.velocity_min_messages and negative >= s.velocity_min_negative:
            return s.velocity_bonus
        return 0.0

    def _victim_silencing_bonus(self, window: ConversationWindow, sender_id: SenderID, now: float) -> float:
        """An active member went quiet after being harassed.

        The victim must have posted more than ``silencing_victim_messages``
        messages in the window, and both the last harassment and their own
        last message must be older than ``silencing_quiet``.
        """
        s = self.settings
        recent = window.since(now - s.silencing_window)
        if len(recent) + 1 < s.silencing_min_messages:
            return 0.0

        last_harassed: Dict[SenderID, float] = {}
        for e in recent:
            if e.base_score > s.silencing_harassment_score and e.target_id not in (None, sender_id, e.sender_id):
                last_harassed[e.target_id] = max(last_harassed.get(e.target_id, e.timestamp), e.timestamp)

        for victim, harassed_at in last_harassed.items():
            count, last_seen = window.activity(victim)
            if count <= s.silencing_victim_messages or last_seen is None:
                continue
            if now - harassed_at > s.silencing_quiet and now - last_seen > s.silencing_quiet:
                logger.info("[TEMPORAL] %s went quiet after harassment in group %s", victim, window.group_id)
                return s.silencing_bonus
        return 0.0

    def commit(
        self,
        message: Message,
        categories: Sequence[str],
        target_id: SenderID | None,
        tier: SeverityTier,
        base_score: float = 0.0,
    ) -> None:
        """Record a scored message in its group window and its sender's history."""
        now = message.epoch_seconds
        text = message.text if isinstance(message.text, str) else ""
        self.window(message.group_id).append(WindowEntry(
            message_id=message.id,
            sender_id=message.sender_id,
            target_id=target_id,
            timestamp=now,
            categories=tuple(categories),
            text=text[:MAX_CONTEXT_TEXT],
            base_score=base_score,
        ))
        self.history(message.sender_id).record(now, tier)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def evict_expired(self, now: float | None = None) -> int:
        """Drop expired window/history entries and forget empty keys.

        Run periodically so idle groups and senders do not pin memory.

        Returns:
            Number of entries removed.
        """
        now = self._clock() if now is None else now
        removed = 0
        for group_id in list(self._windows):
            window = self._windows[group_id]
            removed += window.evict(now)
            if not len(window):
                del self._windows[group_id]
        for sender_id in list(self._histories):
            history = self._histories[sender_id]
            removed += history.prune(now)
            if not len(history):
                del self._histories[sender_id]
        if removed:
            logger.debug("[TEMPORAL] Evicted %d expired entries", removed)
        return removed
