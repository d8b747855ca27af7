"""
Typed settings for the scoring pipeline.

Each dataclass mirrors one section of ``config/app_config.yml``. Defaults are
the production tuning; ``from_mapping`` ignores unknown keys and coerces
known ones so a partially filled YAML section still yields a valid object.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Type, TypeVar

from bullywatch.datatypes.scoring_datatypes import SeverityTier
from bullywatch.util.logger import get_logger

logger = get_logger("pipeline_settings")

T = TypeVar("T")

HOUR = 3600.0
DAY = 24 * HOUR


def _from_mapping(cls: Type[T], data: Mapping[str, Any] | None) -> T:
    if not isinstance(data, Mapping):
        return cls()
    defaults = cls()
    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in data or f.name == "tier_thresholds":
            continue
        default, value = getattr(defaults, f.name), data[f.name]
        if isinstance(default, bool):
            if isinstance(value, bool):
                kwargs[f.name] = value
            else:
                logger.warning("[CONFIG] Ignoring non-boolean %s.%s: %r", cls.__name__, f.name, value)
            continue
        try:
            kwargs[f.name] = type(default)(value)
        except (TypeError, ValueError):
            logger.warning("[CONFIG] Ignoring invalid value for %s.%s: %r", cls.__name__, f.name, value)
    return cls(**kwargs)


def _default_thresholds() -> Dict[SeverityTier, int]:
    return {
        SeverityTier.MONITOR: 4,
        SeverityTier.YELLOW: 8,
        SeverityTier.ORANGE: 12,
        SeverityTier.RED: 16,
        SeverityTier.CRITICAL: 20,
    }


@dataclass(frozen=True, slots=True)
class ScoringSettings:
    """Composite scorer tuning.

    ``tier_thresholds`` holds the lowest final score of each tier above SAFE.
    A lexicon base score of at least ``narrative_check_score`` is checked for
    narrative context; a confident narrative verdict (above
    ``narrative_confidence``) multiplies the base by ``narrative_dampening``.
    """

    targeting_multiplier: float = 1.5
    public_shaming_multiplier: float = 1.3
    friend_group_multiplier: float = 0.5
    critical_floor: int = 16
    critical_result_score: int = 100
    monitor_mode: bool = False
    emoji_add_on_cap: float = 6.0
    unknown_category_weight: float = 0.5
    auto_friend_group: bool = False
    friend_group_max_size: int = 10
    friend_group_min_participation: float = 0.8
    narrative_check_score: float = 15.0
    narrative_confidence: float = 0.7
    narrative_dampening: float = 0.2
    tier_thresholds: Dict[SeverityTier, int] = field(default_factory=_default_thresholds)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ScoringSettings":
        base = _from_mapping(cls, data)
        raw = data.get("tier_thresholds") if isinstance(data, Mapping) else None
        if not isinstance(raw, Mapping):
            return base
        thresholds = _default_thresholds()
        for name, value in raw.items():
            try:
                thresholds[SeverityTier[str(name).upper()]] = int(value)
            except (KeyError, TypeError, ValueError):
                logger.warning("[CONFIG] Ignoring invalid tier threshold %r=%r", name, value)
        ordered = [thresholds[t] for t in sorted(thresholds)]
        if ordered != sorted(ordered):
            logger.error("[CONFIG] Tier thresholds %s are not monotonic, using defaults", ordered)
            thresholds = _default_thresholds()
        return cls(**{f.name: getattr(base, f.name) for f in fields(cls) if f.name != "tier_thresholds"},
                   tier_thresholds=thresholds)


@dataclass(frozen=True, slots=True)
class TemporalSettings:
    """Temporal analyzer windows and bonuses. Durations are in seconds."""

    window_max_entries: int = 500
    window_max_age: float = DAY
    pile_on_window: float = 600.0
    pile_on_bonus: float = 5.0
    pile_on_severe_bonus: float = 10.0
    pile_on_severe_attackers: int = 5
    repeat_targeting_window: float = 1800.0
    repeat_targeting_second_bonus: float = 3.0
    repeat_targeting_third_bonus: float = 6.0
    offender_recent_window: float = HOUR
    offender_recent_bonus: float = 3.0
    offender_high_window: float = DAY
    offender_high_bonus: float = 5.0
    offender_pattern_window: float = 7 * DAY
    offender_pattern_bonus: float = 4.0
    offender_pattern_count: int = 3
    velocity_window: float = 300.0
    velocity_min_messages: int = 5
    velocity_min_negative: int = 3
    velocity_bonus: float = 3.0
    velocity_high_messages: int = 10
    velocity_high_negative: int = 5
    velocity_high_bonus: float = 5.0
    silencing_window: float = 1800.0
    silencing_min_messages: int = 5
    silencing_harassment_score: float = 3.0
    silencing_victim_messages: int = 5
    silencing_quiet: float = 600.0
    silencing_bonus: float = 5.0
    history_max_entries: int = 1000
    eviction_interval: float = HOUR

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "TemporalSettings":
        return _from_mapping(cls, data)


@dataclass(frozen=True, slots=True)
class EnsembleSettings:
    skip_confidence_threshold: float = 0.85
    disagreement_log_size: int = 1000
    disagreement_ttl: float = 7 * DAY

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "EnsembleSettings":
        return _from_mapping(cls, data)


@dataclass(frozen=True, slots=True)
class EscalationSettings:
    """Escalation classifier gating.

    ``band_low``/``band_high`` bound the ambiguous composite score band
    (inclusive).
    """

    band_low: int = 8
    band_high: int = 13
    context_before: int = 5
    context_after: int = 5
    max_calls_per_hour: int = 20
    banter_confidence: float = 0.7
    harassment_confidence: float = 0.8
    pseudonym_salt: str = "bullywatch"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "EscalationSettings":
        return _from_mapping(cls, data)


@dataclass(frozen=True, slots=True)
class FeedbackSettings:
    batch_size: int = 10
    stats_ttl: float = 30 * DAY
    monthly_retune: bool = True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "FeedbackSettings":
        return _from_mapping(cls, data)


@dataclass(frozen=True, slots=True)
class StorageSettings:
    """Persistence backend. ``backend`` is ``sqlite`` or ``memory``."""

    backend: str = "sqlite"
    path: str = "./data/bullywatch.db"
    purge_interval: float = HOUR
    history_ttl: float = 7 * DAY

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "StorageSettings":
        return _from_mapping(cls, data)
