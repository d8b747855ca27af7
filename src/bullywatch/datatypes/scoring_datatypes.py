"""
Scoring types shared by the detection, scoring and moderation layers.

This module defines the severity ladder, the action directives exposed to the
action-execution collaborator, and the value objects that flow between the
lexicon scorer, the temporal analyzer and the composite scorer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Tuple

from bullywatch.datatypes.message_datatypes import SenderID


class SeverityTier(IntEnum):
    """Totally ordered severity ladder. Higher is worse."""

    SAFE = 0
    MONITOR = 1
    YELLOW = 2
    ORANGE = 3
    RED = 4
    CRITICAL = 5

    def __str__(self) -> str:
        return self.name.lower()


class ActionDirective(Enum):
    """Recommended moderation action. The core never executes these itself."""

    NONE = "none"
    LOG = "log"
    ALERT = "alert"
    DELETE_AND_ALERT = "delete_and_alert"
    DELETE_ALERT_MUTE = "delete_alert_mute"
    DELETE_ALERT_BAN = "delete_alert_ban"
    URGENT_PRIVATE_INTERVENTION = "urgent_private_intervention"

    def __str__(self) -> str:
        return self.value

    @property
    def is_destructive(self) -> bool:
        return self in DESTRUCTIVE_ACTIONS


DESTRUCTIVE_ACTIONS = frozenset({
    ActionDirective.DELETE_AND_ALERT,
    ActionDirective.DELETE_ALERT_MUTE,
    ActionDirective.DELETE_ALERT_BAN,
})


class ScoringStage(Enum):
    """Which pipeline layer produced a ScoreResult."""

    CRITICAL_FILTER = "critical_filter"
    ENSEMBLE_SKIP = "ensemble_skip"
    SCORED = "scored"
    FALLBACK = "fallback"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class LexiconHit:
    """A single pattern occurrence found by the lexicon scorer.

    Attributes:
        term: Canonical form of the matched term.
        category: Category tag of the pattern table entry.
        base_score: Points assigned to the entry.
        weight: Feedback-derived multiplier from the active weight snapshot.
    """

    term: str
    category: str
    base_score: float
    weight: float = 1.0

    @property
    def weighted_score(self) -> float:
        return self.base_score * self.weight


@dataclass(frozen=True, slots=True)
class LexiconResult:
    """Output of one lexicon scoring pass.

    Attributes:
        hits: Every hit found, before capping.
        categories: Every detected category, highest contribution first.
        base_score: Capped lexicon contribution (top 3 categories, top 2 hits each).
        weights_version: Version of the weight snapshot used.
        narrative_dampened: True when ``base_score`` was reduced because the
            message describes a story, film or news item.
    """

    hits: Tuple[LexiconHit, ...] = ()
    categories: Tuple[str, ...] = ()
    base_score: float = 0.0
    weights_version: int = 0
    narrative_dampened: bool = False


@dataclass(frozen=True, slots=True)
class TemporalSignals:
    """Behavior points contributed by the temporal analyzer."""

    pile_on: float = 0.0
    repeat_targeting: float = 0.0
    repeat_offender: float = 0.0
    velocity: float = 0.0
    victim_silencing: float = 0.0
    target_id: SenderID | None = None

    @property
    def total(self) -> float:
        return self.pile_on + self.repeat_targeting + self.repeat_offender + self.velocity + self.victim_silencing


@dataclass(frozen=True, slots=True)
class ScoreMultipliers:
    targeting: float = 1.0
    public_shaming: float = 1.0
    friend_group: float = 1.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "targeting": self.targeting,
            "public_shaming": self.public_shaming,
            "friend_group": self.friend_group,
        }


@dataclass(frozen=True, slots=True)
class ScoreResult:
    """Final scoring outcome for one message.

    Attributes:
        base_score: Capped lexicon contribution.
        add_ons: Emoji-intensity points.
        multipliers: Targeting, public-shaming and friend-group multipliers.
        behavior_points: Temporal analyzer contribution.
        final_score: Rounded composite score after the critical floor.
        severity_tier: Tier derived from ``final_score``.
        categories: Detected categories.
        action: Recommended directive.
        stage: Layer that produced this result.
        critical_term: Term matched by the critical filter, if any.
        consensus: Ensemble outcome label, if the ensemble ran.
        escalation: Escalation verdict label, if one was applied.
        narrative_dampened: Lexicon score was dampened as narrative content.
    """

    base_score: float = 0.0
    add_ons: float = 0.0
    multipliers: ScoreMultipliers = field(default_factory=ScoreMultipliers)
    behavior_points: float = 0.0
    final_score: int = 0
    severity_tier: SeverityTier = SeverityTier.SAFE
    categories: Tuple[str, ...] = ()
    action: ActionDirective = ActionDirective.NONE
    stage: ScoringStage = ScoringStage.SCORED
    critical_term: str | None = None
    consensus: str | None = None
    escalation: str | None = None
    narrative_dampened: bool = False

    @classmethod
    def safe_unscored(cls) -> "ScoreResult":
        """Canonical result for traffic both classifiers agree is safe."""
        return cls(stage=ScoringStage.ENSEMBLE_SKIP, consensus="safe")

    def to_dict(self) -> dict:
        return {
            "base_score": self.base_score,
            "add_ons": self.add_ons,
            "multipliers": self.multipliers.to_dict(),
            "behavior_points": self.behavior_points,
            "final_score": self.final_score,
            "severity_tier": str(self.severity_tier),
            "categories": list(self.categories),
            "action": str(self.action),
            "stage": str(self.stage),
            "critical_term": self.critical_term,
            "consensus": self.consensus,
            "escalation": self.escalation,
            "narrative_dampened": self.narrative_dampened,
        }
