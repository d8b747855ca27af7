"""
Composite scoring formula.

Applied in this exact order::

    raw   = (base + add_ons) * targeting * public_shaming * friend_group
    final = round(raw + behavior_points)
    if any category in CRITICAL_CATEGORIES: final = max(final, critical_floor)

The critical floor is applied after all multiplier arithmetic, so dampening
multipliers can never pull the most dangerous content under the floor.
"""

from __future__ import annotations

import dataclasses
import math
from typing import Iterable

from bullywatch.configuration.pipeline_settings import ScoringSettings
from bullywatch.datatypes.message_datatypes import Message
from bullywatch.datatypes.scoring_datatypes import (
    LexiconResult,
    ScoreMultipliers,
    ScoreResult,
    ScoringStage,
    SeverityTier,
    TemporalSignals,
)
from bullywatch.detection import context_signals
from bullywatch.detection.lexicon_tables import CRITICAL_CATEGORIES, SELF_HARM
from bullywatch.scoring.action_policy import recommend_action, tier_for_score
from bullywatch.util.logger import get_logger

logger = get_logger("composite_scorer")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def has_critical_category(categories: Iterable[str]) -> bool:
    return any(c in CRITICAL_CATEGORIES for c in categories)


class CompositeScorer:
    """Combine lexicon, context and temporal signals into a ScoreResult.

    Args:
        settings: Multipliers, tier thresholds and the critical floor.
    """

    def __init__(self, settings: ScoringSettings | None = None) -> None:
        self.settings = settings or ScoringSettings()

    @property
    def floor_tier(self) -> SeverityTier:
        return tier_for_score(self.settings.critical_floor, self.settings.tier_thresholds)

    def multipliers(self, normalized_text: str, message: Message | None, friend_group: float) -> ScoreMultipliers:
        s = self.settings
        return ScoreMultipliers(
            targeting=s.targeting_multiplier if context_signals.is_direct_address(normalized_text, message) else 1.0,
            public_shaming=s.public_shaming_multiplier if context_signals.is_public_shaming(normalized_text) else 1.0,
            friend_group=friend_group,
        )

    def score(
        self,
        lexicon: LexiconResult,
        normalized_text: str,
        message: Message | None = None,
        signals: TemporalSignals | None = None,
        friend_group: float = 1.0,
        monitor_mode: bool = False,
    ) -> ScoreResult:
        """Compute the composite score of one message.

        Args:
            lexicon: Lexicon scorer output.
            normalized_text: Normalized message text.
            message: The message, used for quoted-sender targeting.
            signals: Temporal analyzer output (behavior points).
            friend_group: Friend-group multiplier (1.0 when not whitelisted).
            monitor_mode: Effective monitor mode for this message.

        Returns:
            The scored result with tier and recommended action.
        """
        signals = signals or TemporalSignals()
        add_ons = context_signals.emoji_intensity(normalized_text, self.settings.emoji_add_on_cap)
        multipliers = self.multipliers(normalized_text, message, friend_group)

        raw = (lexicon.base_score + add_ons) * multipliers.targeting * multipliers.public_shaming * multipliers.friend_group
        final = round_half_up(raw + signals.total)

        critical = has_critical_category(lexicon.categories)
        if critical and final < self.settings.critical_floor:
            logger.info("[SCORING] Critical floor raised score %d -> %d", final, self.settings.critical_floor)
            final = self.settings.critical_floor

        tier = tier_for_score(final, self.settings.tier_thresholds)
        if critical:
            tier = max(tier, self.floor_tier)

        self_harm = SELF_HARM in lexicon.categories
        return ScoreResult(
            base_score=lexicon.base_score,
            add_ons=add_ons,
            multipliers=multipliers,
            behavior_points=signals.total,
            final_score=final,
            severity_tier=tier,
            categories=lexicon.categories,
            action=recommend_action(tier, monitor_mode=monitor_mode, self_harm=self_harm),
            stage=ScoringStage.SCORED,
            narrative_dampened=lexicon.narrative_dampened,
        )

    def adjust(
        self,
        result: ScoreResult,
        final_score: int,
        *,
        monitor_mode: bool,
        min_tier: SeverityTier | None = None,
        max_tier: SeverityTier | None = None,
        escalation: str | None = None,
    ) -> ScoreResult:
        """Return ``result`` re-tiered around a new final score.

        The critical floor and the self-harm routing are re-applied, so an
        adjustment can never lower critical content below the floor tier.
        """
        critical = has_critical_category(result.categories)
        if critical:
            final_score = max(final_score, self.settings.critical_floor)

        tier = tier_for_score(final_score, self.settings.tier_thresholds)
        if max_tier is not None:
            tier = min(tier, max_tier)
        if min_tier is not None:
            tier = max(tier, min_tier)
        if critical:
            tier = max(tier, self.floor_tier)

        return dataclasses.replace(
            result,
            final_score=final_score,
            severity_tier=tier,
            action=recommend_action(tier, monitor_mode=monitor_mode, self_harm=SELF_HARM in result.categories),
            escalation=escalation if escalation is not None else result.escalation,
        )
