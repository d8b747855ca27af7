"""Severity tier and action directive mapping."""

from __future__ import annotations

from typing import Dict, Mapping

from bullywatch.datatypes.scoring_datatypes import ActionDirective, SeverityTier

TIER_ACTIONS: Dict[SeverityTier, ActionDirective] = {
    SeverityTier.SAFE: ActionDirective.NONE,
    SeverityTier.MONITOR: ActionDirective.LOG,
    SeverityTier.YELLOW: ActionDirective.ALERT,
    SeverityTier.ORANGE: ActionDirective.DELETE_AND_ALERT,
    SeverityTier.RED: ActionDirective.DELETE_ALERT_MUTE,
    SeverityTier.CRITICAL: ActionDirective.DELETE_ALERT_BAN,
}


def tier_for_score(score: float, thresholds: Mapping[SeverityTier, int]) -> SeverityTier:
    """Map a final score to its tier. Monotonic in ``score``.

    Args:
        score: Final composite score.
        thresholds: Lowest score of each tier above SAFE.
    """
    tier = SeverityTier.SAFE
    for candidate in sorted(thresholds):
        if score >= thresholds[candidate]:
            tier = candidate
    return tier


def recommend_action(tier: SeverityTier, *, monitor_mode: bool = False, self_harm: bool = False) -> ActionDirective:
    """Return the directive for a tier.

    Self-harm content always routes to urgent private intervention and is
    never deleted, whatever the tier or monitor mode.
    """
    if self_harm:
        return ActionDirective.URGENT_PRIVATE_INTERVENTION
    action = TIER_ACTIONS[tier]
    if monitor_mode and action.is_destructive:
        # Monitor mode keeps detection and alerting, drops delete/mute/ban.
        action = ActionDirective.ALERT
    return action
