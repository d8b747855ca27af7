"""
Message moderation pipeline.

One ``ModerationPipeline`` instance is built at process start (see
``pipeline_factory.build_pipeline``) and shared by every message. For each
message it runs:

1. Normalization.
2. Critical-term filter. A match ends processing with a CRITICAL result.
3. Ensemble vote (gate + second classifier, concurrent). Confident agreement
   on "safe" ends processing with the canonical unscored result.
4. Lexicon scoring. A high base score is checked for narrative context
   (a film, story or news item) and dampened when the check is confident.
5. Under the group lock and then the sender lock: temporal signals,
   friend-group multiplier, composite score, optional escalation, and finally
   the commit of the message into the group window and the sender's history.

Every stage failure is contained: the worst case is a lexicon-only score, or
a MONITOR/log result when even that fails. Cancellation is never swallowed.
"""

from __future__ import annotations

import dataclasses

from bullywatch.ai.classifier_client import Classifier
from bullywatch.ai.ensemble_consensus import EnsembleConsensus
from bullywatch.ai.escalation_service import EscalationService
from bullywatch.configuration.pipeline_settings import ScoringSettings
from bullywatch.datatypes.classifier_datatypes import (
    ClassifierResponse,
    ConsensusOutcome,
    ConsensusResult,
    NarrativeLabel,
)
from bullywatch.datatypes.message_datatypes import GroupContext, Message
from bullywatch.datatypes.scoring_datatypes import (
    ActionDirective,
    LexiconResult,
    ScoreResult,
    ScoringStage,
    SeverityTier,
)
from bullywatch.detection.context_signals import extract_target
from bullywatch.detection.critical_term_filter import CriticalCheckResult, CriticalTermFilter
from bullywatch.detection.lexicon_scorer import LexiconScorer
from bullywatch.detection.temporal_analyzer import TemporalAnalyzer
from bullywatch.normalization.text_normalizer import normalize
from bullywatch.scoring.action_policy import recommend_action
from bullywatch.scoring.composite_scorer import CompositeScorer, round_half_up
from bullywatch.services.sender_history_service import SenderHistoryService
from bullywatch.services.whitelist_service import WhitelistService
from bullywatch.util.keyed_lock import KeyedLockRegistry
from bullywatch.util.logger import get_logger

logger = get_logger("moderation_pipeline")

PERSISTED_HISTORY_TIER = SeverityTier.YELLOW


class ModerationPipeline:
    """Scores messages end to end.

    All collaborators are injected, so tests can swap any of them for mocks.
    """

    def __init__(
        self,
        *,
        settings: ScoringSettings,
        critical_filter: CriticalTermFilter,
        ensemble: EnsembleConsensus,
        lexicon: LexiconScorer,
        temporal: TemporalAnalyzer,
        composite: CompositeScorer,
        whitelist: WhitelistService,
        history: SenderHistoryService,
        escalation: EscalationService | None = None,
        narrative: Classifier | None = None,
    ) -> None:
        self.settings = settings
        self.critical_filter = critical_filter
        self.ensemble = ensemble
        self.lexicon = lexicon
        self.temporal = temporal
        self.composite = composite
        self.whitelist = whitelist
        self.history = history
        self.escalation = escalation
        self.narrative = narrative
        self._group_locks = KeyedLockRegistry("group")
        self._sender_locks = KeyedLockRegistry("sender")

    def monitor_mode_for(self, context: GroupContext) -> bool:
        return self.settings.monitor_mode or context.monitor_mode

    async def process(self, message: Message, group_context: GroupContext | None = None) -> ScoreResult:
        """Score one message.

        Args:
            message: Incoming message.
            group_context: Group size, whitelist and monitor-mode flags.

        Returns:
            The score, tier and recommended action. Never raises except on
            cancellation.
        """
        context = group_context or GroupContext()
        monitor_mode = self.monitor_mode_for(context)
        normalized = normalize(message.text)

        try:
            critical = self.critical_filter.check(normalized)
            if critical.is_critical:
                return self._critical_result(message, critical, monitor_mode)

            consensus = await self._vote(normalized)
            if consensus.skip_scoring:
                logger.debug("[PIPELINE] %s skipped by confident safe consensus", message.id)
                return ScoreResult.safe_unscored()

            result = await self._score(message, normalized, context, consensus, monitor_mode)
        except Exception:
            logger.exception("[PIPELINE] Scoring failed for message %s, using fallback", message.id)
            return self._fallback(normalized, monitor_mode)

        await self._after_scoring(message, normalized, consensus, result)
        return result

    def _critical_result(self, message: Message, critical: CriticalCheckResult, monitor_mode: bool) -> ScoreResult:
        logger.warning(
            "[PIPELINE] Critical term (%s) in message %s from sender %s",
            critical.category, message.id, message.sender_id,
        )
        return ScoreResult(
            final_score=self.settings.critical_result_score,
            severity_tier=SeverityTier.CRITICAL,
            categories=(critical.category,) if critical.category else (),
            action=recommend_action(SeverityTier.CRITICAL, monitor_mode=monitor_mode, self_harm=critical.is_self_harm),
            stage=ScoringStage.CRITICAL_FILTER,
            critical_term=critical.term,
        )

    async def _vote(self, normalized: str) -> ConsensusResult:
        try:
            return await self.ensemble.vote(normalized)
        except Exception as exc:
            logger.error("[PIPELINE] Ensemble vote failed, continuing with rules only: %s", exc)
            ambiguous = ClassifierResponse.ambiguous("ensemble error")
            return ConsensusResult(ConsensusOutcome.AMBIGUOUS, False, False, ambiguous, ambiguous)

    async def _score(
        self,
        message: Message,
        normalized: str,
        context: GroupContext,
        consensus: ConsensusResult,
        monitor_mode: bool,
    ) -> ScoreResult:
        lexicon = await self._dampen_narrative(message, normalized, self.lexicon.score(normalized))
        async with self._group_locks.hold(message.group_id):
            async with self._sender_locks.hold(message.sender_id):
                await self.history.ensure_loaded(message.sender_id)
                target_id = extract_target(message, normalized)
                signals = self.temporal.observe(message, lexicon.categories, target_id, lexicon.base_score)
                friend_group = await self.whitelist.friend_group_multiplier(message.group_id, context)

                result = self.composite.score(
                    lexicon,
                    normalized,
                    message=message,
                    signals=signals,
                    friend_group=friend_group,
                    monitor_mode=monitor_mode,
                )
                result = dataclasses.replace(result, consensus=str(consensus.outcome))
                result = await self._maybe_escalate(message, result, consensus, monitor_mode)

                self.temporal.commit(message, lexicon.categories, target_id, result.severity_tier, lexicon.base_score)
                return result

    async def _dampen_narrative(self, message: Message, normalized: str, lexicon: LexiconResult) -> LexiconResult:
        """Scale down a high lexicon score when the message describes rather than attacks.

        Any failure or unconfident answer keeps the score as it is.
        """
        s = self.settings
        if self.narrative is None or lexicon.base_score < s.narrative_check_score:
            return lexicon
        try:
            response = await self.narrative.classify_text(normalized)
        except Exception as exc:
            logger.error("[PIPELINE] Narrative check failed for %s, keeping base score: %s", message.id, exc)
            return lexicon
        if response.verdict is not NarrativeLabel.NARRATIVE or response.confidence <= s.narrative_confidence:
            return lexicon
        dampened = float(round_half_up(lexicon.base_score * s.narrative_dampening))
        logger.info(
            "[PIPELINE] %s reads as narrative (%s): base %.1f -> %.1f",
            message.id, response.reason, lexicon.base_score, dampened,
        )
        return dataclasses.replace(lexicon, base_score=dampened, narrative_dampened=True)

    async def _maybe_escalate(
        self, message: Message, result: ScoreResult, consensus: ConsensusResult, monitor_mode: bool
    ) -> ScoreResult:
        if self.escalation is None or not self.escalation.should_escalate(result, consensus.escalate):
            return result
        try:
            response = await self.escalation.escalate(message, self.temporal.window(message.group_id), result)
        except Exception as exc:
            logger.error("[PIPELINE] Escalation failed for %s, keeping score %d: %s", message.id, result.final_score, exc)
            return result
        return self.escalation.apply(result, response, self.composite, monitor_mode=monitor_mode)

    async def _after_scoring(
        self, message: Message, normalized: str, consensus: ConsensusResult, result: ScoreResult
    ) -> None:
        if result.severity_tier >= PERSISTED_HISTORY_TIER:
            try:
                await self.history.save(message.sender_id)
            except Exception as exc:
                logger.warning("[PIPELINE] Could not persist history for %s: %s", message.sender_id, exc)
        if consensus.outcome is ConsensusOutcome.HARMFUL and not result.categories:
            await self.ensemble.record_lexicon_gap(normalized, consensus.categories)
        if result.severity_tier > SeverityTier.SAFE:
            logger.info(
                "[PIPELINE] %s scored %d (%s) -> %s [%s]",
                message.id, result.final_score, result.severity_tier, result.action, ", ".join(result.categories),
            )

    def _fallback(self, normalized: str, monitor_mode: bool) -> ScoreResult:
        try:
            lexicon = self.lexicon.score(normalized)
            result = self.composite.score(lexicon, normalized, monitor_mode=monitor_mode)
            return dataclasses.replace(result, stage=ScoringStage.FALLBACK)
        except Exception:
            logger.exception("[PIPELINE] Lexicon-only fallback failed, returning monitor result")
        return ScoreResult(
            final_score=self.settings.tier_thresholds[SeverityTier.MONITOR],
            severity_tier=SeverityTier.MONITOR,
            action=ActionDirective.LOG,
            stage=ScoringStage.FALLBACK,
        )
