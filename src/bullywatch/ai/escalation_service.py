"""
Escalation to the context-aware tiebreaker classifier.

Borderline scores (the ambiguous band) and ensemble disagreements are sent,
with a pseudonymized window of surrounding messages, to the escalation
classifier. Its verdict can downgrade friendly banter to monitoring or raise
confirmed harassment; it never lowers critical content or self-harm.
"""

from __future__ import annotations

import time
from typing import Callable, List

from bullywatch.ai.classifier_client import Classifier
from bullywatch.ai.rate_limiter import SlidingWindowRateLimiter
from bullywatch.configuration.pipeline_settings import EscalationSettings
from bullywatch.datatypes.classifier_datatypes import ClassifierResponse, ContextLine, EscalationLabel
from bullywatch.datatypes.message_datatypes import Message
from bullywatch.datatypes.scoring_datatypes import ScoreResult, SeverityTier
from bullywatch.detection.context_signals import MENTION_RE
from bullywatch.detection.lexicon_tables import SELF_HARM
from bullywatch.detection.temporal_analyzer import ConversationWindow
from bullywatch.scoring.composite_scorer import CompositeScorer, has_critical_category, round_half_up
from bullywatch.util.hashing import pseudonym_label
from bullywatch.util.logger import get_logger

logger = get_logger("escalation_service")

RATE_LIMIT_PERIOD = 3600.0


class EscalationService:
    """
    Gate, build and interpret escalation calls.

    Args:
        classifier: Escalation classifier.
        settings: Band, context size, rate limit and confidence thresholds.
        clock: Time source for the per-sender rate limiter.
    """

    def __init__(
        self,
        classifier: Classifier,
        settings: EscalationSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.classifier = classifier
        self.settings = settings or EscalationSettings()
        self.rate_limiter = SlidingWindowRateLimiter(self.settings.max_calls_per_hour, RATE_LIMIT_PERIOD, clock)

    def in_band(self, score: int) -> bool:
        return self.settings.band_low <= score <= self.settings.band_high

    def should_escalate(self, result: ScoreResult, disagreement: bool = False) -> bool:
        """Borderline scores escalate; so does any ensemble disagreement."""
        return disagreement or self.in_band(result.final_score)

    def _label(self, sender_id: str) -> str:
        return pseudonym_label(sender_id, self.settings.pseudonym_salt)

    def pseudonymize(self, text: str) -> str:
        """Replace ``@identifier`` mentions with the mentioned sender's label."""
        return MENTION_RE.sub(lambda m: "@" + self._label(m.group(1)), text.casefold())

    def build_context(self, window: ConversationWindow, message: Message) -> List[ContextLine]:
        """Collect the surrounding messages with pseudonymous speakers.

        The current message is included and marked. Messages are scored before
        they are committed, so nothing in the window can follow the current
        message yet: the window is one-sided and ``context_after`` only matters
        when rebuilding context for a message that was already committed.
        """
        before, after = window.context_around(message.id, self.settings.context_before, self.settings.context_after)
        lines = [ContextLine(self._label(e.sender_id), self.pseudonymize(e.text)) for e in before]
        text = message.text if isinstance(message.text, str) else ""
        lines.append(ContextLine(self._label(message.sender_id), self.pseudonymize(text), is_target=True))
        lines.extend(ContextLine(self._label(e.sender_id), self.pseudonymize(e.text)) for e in after)
        return lines

    async def escalate(
        self, message: Message, window: ConversationWindow, result: ScoreResult
    ) -> ClassifierResponse | None:
        """Ask the escalation classifier about ``message``.

        Returns:
            The classifier's response, or None when the sender is rate limited.
        """
        if not self.rate_limiter.try_acquire(message.sender_id):
            logger.info("[ESCALATION] Rate limit reached for sender %s; keeping score %d",
                        self._label(message.sender_id), result.final_score)
            return None
        text = message.text if isinstance(message.text, str) else ""
        request = self.classifier.build_request(
            self.pseudonymize(text),
            context=self.build_context(window, message),
            user_prompt=self.classifier.user_prompt.format(score=result.final_score),
        )
        response = await self.classifier.classify(request)
        logger.info(
            "[ESCALATION] %s: verdict=%s confidence=%.2f adjusted=%s",
            message.id, response.verdict, response.confidence, response.adjusted_score,
        )
        return response

    def apply(
        self,
        result: ScoreResult,
        response: ClassifierResponse | None,
        scorer: CompositeScorer,
        *,
        monitor_mode: bool,
    ) -> ScoreResult:
        """Fold an escalation verdict into a scored result.

        Banter above the banter threshold caps the result at MONITOR, except
        for critical categories and self-harm. Harassment above its threshold
        takes the higher of the two scores and at least YELLOW. Anything else
        leaves the result unchanged.
        """
        if response is None or response.is_ambiguous:
            return result
        s = self.settings

        if response.verdict is EscalationLabel.BANTER and response.confidence >= s.banter_confidence:
            if has_critical_category(result.categories) or SELF_HARM in result.categories:
                logger.info("[ESCALATION] Ignoring banter verdict for critical content")
                return result
            monitor_ceiling = scorer.settings.tier_thresholds[SeverityTier.YELLOW] - 1
            return scorer.adjust(
                result,
                min(result.final_score, monitor_ceiling),
                monitor_mode=monitor_mode,
                max_tier=SeverityTier.MONITOR,
                escalation=str(EscalationLabel.BANTER),
            )

        if response.verdict is EscalationLabel.HARASSMENT and response.confidence >= s.harassment_confidence:
            adjusted = result.final_score
            if response.adjusted_score is not None:
                adjusted = max(adjusted, round_half_up(response.adjusted_score))
            return scorer.adjust(
                result,
                adjusted,
                monitor_mode=monitor_mode,
                min_tier=SeverityTier.YELLOW,
                escalation=str(EscalationLabel.HARASSMENT),
            )

        return result
