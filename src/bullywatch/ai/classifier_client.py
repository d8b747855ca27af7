"""
External classifier adapters.

All four classifiers talk to an OpenAI-compatible chat-completions endpoint
through ``AsyncOpenAI`` and request JSON-schema structured output:

- ``GateClassifier``: cheap safe / harmful / ambiguous gate.
- ``SentimentClassifier``: independent second opinion with its own prompt,
  schema and daily spend cap.
- ``EscalationClassifier``: harassment / banter / ambiguous tiebreaker that
  sees a pseudonymized context window.
- ``NarrativeClassifier``: tells messages that describe a film, story or news
  item apart from direct threats, for high lexicon scores only.

Every call carries a deadline. Timeouts, transport errors and malformed
output all yield an ambiguous response with confidence 0; cancellation is
never swallowed.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionMessageParam
from openai.types.shared_params.response_format_json_schema import ResponseFormatJSONSchema

from bullywatch.ai import classifier_parsing, prompts
from bullywatch.ai.rate_limiter import DailyBudget
from bullywatch.configuration.classifier_settings import ClassifierSettings
from bullywatch.datatypes.classifier_datatypes import (
    ClassifierRequest,
    ClassifierResponse,
    ClassifierVerdict,
    ContextLine,
    EscalationLabel,
    NarrativeLabel,
)
from bullywatch.util.logger import get_logger

logger = get_logger("classifier_client")

SHORT_TEXT_LENGTH = 5


class Classifier(ABC):
    """Anything that can judge a message through the classifier boundary."""

    name: str = "classifier"
    system_prompt: str = ""
    user_prompt: str = ""

    def build_request(
        self, text: str, context: Sequence[ContextLine] | None = None, user_prompt: str | None = None
    ) -> ClassifierRequest:
        return ClassifierRequest(
            system_instructions=self.system_prompt,
            user_prompt=user_prompt if user_prompt is not None else self.user_prompt,
            message_text=text,
            context_window=tuple(context) if context is not None else None,
        )

    async def classify_text(self, text: str) -> ClassifierResponse:
        return await self.classify(self.build_request(text))

    @abstractmethod
    async def classify(self, request: ClassifierRequest) -> ClassifierResponse:
        """Judge one request. Implementations must not raise on bad output."""


class OpenAIChatClassifier(Classifier):
    """
    Chat-completions classifier with structured output and a hard deadline.

    Subclasses provide the prompts, the response schema and the parser.

    Args:
        settings: Endpoint, model and timeout for this classifier.
        client: Pre-built client (shared or mocked); one is created from the
            settings when omitted.
    """

    schema_name: str = "classification"
    schema: Dict[str, Any] = {}
    default_system_prompt: str = ""
    default_user_prompt: str = ""

    def __init__(self, settings: ClassifierSettings, client: AsyncOpenAI | None = None) -> None:
        self.settings = settings
        self.name = settings.name
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            max_retries=0,
        )
        self._model_name = settings.model_name
        self.system_prompt = str(settings.get("system_prompt") or self.default_system_prompt)
        self.user_prompt = str(settings.get("user_prompt") or self.default_user_prompt)
        logger.info(
            "[CLASSIFIER] Initialized %s with base_url=%s, model=%s, timeout=%.1fs",
            self.name, settings.base_url, self._model_name, settings.timeout_seconds,
        )

    @abstractmethod
    def parse(self, raw: str | None) -> ClassifierResponse:
        """Turn raw model output into a response (ambiguous when malformed)."""

    def fail_open(self, reason: str) -> ClassifierResponse:
        return ClassifierResponse.ambiguous(reason)

    def build_messages(self, request: ClassifierRequest) -> List[ChatCompletionMessageParam]:
        payload: Dict[str, Any] = {"message": request.message_text}
        if request.context_window is not None:
            payload["context"] = [
                {"speaker": line.speaker, "text": line.text, "is_marked_message": line.is_target}
                for line in request.context_window
            ]
        return [
            {"role": "system", "content": request.system_instructions},
            {"role": "user", "content": f"{request.user_prompt}\n\n{json.dumps(payload, ensure_ascii=False)}"},
        ]

    async def _complete(self, request: ClassifierRequest) -> str:
        response_format = ResponseFormatJSONSchema(
            type="json_schema",
            json_schema={
                "name": self.schema_name,
                "strict": False,
                "schema": self.schema,
            },
        )
        response = await self._client.chat.completions.create(
            model=self._model_name,
            messages=self.build_messages(request),
            response_format=response_format,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )
        return (response.choices[0].message.content or "").strip()

    async def classify(self, request: ClassifierRequest) -> ClassifierResponse:
        try:
            raw = await asyncio.wait_for(self._complete(request), timeout=self.settings.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("[CLASSIFIER] %s timed out after %.1fs", self.name, self.settings.timeout_seconds)
            return self.fail_open("timeout")
        except Exception as exc:
            logger.error("[CLASSIFIER] %s request failed: %s", self.name, exc)
            return self.fail_open("request failed")
        return self.parse(raw)


class GateClassifier(OpenAIChatClassifier):
    """Cheap first-pass classifier. Very short texts are judged safe locally."""

    schema_name = "gate_verdict"
    schema = classifier_parsing.GATE_SCHEMA
    default_system_prompt = prompts.GATE_SYSTEM_PROMPT
    default_user_prompt = prompts.GATE_USER_PROMPT

    def parse(self, raw: str | None) -> ClassifierResponse:
        return classifier_parsing.parse_gate_response(raw, self.name)

    async def classify(self, request: ClassifierRequest) -> ClassifierResponse:
        if len(request.message_text.strip()) < SHORT_TEXT_LENGTH:
            return ClassifierResponse(verdict=ClassifierVerdict.SAFE, confidence=1.0, reason="too short")
        return await super().classify(request)


class SentimentClassifier(OpenAIChatClassifier):
    """Independent second classifier with a daily spend cap."""

    schema_name = "bullying_sentiment"
    schema = classifier_parsing.SENTIMENT_SCHEMA
    default_system_prompt = prompts.SENTIMENT_SYSTEM_PROMPT
    default_user_prompt = prompts.SENTIMENT_USER_PROMPT

    def __init__(
        self,
        settings: ClassifierSettings,
        client: AsyncOpenAI | None = None,
        budget: DailyBudget | None = None,
    ) -> None:
        super().__init__(settings, client)
        self.budget = budget or DailyBudget(settings.daily_budget, settings.cost_per_call)

    def parse(self, raw: str | None) -> ClassifierResponse:
        return classifier_parsing.parse_sentiment_response(raw, self.name)

    async def classify(self, request: ClassifierRequest) -> ClassifierResponse:
        if not self.budget.try_spend():
            return self.fail_open("daily budget exhausted")
        return await super().classify(request)


class EscalationClassifier(OpenAIChatClassifier):
    """Context-aware tiebreaker for borderline scores."""

    schema_name = "escalation_verdict"
    schema = classifier_parsing.ESCALATION_SCHEMA
    default_system_prompt = prompts.ESCALATION_SYSTEM_PROMPT
    default_user_prompt = prompts.ESCALATION_USER_PROMPT

    def parse(self, raw: str | None) -> ClassifierResponse:
        return classifier_parsing.parse_escalation_response(raw, self.name)

    def fail_open(self, reason: str) -> ClassifierResponse:
        return ClassifierResponse.ambiguous(reason, EscalationLabel.AMBIGUOUS)


class NarrativeClassifier(OpenAIChatClassifier):
    schema_name = "narrative_context"
    schema = classifier_parsing.NARRATIVE_SCHEMA
    default_system_prompt = prompts.NARRATIVE_SYSTEM_PROMPT
    default_user_prompt = prompts.NARRATIVE_USER_PROMPT

    def parse(self, raw: str | None) -> ClassifierResponse:
        return classifier_parsing.parse_narrative_response(raw, self.name)

    def fail_open(self, reason: str) -> ClassifierResponse:
        return ClassifierResponse.ambiguous(reason, NarrativeLabel.AMBIGUOUS)


class DisabledClassifier(Classifier):
    """Stand-in for a classifier switched off in the configuration. Always ambiguous."""

    def __init__(self, name: str) -> None:
        self.name = name

    async def classify(self, request: ClassifierRequest) -> ClassifierResponse:
        return ClassifierResponse.ambiguous("classifier disabled")
