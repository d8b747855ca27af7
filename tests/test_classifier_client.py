"""Tests for the OpenAI-backed classifier adapters."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from bullywatch.ai.classifier_client import (
    DisabledClassifier,
    EscalationClassifier,
    GateClassifier,
    NarrativeClassifier,
    SentimentClassifier,
)
from bullywatch.ai.rate_limiter import DailyBudget
from bullywatch.configuration.classifier_settings import ClassifierSettings
from bullywatch.datatypes.classifier_datatypes import (
    ClassifierVerdict,
    ContextLine,
    EscalationLabel,
    NarrativeLabel,
)


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def mock_client(content=None, side_effect=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion(content), side_effect=side_effect)
    return client


def settings(name="gate", **overrides):
    data = {"enabled": True, "model_name": "test-model", "timeout_seconds": 0.5}
    data.update(overrides)
    return ClassifierSettings(name, data)


@pytest.mark.asyncio
async def test_gate_parses_structured_output():
    payload = {"verdict": "harmful", "confidence": 0.9, "reason": "insult", "categories": ["insult"]}
    client = mock_client(json.dumps(payload))
    gate = GateClassifier(settings(), client=client)

    response = await gate.classify_text("you are such a loser")

    assert response.verdict is ClassifierVerdict.HARMFUL
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["response_format"]["type"] == "json_schema"
    assert kwargs["response_format"]["json_schema"]["name"] == "gate_verdict"
    assert kwargs["messages"][0]["role"] == "system"
    assert "you are such a loser" in kwargs["messages"][1]["content"]


@pytest.mark.asyncio
async def test_gate_short_text_is_safe_without_call():
    client = mock_client("{}")
    gate = GateClassifier(settings(), client=client)

    response = await gate.classify_text("ok")

    assert response.verdict is ClassifierVerdict.SAFE
    assert response.confidence == 1.0
    client.chat.completions.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_timeout_is_ambiguous():
    async def slow(**kwargs):
        await asyncio.sleep(1)
        return completion("{}")

    gate = GateClassifier(settings(timeout_seconds=0.01), client=mock_client(side_effect=slow))

    response = await gate.classify_text("this will never come back")

    assert response.verdict is ClassifierVerdict.AMBIGUOUS
    assert response.confidence == 0.0
    assert response.reason == "timeout"


@pytest.mark.asyncio
async def test_transport_error_is_ambiguous():
    gate = GateClassifier(settings(), client=mock_client(side_effect=ConnectionError("down")))
    response = await gate.classify_text("hello there everyone")
    assert response.verdict is ClassifierVerdict.AMBIGUOUS


@pytest.mark.asyncio
async def test_malformed_output_is_ambiguous():
    gate = GateClassifier(settings(), client=mock_client("I think it's fine"))
    response = await gate.classify_text("hello there everyone")
    assert response.verdict is ClassifierVerdict.AMBIGUOUS


@pytest.mark.asyncio
async def test_cancellation_propagates():
    started = asyncio.Event()

    async def hang(**kwargs):
        started.set()
        await asyncio.sleep(10)

    gate = GateClassifier(settings(timeout_seconds=30), client=mock_client(side_effect=hang))
    task = asyncio.create_task(gate.classify_text("waiting forever here"))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_sentiment_budget_blocks_calls():
    payload = {"is_bullying": False, "confidence": 0.95, "reason": "", "categories": []}
    client = mock_client(json.dumps(payload))
    second = SentimentClassifier(settings("second"), client=client, budget=DailyBudget(0.01, 0.006))

    first = await second.classify_text("a perfectly normal message")
    blocked = await second.classify_text("another perfectly normal message")

    assert first.verdict is ClassifierVerdict.SAFE
    assert blocked.verdict is ClassifierVerdict.AMBIGUOUS
    assert blocked.reason == "daily budget exhausted"
    assert client.chat.completions.create.await_count == 1


@pytest.mark.asyncio
async def test_escalation_sends_context_and_fails_open_with_label():
    client = mock_client("nonsense")
    escalation = EscalationClassifier(settings("escalation"), client=client)
    request = escalation.build_request(
        "you are trash",
        context=[ContextLine("user_aaaaaa", "hey"), ContextLine("user_bbbbbb", "you are trash", is_target=True)],
        user_prompt="score is 9",
    )

    response = await escalation.classify(request)

    assert response.verdict is EscalationLabel.AMBIGUOUS
    user_content = client.chat.completions.create.await_args.kwargs["messages"][1]["content"]
    assert user_content.startswith("score is 9")
    assert "user_aaaaaa" in user_content
    assert '"is_marked_message": true' in user_content


@pytest.mark.asyncio
async def test_narrative_classifier_verdicts():
    payload = {"is_narrative": True, "confidence": 0.9, "reason": "describes a film"}
    client = mock_client(json.dumps(payload))
    narrative = NarrativeClassifier(settings("narrative"), client=client)

    response = await narrative.classify_text("in the movie the killer wanted to murder everyone")

    assert response.verdict is NarrativeLabel.NARRATIVE
    assert response.confidence == pytest.approx(0.9)
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["response_format"]["json_schema"]["name"] == "narrative_context"


@pytest.mark.asyncio
async def test_narrative_classifier_fails_open_with_its_label():
    narrative = NarrativeClassifier(settings("narrative"), client=mock_client(side_effect=RuntimeError("down")))
    response = await narrative.classify_text("i will murder you")
    assert response.verdict is NarrativeLabel.AMBIGUOUS
    assert response.is_ambiguous


def test_prompt_override_from_settings():
    gate = GateClassifier(settings(system_prompt="custom system"), client=mock_client("{}"))
    assert gate.system_prompt == "custom system"


@pytest.mark.asyncio
async def test_disabled_classifier_is_ambiguous():
    response = await DisabledClassifier("gate").classify_text("anything at all")
    assert response.is_ambiguous
