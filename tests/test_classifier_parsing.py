"""Tests for classifier_parsing module."""

import json

import pytest

from bullywatch.ai.classifier_parsing import (
    parse_escalation_response,
    parse_gate_response,
    parse_narrative_response,
    parse_sentiment_response,
)
from bullywatch.datatypes.classifier_datatypes import ClassifierVerdict, EscalationLabel, NarrativeLabel


class TestParseGateResponse:
    def test_valid_payload(self):
        raw = json.dumps({"verdict": "harmful", "confidence": 0.92, "reason": "insult", "categories": ["insult"]})
        response = parse_gate_response(raw)
        assert response.verdict is ClassifierVerdict.HARMFUL
        assert response.confidence == pytest.approx(0.92)
        assert response.categories == ["insult"]

    def test_code_fenced_payload(self):
        raw = "```json\n" + json.dumps({"verdict": "safe", "confidence": 1, "reason": "", "categories": []}) + "\n```"
        assert parse_gate_response(raw).verdict is ClassifierVerdict.SAFE

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "",
            "not json at all",
            json.dumps({"verdict": "safe"}),
            json.dumps({"verdict": "maybe", "confidence": 0.5, "reason": "", "categories": []}),
            json.dumps({"verdict": "safe", "confidence": 1.5, "reason": "", "categories": []}),
            json.dumps([1, 2, 3]),
        ],
    )
    def test_malformed_is_ambiguous(self, raw):
        response = parse_gate_response(raw)
        assert response.verdict is ClassifierVerdict.AMBIGUOUS
        assert response.confidence == 0.0


class TestParseSentimentResponse:
    def test_bullying_maps_to_harmful(self):
        raw = json.dumps({"is_bullying": True, "confidence": 0.8, "reason": "", "categories": []})
        assert parse_sentiment_response(raw).verdict is ClassifierVerdict.HARMFUL

    def test_not_bullying_maps_to_safe(self):
        raw = json.dumps({"is_bullying": False, "confidence": 0.9, "reason": "", "categories": []})
        assert parse_sentiment_response(raw).verdict is ClassifierVerdict.SAFE

    def test_low_confidence_is_ambiguous(self):
        raw = json.dumps({"is_bullying": True, "confidence": 0.3, "reason": "", "categories": []})
        response = parse_sentiment_response(raw)
        assert response.verdict is ClassifierVerdict.AMBIGUOUS
        assert response.confidence == pytest.approx(0.3)


class TestParseEscalationResponse:
    def test_valid_payload(self):
        raw = json.dumps({"verdict": "harassment", "confidence": 0.9, "adjusted_score": 14, "reason": "targeted"})
        response = parse_escalation_response(raw)
        assert response.verdict is EscalationLabel.HARASSMENT
        assert response.adjusted_score == 14.0

    def test_null_adjusted_score(self):
        raw = json.dumps({"verdict": "banter", "confidence": 0.75, "adjusted_score": None, "reason": "friends"})
        response = parse_escalation_response(raw)
        assert response.verdict is EscalationLabel.BANTER
        assert response.adjusted_score is None

    def test_malformed_is_ambiguous_label(self):
        response = parse_escalation_response("{oops")
        assert response.verdict is EscalationLabel.AMBIGUOUS
        assert response.is_ambiguous


class TestParseNarrativeResponse:
    @pytest.mark.parametrize("is_narrative, label", [(True, NarrativeLabel.NARRATIVE), (False, NarrativeLabel.DIRECT)])
    def test_valid_payload(self, is_narrative, label):
        raw = json.dumps({"is_narrative": is_narrative, "confidence": 0.8, "reason": "news report"})
        response = parse_narrative_response(raw)
        assert response.verdict is label
        assert response.confidence == pytest.approx(0.8)
        assert response.reason == "news report"

    @pytest.mark.parametrize(
        "raw",
        [None, "{", json.dumps({"is_narrative": "yes", "confidence": 0.9, "reason": ""}), json.dumps({"confidence": 1})],
    )
    def test_malformed_is_ambiguous(self, raw):
        response = parse_narrative_response(raw)
        assert response.verdict is NarrativeLabel.AMBIGUOUS
        assert response.confidence == 0.0
