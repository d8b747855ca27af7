"""Parsing and validation of classifier responses.

Every parser is total: malformed, non-JSON or schema-violating output is
logged with its raw payload and mapped to an ambiguous response. Nothing here
raises into the pipeline.
"""

from __future__ import annotations

import json
from typing import Any, Dict

import jsonschema
from jsonschema import ValidationError

from bullywatch.datatypes.classifier_datatypes import (
    ClassifierResponse,
    ClassifierVerdict,
    EscalationLabel,
    NarrativeLabel,
)
from bullywatch.util.logger import get_logger

logger = get_logger("classifier_parsing")

MAX_LOGGED_PAYLOAD = 500
MIN_DECISIVE_CONFIDENCE = 0.5

_CONFIDENCE = {"type": "number", "minimum": 0, "maximum": 1}
_CATEGORIES = {"type": "array", "items": {"type": "string"}}

GATE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "verdict": {"type": "string", "enum": ["safe", "harmful", "ambiguous"]},
        "confidence": _CONFIDENCE,
        "reason": {"type": "string"},
        "categories": _CATEGORIES,
    },
    "required": ["verdict", "confidence", "reason", "categories"],
    "additionalProperties": False,
}

SENTIMENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "is_bullying": {"type": "boolean"},
        "confidence": _CONFIDENCE,
        "reason": {"type": "string"},
        "categories": _CATEGORIES,
    },
    "required": ["is_bullying", "confidence", "reason", "categories"],
    "additionalProperties": False,
}

ESCALATION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "verdict": {"type": "string", "enum": ["harassment", "banter", "ambiguous"]},
        "confidence": _CONFIDENCE,
        "adjusted_score": {"type": ["number", "null"], "minimum": 0},
        "reason": {"type": "string"},
    },
    "required": ["verdict", "confidence", "adjusted_score", "reason"],
    "additionalProperties": False,
}

NARRATIVE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "is_narrative": {"type": "boolean"},
        "confidence": _CONFIDENCE,
        "reason": {"type": "string"},
    },
    "required": ["is_narrative", "confidence", "reason"],
    "additionalProperties": False,
}


def _extract_json_payload(raw: str) -> Any:
    """Extract a JSON value from raw model text, tolerating Markdown code fences."""
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        return json.loads(text.strip())
    except json.JSONDecodeError as exc:
        raise ValueError("Failed to extract JSON payload") from exc


def _validated_payload(raw: str | None, schema: Dict[str, Any], source: str) -> Dict[str, Any] | None:
    if not raw:
        logger.warning("[PARSE] %s returned an empty response", source)
        return None
    try:
        payload = _extract_json_payload(raw)
    except ValueError:
        logger.error("[PARSE] %s returned non-JSON output: %r", source, raw[:MAX_LOGGED_PAYLOAD])
        return None
    try:
        jsonschema.validate(instance=payload, schema=schema)
    except ValidationError as exc:
        logger.error(
            "[PARSE] %s response failed validation (%s): %r", source, exc.message, raw[:MAX_LOGGED_PAYLOAD]
        )
        return None
    return payload


def parse_gate_response(raw: str | None, source: str = "gate") -> ClassifierResponse:
    """Parse a ``{verdict, confidence, reason, categories}`` answer."""
    payload = _validated_payload(raw, GATE_SCHEMA, source)
    if payload is None:
        return ClassifierResponse.ambiguous("malformed response")
    return ClassifierResponse(
        verdict=ClassifierVerdict(payload["verdict"]),
        confidence=float(payload["confidence"]),
        reason=payload["reason"],
        categories=list(payload["categories"]),
    )


def parse_sentiment_response(raw: str | None, source: str = "sentiment") -> ClassifierResponse:
    """Parse an ``{is_bullying, confidence, reason, categories}`` answer.

    A yes/no answer below 0.5 confidence is reported as ambiguous so it can
    never produce a decisive vote on its own.
    """
    payload = _validated_payload(raw, SENTIMENT_SCHEMA, source)
    if payload is None:
        return ClassifierResponse.ambiguous("malformed response")
    confidence = float(payload["confidence"])
    if confidence < MIN_DECISIVE_CONFIDENCE:
        verdict = ClassifierVerdict.AMBIGUOUS
    else:
        verdict = ClassifierVerdict.HARMFUL if payload["is_bullying"] else ClassifierVerdict.SAFE
    return ClassifierResponse(
        verdict=verdict,
        confidence=confidence,
        reason=payload["reason"],
        categories=list(payload["categories"]),
    )


def parse_escalation_response(raw: str | None, source: str = "escalation") -> ClassifierResponse:
    """Parse a ``{verdict, confidence, adjusted_score, reason}`` answer."""
    payload = _validated_payload(raw, ESCALATION_SCHEMA, source)
    if payload is None:
        return ClassifierResponse.ambiguous("malformed response", EscalationLabel.AMBIGUOUS)
    adjusted = payload["adjusted_score"]
    return ClassifierResponse(
        verdict=EscalationLabel(payload["verdict"]),
        confidence=float(payload["confidence"]),
        reason=payload["reason"],
        adjusted_score=float(adjusted) if adjusted is not None else None,
    )


def parse_narrative_response(raw: str | None, source: str = "narrative") -> ClassifierResponse:
    """Parse an ``{is_narrative, confidence, reason}`` answer.

    Malformed output is ambiguous, which never dampens a score.
    """
    payload = _validated_payload(raw, NARRATIVE_SCHEMA, source)
    if payload is None:
        return ClassifierResponse.ambiguous("malformed response", NarrativeLabel.AMBIGUOUS)
    return ClassifierResponse(
        verdict=NarrativeLabel.NARRATIVE if payload["is_narrative"] else NarrativeLabel.DIRECT,
        confidence=float(payload["confidence"]),
        reason=payload["reason"],
    )
