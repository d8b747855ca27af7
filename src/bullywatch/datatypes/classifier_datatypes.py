"""
Types crossing the external classifier boundary.

Key Features:
- `ClassifierVerdict`: safe / harmful / ambiguous verdict of the gate and second classifiers.
- `EscalationLabel`: harassment / banter / ambiguous verdict of the escalation classifier.
- `NarrativeLabel`: narrative / direct / ambiguous verdict of the narrative-context check.
- `ClassifierRequest` / `ClassifierResponse`: request and response envelopes.
- `ConsensusResult`: outcome of the ensemble voting table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple


class ClassifierVerdict(Enum):
    SAFE = "safe"
    HARMFUL = "harmful"
    AMBIGUOUS = "ambiguous"

    def __str__(self) -> str:
        return self.value


class EscalationLabel(Enum):
    HARASSMENT = "harassment"
    BANTER = "banter"
    AMBIGUOUS = "ambiguous"

    def __str__(self) -> str:
        return self.value


class NarrativeLabel(Enum):
    NARRATIVE = "narrative"
    DIRECT = "direct"
    AMBIGUOUS = "ambiguous"

    def __str__(self) -> str:
        return self.value


class ConsensusOutcome(Enum):
    """Row of the ensemble voting table that applied."""

    SAFE = "safe"
    HARMFUL = "harmful"
    DISAGREEMENT = "disagreement"
    AMBIGUOUS = "ambiguous"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ContextLine:
    """One message of an escalation context window, already pseudonymized."""

    speaker: str
    text: str
    is_target: bool = False


@dataclass(frozen=True, slots=True)
class ClassifierRequest:
    """Envelope sent to any external classifier.

    Attributes:
        system_instructions: System prompt for the model.
        user_prompt: Task prompt framing the message.
        message_text: The (normalized) message being judged.
        context_window: Optional surrounding messages with pseudonymous speakers.
    """

    system_instructions: str
    user_prompt: str
    message_text: str
    context_window: Tuple[ContextLine, ...] | None = None


@dataclass(frozen=True, slots=True)
class ClassifierResponse:
    """Parsed classifier answer.

    ``verdict`` holds a ``ClassifierVerdict`` for gate/second classifiers, an
    ``EscalationLabel`` for escalation calls and a ``NarrativeLabel`` for the
    narrative-context check.
    """

    verdict: ClassifierVerdict | EscalationLabel | NarrativeLabel
    confidence: float = 0.0
    reason: str = ""
    categories: List[str] = field(default_factory=list)
    adjusted_score: float | None = None

    @classmethod
    def ambiguous(
        cls, reason: str, label: ClassifierVerdict | EscalationLabel | NarrativeLabel = ClassifierVerdict.AMBIGUOUS
    ) -> "ClassifierResponse":
        """Fail-open response used on timeouts, transport errors and malformed output."""
        return cls(verdict=label, confidence=0.0, reason=reason)

    @property
    def is_ambiguous(self) -> bool:
        return self.verdict in (ClassifierVerdict.AMBIGUOUS, EscalationLabel.AMBIGUOUS, NarrativeLabel.AMBIGUOUS)


@dataclass(frozen=True, slots=True)
class ConsensusResult:
    """Outcome of one ensemble vote.

    Attributes:
        outcome: Voting table row that applied.
        skip_scoring: True only when both classifiers agreed on safe with
            confidence above the skip threshold.
        escalate: True when the classifiers disagreed (safe vs harmful).
        gate: Gate classifier response.
        second: Second classifier response.
    """

    outcome: ConsensusOutcome
    skip_scoring: bool
    escalate: bool
    gate: ClassifierResponse
    second: ClassifierResponse

    @property
    def categories(self) -> List[str]:
        merged = list(self.gate.categories)
        merged.extend(c for c in self.second.categories if c not in merged)
        return merged
