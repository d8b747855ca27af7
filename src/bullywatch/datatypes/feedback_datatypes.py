"""Human review records and the metrics derived from them."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

from bullywatch.datatypes.message_datatypes import GroupID, MessageID


class FeedbackVerdict(Enum):
    TRUE_POSITIVE = "true_positive"
    FALSE_POSITIVE = "false_positive"
    TRUE_NEGATIVE = "true_negative"
    FALSE_NEGATIVE = "false_negative"
    UNCERTAIN = "uncertain"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class FeedbackRecord:
    """A reviewer's verdict on a previously scored message.

    Attributes:
        message_id: Message that was reviewed.
        verdict: Reviewer verdict.
        category: Lexicon category the original score was attributed to.
        original_score: Final score the pipeline produced.
        group_id: Group the message came from, if known.
        reviewer_id: Reviewer identifier, if known.
        recorded_at: Epoch seconds when the verdict was recorded.
    """

    message_id: MessageID
    verdict: FeedbackVerdict
    category: str
    original_score: float
    group_id: GroupID | None = None
    reviewer_id: str | None = None
    recorded_at: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class CategoryCounts:
    """Cumulative verdict counts for one category (or for all reviews)."""

    true_positive: int = 0
    false_positive: int = 0
    true_negative: int = 0
    false_negative: int = 0

    @property
    def total(self) -> int:
        return self.true_positive + self.false_positive + self.true_negative + self.false_negative

    @property
    def precision(self) -> float:
        flagged = self.true_positive + self.false_positive
        return self.true_positive / flagged if flagged else 0.0

    @property
    def recall(self) -> float:
        actual = self.true_positive + self.false_negative
        return self.true_positive / actual if actual else 0.0

    @property
    def accuracy(self) -> float:
        return (self.true_positive + self.true_negative) / self.total if self.total else 0.0

    @property
    def f1(self) -> float:
        p, r = self.precision, self.recall
        return 2 * p * r / (p + r) if (p + r) else 0.0

    def add(self, verdict: FeedbackVerdict, count: int = 1) -> "CategoryCounts":
        if verdict is FeedbackVerdict.TRUE_POSITIVE:
            return CategoryCounts(self.true_positive + count, self.false_positive, self.true_negative, self.false_negative)
        if verdict is FeedbackVerdict.FALSE_POSITIVE:
            return CategoryCounts(self.true_positive, self.false_positive + count, self.true_negative, self.false_negative)
        if verdict is FeedbackVerdict.TRUE_NEGATIVE:
            return CategoryCounts(self.true_positive, self.false_positive, self.true_negative + count, self.false_negative)
        if verdict is FeedbackVerdict.FALSE_NEGATIVE:
            return CategoryCounts(self.true_positive, self.false_positive, self.true_negative, self.false_negative + count)
        return self

    def to_dict(self) -> dict:
        return {
            "true_positive": self.true_positive,
            "false_positive": self.false_positive,
            "true_negative": self.true_negative,
            "false_negative": self.false_negative,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CategoryCounts":
        return cls(
            int(data.get("true_positive", 0)),
            int(data.get("false_positive", 0)),
            int(data.get("true_negative", 0)),
            int(data.get("false_negative", 0)),
        )


@dataclass(frozen=True, slots=True)
class AccuracyMetrics:
    """Precision, recall, F1 and accuracy across all reviewed messages."""

    precision: float
    recall: float
    f1: float
    accuracy: float
    total_reviewed: int

    @classmethod
    def from_counts(cls, counts: CategoryCounts) -> "AccuracyMetrics":
        return cls(
            precision=counts.precision,
            recall=counts.recall,
            f1=counts.f1,
            accuracy=counts.accuracy,
            total_reviewed=counts.total,
        )
