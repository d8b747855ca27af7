"""
Versioned lexicon weight snapshots.

Weights are immutable values. The feedback loop builds a new snapshot and
publishes it with a single reference swap; a scoring pass grabs
``store.current`` once and uses that snapshot for the whole calculation, so a
concurrent publish can never produce a torn read.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Deque, Dict, List, Mapping

from bullywatch.detection.lexicon_tables import GENERIC
from bullywatch.util.logger import get_logger

logger = get_logger("lexicon_weights")

DEFAULT_CATEGORY_WEIGHTS: Dict[str, float] = {GENERIC: 0.5}


def _frozen(mapping: Mapping[str, float] | None) -> Mapping[str, float]:
    return MappingProxyType({str(k): float(v) for k, v in (mapping or {}).items()})


@dataclass(frozen=True)
class LexiconWeights:
    """One immutable version of the lexicon weights.

    Attributes:
        version: Monotonically increasing version number.
        category_weights: Multiplier per category.
        term_weights: Multiplier per canonical term; overrides the category weight.
        created_at: Epoch seconds when the snapshot was built.
    """

    version: int = 0
    category_weights: Mapping[str, float] = field(default_factory=lambda: _frozen(DEFAULT_CATEGORY_WEIGHTS))
    term_weights: Mapping[str, float] = field(default_factory=lambda: _frozen({}))
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "category_weights", _frozen(self.category_weights))
        object.__setattr__(self, "term_weights", _frozen(self.term_weights))

    def multiplier(self, term: str, category: str) -> float:
        if term in self.term_weights:
            return self.term_weights[term]
        return self.category_weights.get(category, 1.0)

    def with_category_weights(self, updates: Mapping[str, float]) -> "LexiconWeights":
        """Return the next version with ``updates`` merged into the category weights."""
        merged = dict(self.category_weights)
        merged.update(updates)
        return LexiconWeights(
            version=self.version + 1,
            category_weights=merged,
            term_weights=self.term_weights,
        )

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "category_weights": dict(self.category_weights),
            "term_weights": dict(self.term_weights),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "LexiconWeights":
        return cls(
            version=int(data.get("version", 0)),
            category_weights=data.get("category_weights") or DEFAULT_CATEGORY_WEIGHTS,
            term_weights=data.get("term_weights") or {},
            created_at=float(data.get("created_at", time.time())),
        )


class LexiconWeightStore:
    """Holder of the current weight snapshot plus a short version history."""

    def __init__(self, initial: LexiconWeights | None = None, history_size: int = 12) -> None:
        self._current = initial or LexiconWeights()
        self._history: Deque[LexiconWeights] = deque(maxlen=history_size)

    @property
    def current(self) -> LexiconWeights:
        return self._current

    def publish(self, snapshot: LexiconWeights) -> bool:
        """Make ``snapshot`` current if it is newer than the current one.

        Returns:
            True when the snapshot was published.
        """
        if snapshot.version <= self._current.version:
            logger.warning(
                "[WEIGHTS] Rejected snapshot v%d (current is v%d)", snapshot.version, self._current.version
            )
            return False
        self._history.append(self._current)
        self._current = snapshot
        logger.info("[WEIGHTS] Published lexicon weights v%d", snapshot.version)
        return True

    def history(self) -> List[LexiconWeights]:
        return list(self._history)
