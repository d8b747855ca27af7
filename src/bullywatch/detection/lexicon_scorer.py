"""
Rule-based lexicon scoring with a hard cap.

Every occurrence of a table term is a hit. Hits are weighted by the current
weight snapshot, then capped: within each category only the top 2 hits count,
and only the top 3 categories by summed score count. This bounds the lexicon
contribution no matter how long or repetitive a message is.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from bullywatch.datatypes.scoring_datatypes import LexiconHit, LexiconResult
from bullywatch.detection.lexicon_tables import DEFAULT_ENTRIES, GENERIC, KNOWN_CATEGORIES, LexiconEntry
from bullywatch.detection.lexicon_weights import LexiconWeightStore
from bullywatch.normalization.text_normalizer import compile_terms, term_regex
from bullywatch.util.logger import get_logger

logger = get_logger("lexicon_scorer")

HITS_PER_CATEGORY = 2
MAX_CATEGORIES = 3


@dataclass(frozen=True, slots=True)
class _CompiledEntry:
    category: str
    base_score: float
    pattern: re.Pattern


def apply_hard_cap(hits: Sequence[LexiconHit]) -> Tuple[float, Tuple[str, ...]]:
    """Apply the category hard cap to weighted hits.

    Args:
        hits: All hits of one message.

    Returns:
        ``(capped_score, categories)`` where categories lists every detected
        category ordered by its capped contribution, highest first.
    """
    by_category: Dict[str, List[float]] = defaultdict(list)
    for hit in hits:
        by_category[hit.category].append(hit.weighted_score)

    category_totals = {
        category: sum(sorted(scores, reverse=True)[:HITS_PER_CATEGORY])
        for category, scores in by_category.items()
    }
    ranked = sorted(category_totals.items(), key=lambda item: (-item[1], item[0]))
    capped = sum(total for _, total in ranked[:MAX_CATEGORIES])
    return capped, tuple(category for category, _ in ranked)


class LexiconScorer:
    """Detect lexicon categories in normalized text and compute the capped base score.

    Args:
        weight_store: Source of the current weight snapshot.
        entries: Pattern table entries. Defaults to the built-in tables.
    """

    def __init__(self, weight_store: LexiconWeightStore, entries: Iterable[LexiconEntry] | None = None) -> None:
        self._weight_store = weight_store
        self._entries: List[_CompiledEntry] = []
        for entry in entries if entries is not None else DEFAULT_ENTRIES:
            self.add_entry(entry)

    def add_entry(self, entry: LexiconEntry) -> None:
        category = entry.category if entry.category in KNOWN_CATEGORIES else GENERIC
        terms = compile_terms(list(entry.terms))
        if not terms:
            return
        # Longest alternatives first so "send me nudes" wins over a shorter overlap.
        source = "|".join(term_regex(t) for t in sorted(terms, key=len, reverse=True))
        self._entries.append(_CompiledEntry(category, float(entry.base_score), re.compile(source)))

    def score(self, normalized_text: str) -> LexiconResult:
        """Score normalized text.

        Args:
            normalized_text: Output of :func:`normalize`.

        Returns:
            Hits, ranked categories and the capped base score.
        """
        weights = self._weight_store.current
        if not normalized_text:
            return LexiconResult(weights_version=weights.version)

        hits: List[LexiconHit] = []
        for entry in self._entries:
            for match in entry.pattern.finditer(normalized_text):
                term = match.group(0)
                hits.append(LexiconHit(
                    term=term,
                    category=entry.category,
                    base_score=entry.base_score,
                    weight=weights.multiplier(term, entry.category),
                ))

        if not hits:
            return LexiconResult(weights_version=weights.version)

        base_score, categories = apply_hard_cap(hits)
        logger.debug(
            "[LEXICON] %d hits, categories=%s, capped base=%.2f (weights v%d)",
            len(hits), ",".join(categories), base_score, weights.version,
        )
        return LexiconResult(
            hits=tuple(hits),
            categories=categories,
            base_score=base_score,
            weights_version=weights.version,
        )
