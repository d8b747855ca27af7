"""
Critical-term short-circuit.

A small, curated, admin-editable list of terms whose presence must never
depend on classifier judgment. A match ends processing with maximum severity.
Matching runs on normalized text and tolerates whitespace inserted between
letters (``k y s``). Hebrew terms may carry up to two attached prefix letters
(``ו``, ``ה``, ``ל``...) but must otherwise stand as whole words.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Tuple

from bullywatch.detection.lexicon_tables import (
    DIRECT_THREAT,
    GENERAL_INSULT,
    SELF_HARM,
    SEXUAL_HARASSMENT,
)
from bullywatch.normalization.text_normalizer import is_latin_term, normalize
from bullywatch.util.logger import get_logger

logger = get_logger("critical_term_filter")

# term -> category
DEFAULT_CRITICAL_TERMS: Dict[str, str] = {
    "זונה": SEXUAL_HARASSMENT,
    "זונות": SEXUAL_HARASSMENT,
    "בנזונה": SEXUAL_HARASSMENT,
    "בתזונה": SEXUAL_HARASSMENT,
    "בן זונה": SEXUAL_HARASSMENT,
    "בן של זונה": SEXUAL_HARASSMENT,
    "בת זונה": SEXUAL_HARASSMENT,
    "לאנוס": SEXUAL_HARASSMENT,
    "אנוס": SEXUAL_HARASSMENT,
    "אונס": SEXUAL_HARASSMENT,
    "אנוסה": SEXUAL_HARASSMENT,
    "תאנס": SEXUAL_HARASSMENT,
    "מפגר": GENERAL_INSULT,
    "מפגרת": GENERAL_INSULT,
    "מפגרים": GENERAL_INSULT,
    "מפגרות": GENERAL_INSULT,
    "תמות": DIRECT_THREAT,
    "תמותי": DIRECT_THREAT,
    "למות": DIRECT_THREAT,
    "שתמות": DIRECT_THREAT,
    "להרוג": DIRECT_THREAT,
    "ארצח": DIRECT_THREAT,
    "לרצוח": DIRECT_THREAT,
    "תהרוג": DIRECT_THREAT,
    "ארצח אותך": DIRECT_THREAT,
    "אני אהרוג אותך": DIRECT_THREAT,
    "לשבור": DIRECT_THREAT,
    "תשבר": DIRECT_THREAT,
    "להרביץ": DIRECT_THREAT,
    "תהרביץ": DIRECT_THREAT,
    "תתאבד": DIRECT_THREAT,
    "לך תתאבד": DIRECT_THREAT,
    "להתאבד": SELF_HARM,
    "אתאבד": SELF_HARM,
    "התאבדות": SELF_HARM,
    "אני רוצה להתאבד": SELF_HARM,
    "בא לי למות": SELF_HARM,
    "kill yourself": DIRECT_THREAT,
    "kys": DIRECT_THREAT,
    "go die": DIRECT_THREAT,
    "i will kill you": DIRECT_THREAT,
    "i'm going to kill you": DIRECT_THREAT,
    "i will rape you": SEXUAL_HARASSMENT,
    "i want to kill myself": SELF_HARM,
    "i want to die": SELF_HARM,
}

# Canonical spellings of the one-letter prefixes (ו ב ה ש כ ל מ).
_HEBREW_PREFIXES = "[" + normalize("ובהשכלמ") + "]{0,2}"


@dataclass(frozen=True, slots=True)
class CriticalCheckResult:
    is_critical: bool
    term: str | None = None
    category: str | None = None

    @property
    def is_self_harm(self) -> bool:
        return self.category == SELF_HARM


NOT_CRITICAL = CriticalCheckResult(is_critical=False)


def _spaced_pattern(canonical: str) -> re.Pattern:
    letters = [re.escape(ch) for ch in canonical if not ch.isspace()]
    body = r"\s*".join(letters)
    if is_latin_term(canonical):
        return re.compile(rf"(?<![a-z]){body}(?![a-z])")
    return re.compile(rf"(?<!\w){_HEBREW_PREFIXES}{body}(?!\w)")


class CriticalTermFilter:
    """Zero-cost check for catastrophic terms.

    Terms are stored in canonical (normalized) form together with a compiled
    whitespace-tolerant pattern. The set is expected to stay in the tens, so a
    linear scan per message is fine. Longer terms are tried first so a phrase
    such as "בא לי למות" reports its own category rather than that of a word
    it contains.
    """

    def __init__(self, terms: Mapping[str, str] | None = None) -> None:
        self._patterns: Dict[str, Tuple[re.Pattern, str]] = {}
        self._order: List[str] = []
        for term, category in (terms if terms is not None else DEFAULT_CRITICAL_TERMS).items():
            self.add_term(term, category)

    def _reorder(self) -> None:
        self._order = sorted(self._patterns, key=len, reverse=True)

    def add_term(self, term: str, category: str = DIRECT_THREAT) -> bool:
        """Add a term. Returns False when it normalizes to nothing or already exists."""
        canonical = normalize(term)
        if not canonical:
            logger.warning("[CRITICAL FILTER] Ignoring empty term %r", term)
            return False
        if canonical in self._patterns:
            return False
        self._patterns[canonical] = (_spaced_pattern(canonical), category)
        self._reorder()
        logger.debug("[CRITICAL FILTER] Added term in category %s (%d terms)", category, len(self._patterns))
        return True

    def add_terms(self, entries: Iterable[Mapping[str, str]]) -> int:
        return sum(1 for e in entries if self.add_term(e["term"], e.get("category", DIRECT_THREAT)))

    def remove_term(self, term: str) -> bool:
        canonical = normalize(term)
        if self._patterns.pop(canonical, None) is None:
            return False
        self._reorder()
        logger.info("[CRITICAL FILTER] Removed term (%d terms)", len(self._patterns))
        return True

    def terms(self) -> List[str]:
        return sorted(self._patterns)

    def check(self, normalized_text: str) -> CriticalCheckResult:
        """Check normalized text against every critical term.

        Args:
            normalized_text: Output of :func:`normalize`.

        Returns:
            The longest matching term and its category, or ``NOT_CRITICAL``.
        """
        if not normalized_text:
            return NOT_CRITICAL
        for canonical in self._order:
            pattern, category = self._patterns[canonical]
            if pattern.search(normalized_text):
                logger.warning("[CRITICAL FILTER] Critical term matched (category=%s)", category)
                return CriticalCheckResult(is_critical=True, term=canonical, category=category)
        return NOT_CRITICAL
