"""Canonicalization of message text against evasion spelling.

Every detection layer matches against ``normalize(text)``. The function runs
a single canonicalization pass repeatedly until the text stops changing, which
makes it idempotent: ``normalize(normalize(x)) == normalize(x)``.

One pass:

1. NFKC + case folding, removal of zero-width/bidi controls and Hebrew points.
2. Latin-alphabet spellings of native-script slurs mapped to the native form.
3. Hebrew final letters and evasion swap pairs collapsed to one letter.
4. Leetspeak digits and symbols inside words mapped to letters.
5. Punctuation inserted between letters removed; spaced-out letters joined.
6. Whitespace collapsed.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any, Dict, List

MAX_PASSES = 10

_INVISIBLE = re.compile(
    "[\u00ad\u200b-\u200f\u202a-\u202e\u2060-\u2064\ufe0e\ufe0f\ufeff"
    "\u0591-\u05bd\u05bf\u05c1\u05c2\u05c4\u05c5\u05c7]"
)

# Final forms and the letter pairs swapped to dodge filters. Tables and input
# share this canonical alphabet, so only consistency matters.
_HEBREW_CANONICAL = str.maketrans({
    "ך": "כ",
    "ם": "מ",
    "ן": "נ",
    "ף": "פ",
    "ץ": "צ",
    "ע": "א",
    "ק": "כ",
    "ת": "ט",
    "ש": "ס",
})

_LEET_DIGITS: Dict[str, str] = {"0": "o", "1": "i", "3": "e", "4": "a", "5": "s", "7": "t"}
_LEET_INTERIOR: Dict[str, str] = {"@": "a", "!": "i", "|": "i", "$": "s"}

TRANSLITERATIONS: Dict[str, str] = {
    "ben zona": "בן זונה",
    "bat zona": "בת זונה",
    "zona": "זונה",
    "zonah": "זונה",
    "sharmuta": "שרמוטה",
    "sharmota": "שרמוטה",
    "sharmoota": "שרמוטה",
    "mefager": "מפגר",
    "mefageret": "מפגרת",
    "metumtam": "מטומטם",
    "metumtemet": "מטומטמת",
    "ahbal": "אהבל",
    "dafuk": "דפוק",
    "tamut": "תמות",
    "lehitabed": "להתאבד",
}

_TRANSLITERATION_RE = re.compile(
    r"(?<![a-z])(" + "|".join(re.escape(k) for k in sorted(TRANSLITERATIONS, key=len, reverse=True)) + r")(?![a-z])"
)

_LETTER = r"[^\W\d_]"
_INTER_LETTER_PUNCT = re.compile(rf"(?<={_LETTER})[.\-_*~'`’]+(?={_LETTER})")
_SPACED_LETTERS = re.compile(rf"(?<!\w)(?:{_LETTER}[\s.\-_*~,]+){{3,}}{_LETTER}(?!\w)")
_SEPARATORS = re.compile(r"[\s.\-_*~,]+")
_WHITESPACE = re.compile(r"\s+")


def _map_leet_token(token: str) -> str:
    if not any(ch.isalpha() for ch in token):
        return token

    chars = [_LEET_DIGITS.get(ch, ch) for ch in token]
    letters = [i for i, ch in enumerate(chars) if ch.isalpha()]
    first, last = letters[0], letters[-1]
    for i, ch in enumerate(chars):
        if ch not in _LEET_INTERIOR:
            continue
        if first < i < last or (ch == "$" and i + 1 < len(chars) and chars[i + 1].isalpha()):
            chars[i] = _LEET_INTERIOR[ch]
    return "".join(chars)


def _single_pass(text: str) -> str:
    text = unicodedata.normalize("NFKC", text).casefold()
    text = _INVISIBLE.sub("", text)
    text = _TRANSLITERATION_RE.sub(lambda m: TRANSLITERATIONS[m.group(1)], text)
    text = text.translate(_HEBREW_CANONICAL)
    text = " ".join(_map_leet_token(tok) for tok in text.split())
    text = _INTER_LETTER_PUNCT.sub("", text)
    text = _SPACED_LETTERS.sub(lambda m: _SEPARATORS.sub("", m.group(0)), text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize(text: Any) -> str:
    """Return the canonical form of ``text``.

    Never raises. Anything that is not a ``str`` normalizes to ``""``.

    Args:
        text: Raw message text.

    Returns:
        Canonical text used by every detection layer.
    """
    if not isinstance(text, str):
        return ""

    current = text
    for _ in range(MAX_PASSES):
        nxt = _single_pass(current)
        if nxt == current:
            return nxt
        current = nxt
    return current


def is_latin_term(term: str) -> bool:
    """True when ``term`` is written only in Latin letters, digits and spaces."""
    return bool(re.fullmatch(r"[a-z0-9 ]+", term))


def term_regex(term: str) -> str:
    """Regex source matching the canonical form of ``term``.

    Latin terms get letter boundaries so ``trash`` does not fire inside
    ``trashcan``; native-script terms are matched anywhere because prefixes
    attach directly to the word.
    """
    canonical = normalize(term)
    escaped = re.escape(canonical)
    if is_latin_term(canonical):
        return rf"(?<![a-z]){escaped}(?![a-z])"
    return escaped


def compile_terms(terms: List[str]) -> List[str]:
    """Normalize pattern terms, dropping empties and duplicates, keeping order."""
    seen: Dict[str, None] = {}
    for term in terms:
        canonical = normalize(term)
        if canonical:
            seen.setdefault(canonical, None)
    return list(seen)
