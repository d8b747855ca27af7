"""
Context signals feeding the composite scorer's modifiers.

- Direct address (targeting multiplier): second-person forms, mentions or a
  quoted sender.
- Broadcast language (public-shaming multiplier).
- Emoji intensity (add-on points).
- Target extraction for the temporal analyzer.

All pattern functions expect normalized text.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import List

from bullywatch.datatypes.message_datatypes import Message, SenderID
from bullywatch.detection.lexicon_tables import HARASSMENT_EMOJIS, MOCKING_EMOJIS
from bullywatch.normalization.text_normalizer import compile_terms, normalize

MENTION_RE = re.compile(r"(?<!\w)@(\d{3,}|[a-z][\w.]{1,31})")

_ADDRESS_TERMS = [
    "you", "you're", "your", "yourself", "u", "ur", "ya",
    "אתה", "אתם", "אתן", "אותך", "אותכם", "שלך", "לך", "עליך", "יא",
]
_EXCLUSION_TERMS = [
    "thank you", "thanks you", "you guys", "you all", "you know", "see you",
    "love you", "miss you", "are you ok", "if you want",
    "תודה לך", "אוהב אותך", "אוהבת אותך", "מתגעגע אליך",
]
_BROADCAST_TERMS = [
    "send it to everyone", "send this to everyone", "share it with the group",
    "share this with everyone", "post it", "posting this", "screenshot", "screenshotted",
    "forward this", "everyone look", "everyone see this",
    "שלחו לכולם", "תעבירו הלאה", "תפיצו", "בסטטוס", "צילום מסך", "כולם תראו",
]


def _word_pattern(terms: List[str]) -> re.Pattern:
    canonical = sorted(compile_terms(terms), key=len, reverse=True)
    return re.compile(r"(?<!\w)(?:" + "|".join(re.escape(t) for t in canonical) + r")(?!\w)")


_ADDRESS_RE = _word_pattern(_ADDRESS_TERMS)
_EXCLUSION_RE = _word_pattern(_EXCLUSION_TERMS)
_BROADCAST_RE = _word_pattern(_BROADCAST_TERMS)
# Feminine "את" doubles as the object marker ("את הסרט"), so it only counts
# as address when it opens a clause and is not followed by a definite noun.
_SUBJECT_ADDRESS_RE = re.compile(
    r"(?:^|[.!?,:;]\s*)" + normalize("את") + r"(?!\w)(?!\s+" + normalize("ה") + r"(?!" + normalize("כי") + r"))"
)

_HARASSMENT_EMOJIS = tuple(compile_terms(list(HARASSMENT_EMOJIS)))
_MOCKING_EMOJIS = tuple(compile_terms(list(MOCKING_EMOJIS)))
_CLAP_RE = re.compile(r"👏[^👏]+👏")

REPEATED_EMOJI_THRESHOLD = 3
REPEATED_EMOJI_POINTS = 2.0
CLAP_PATTERN_POINTS = 3.0
MOCKING_COUNT_THRESHOLD = 3
MOCKING_POINTS = 1.0


def is_direct_address(normalized_text: str, message: Message | None = None) -> bool:
    """True when the message addresses a specific person.

    Exclusion phrases ("thank you", "you guys") are removed before the
    second-person check, so they never trigger targeting on their own.
    """
    if message is not None and message.quoted_sender_id:
        return True
    if MENTION_RE.search(normalized_text):
        return True
    remainder = _EXCLUSION_RE.sub(" ", normalized_text)
    return bool(_ADDRESS_RE.search(remainder) or _SUBJECT_ADDRESS_RE.search(remainder))


def is_public_shaming(normalized_text: str) -> bool:
    return bool(_BROADCAST_RE.search(normalized_text))


def emoji_intensity(normalized_text: str, cap: float) -> float:
    """Add-on points for emoji-heavy harassment.

    +2 per harassment emoji repeated 3 or more times, +3 for the clapping
    emphasis pattern and +1 when 3 or more mocking emojis appear, capped.
    """
    counts = Counter({emoji: normalized_text.count(emoji) for emoji in _HARASSMENT_EMOJIS})
    points = sum(REPEATED_EMOJI_POINTS for n in counts.values() if n >= REPEATED_EMOJI_THRESHOLD)
    if _CLAP_RE.search(normalized_text):
        points += CLAP_PATTERN_POINTS
    if sum(counts[e] for e in _MOCKING_EMOJIS) >= MOCKING_COUNT_THRESHOLD:
        points += MOCKING_POINTS
    return min(points, cap)


def extract_target(message: Message, normalized_text: str) -> SenderID | None:
    """Identify who a message is aimed at: the quoted sender, else the first mention.

    Mentions are read from the raw text so identifiers keep their digits.
    """
    if message.quoted_sender_id:
        return message.quoted_sender_id
    raw = message.text.casefold() if isinstance(message.text, str) else normalized_text
    match = MENTION_RE.search(raw)
    if match:
        return match.group(1)
    return None
