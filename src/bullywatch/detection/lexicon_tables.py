"""
Category pattern tables for the lexicon scorer.

Each entry is a category tag, a base point value and the surface forms that
trigger it. Surface forms may be written naturally (with final letters,
apostrophes, variation selectors); they are normalized when the scorer
compiles them, so they always live in the same canonical space as the input.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Tuple

from bullywatch.util.logger import get_logger

logger = get_logger("lexicon_tables")

GENERAL_INSULT = "general_insult"
SEXUAL_HARASSMENT = "sexual_harassment"
SOCIAL_EXCLUSION = "social_exclusion"
DIRECT_THREAT = "direct_threat"
COERCION = "coercion"
DOXXING = "doxxing"
PUBLIC_HUMILIATION = "public_humiliation"
EMOJI_HARASSMENT = "emoji_harassment"
SELF_HARM = "self_harm"
GENERIC = "generic"

KNOWN_CATEGORIES = frozenset({
    GENERAL_INSULT,
    SEXUAL_HARASSMENT,
    SOCIAL_EXCLUSION,
    DIRECT_THREAT,
    COERCION,
    DOXXING,
    PUBLIC_HUMILIATION,
    EMOJI_HARASSMENT,
    SELF_HARM,
    GENERIC,
})

# Categories that trigger the critical floor in the composite scorer.
CRITICAL_CATEGORIES = frozenset({COERCION, DIRECT_THREAT, DOXXING, SELF_HARM})


@dataclass(frozen=True, slots=True)
class LexiconEntry:
    category: str
    base_score: float
    terms: Tuple[str, ...]


DEFAULT_ENTRIES: Tuple[LexiconEntry, ...] = (
    LexiconEntry(GENERAL_INSULT, 2, (
        "idiot", "stupid", "loser", "trash", "moron", "dumb", "ugly", "freak",
        "pathetic", "garbage", "clown",
        "מטומטם", "מטומטמת", "אהבל", "דביל", "אידיוט", "מכוער", "מכוערת",
        "זבל", "אפס", "לוזר", "דפוק", "דפוקה", "סתום", "סתומה",
    )),
    LexiconEntry(GENERAL_INSULT, 3, (
        "retard", "worthless", "fat pig",
        "מפגר", "מפגרת", "חסר ערך",
    )),
    LexiconEntry(SOCIAL_EXCLUSION, 4, (
        "everyone hates you", "nobody likes you", "no one likes you",
        "nobody wants you", "no one wants you here", "you're not invited",
        "get out of the group", "leave the group", "we don't want you",
        "כולם שונאים אותך", "אף אחד לא אוהב אותך", "אף אחד לא רוצה אותך",
        "צא מהקבוצה", "תעוף מפה", "אתה לא מוזמן", "את לא מוזמנת", "לא רוצים אותך",
    )),
    LexiconEntry(SEXUAL_HARASSMENT, 5, (
        "slut", "whore", "send nudes", "send me nudes", "show me your body",
        "זונה", "זונות", "שרמוטה", "כוסית", "תשלחי עירום",
    )),
    LexiconEntry(DIRECT_THREAT, 6, (
        "i will hurt you", "watch your back", "you're dead", "i'll beat you up",
        "i will find you", "gonna hurt you",
        "אני ארביץ לך", "אני אשבור לך", "תיזהר ממני", "אתה גמור", "נחכה לך בחוץ", "אני אמצא אותך",
    )),
    LexiconEntry(COERCION, 6, (
        "i'll post your pics", "i will share your photos", "do it or else",
        "or i'll tell everyone", "i have screenshots of you",
        "אני אפרסם את התמונות", "אם לא אני אשלח", "אני אפיץ את זה", "יש לי צילומי מסך שלך",
    )),
    LexiconEntry(DOXXING, 6, (
        "i know where you live", "your address is", "here is her number",
        "here is his number", "this is his address", "this is her address",
        "אני יודע איפה אתה גר", "אני יודעת איפה את גרה", "הכתובת שלך", "המספר שלה", "המספר שלו",
    )),
    LexiconEntry(PUBLIC_HUMILIATION, 3, (
        "laughing stock", "what a joke", "look at this loser", "everyone is laughing at you",
        "כולם צוחקים עליך", "תסתכלו עליו", "תסתכלו עליה", "איזה פדיחה", "צחוק עליו",
    )),
    LexiconEntry(SELF_HARM, 8, (
        "kill myself", "end it all", "hurt myself", "cut myself", "no reason to live",
        "להתאבד", "לחתוך את עצמי", "אין לי סיבה לחיות", "רוצה להיעלם",
    )),
    # Emoji tables: mocking, disgust, threat.
    LexiconEntry(EMOJI_HARASSMENT, 2, ("🤡", "🤏")),
    LexiconEntry(EMOJI_HARASSMENT, 1, ("💀", "🙄", "😭", "🧠")),
    LexiconEntry(EMOJI_HARASSMENT, 2, ("🗑️", "💩", "🤢", "🤮", "🐷", "🐀", "🪳")),
    LexiconEntry(EMOJI_HARASSMENT, 5, ("🔪", "🩸", "☠️", "💣", "🔫")),
)

MOCKING_EMOJIS = ("🤡", "💀", "🙄", "😭", "🤏", "🧠")
HARASSMENT_EMOJIS = MOCKING_EMOJIS + ("🗑️", "💩", "🤢", "🤮", "🐷", "🐀", "🪳", "🔪", "🩸", "☠️", "💣", "🔫")


def entries_from_config(raw_entries: Iterable[Mapping[str, Any]]) -> List[LexiconEntry]:
    """Build lexicon entries from configuration mappings.

    Unknown categories are remapped to the low-weight ``generic`` category
    instead of being rejected.

    Args:
        raw_entries: Mappings with ``category``, ``score`` and ``terms`` keys.

    Returns:
        Valid entries; malformed ones are logged and skipped.
    """
    entries: List[LexiconEntry] = []
    for raw in raw_entries:
        category = str(raw.get("category", GENERIC))
        if category not in KNOWN_CATEGORIES:
            logger.warning("[LEXICON] Unknown category %r, using %s", category, GENERIC)
            category = GENERIC
        terms = raw.get("terms") or []
        try:
            score = float(raw.get("score", 1))
        except (TypeError, ValueError):
            logger.warning("[LEXICON] Invalid score %r for category %s, skipping", raw.get("score"), category)
            continue
        if not isinstance(terms, list) or not terms:
            continue
        entries.append(LexiconEntry(category, score, tuple(str(t) for t in terms)))
    return entries
