from __future__ import annotations

import hashlib

TEXT_HASH_LENGTH = 16


def hash_text(text: str) -> str:
    """Return a short, non-reversible fingerprint of message text.

    Used wherever message content must be correlated without being stored,
    e.g. the ensemble disagreement log and lexicon-gap suggestions.

    Args:
        text: Message text (normally already normalized).

    Returns:
        First 16 hex characters of the SHA-256 digest.
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:TEXT_HASH_LENGTH]


def pseudonym_label(sender_id: str, salt: str) -> str:
    """Return a stable pseudonymous label for a sender.

    The same sender and salt always produce the same label, so a classifier can
    follow who said what across a context window without ever seeing a raw
    identifier.

    Args:
        sender_id: Raw sender identifier.
        salt: Per-deployment secret mixed into the digest.

    Returns:
        Label such as ``"user_3fa2c1"``.
    """
    digest = hashlib.sha256(f"{salt}:{sender_id}".encode("utf-8")).hexdigest()
    return f"user_{digest[:6]}"
