"""
Message and group context types consumed from the transport layer.

Key Features:
- `Message`: One incoming chat message. Immutable once received.
- `GroupContext`: Group metadata supplied alongside each message.
- `WhitelistEntry`: Dampening record for verified small/friend groups.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

SenderID = str
GroupID = str
MessageID = str


@dataclass(frozen=True, slots=True)
class Message:
    """A single chat message delivered by the transport.

    Attributes:
        id (MessageID): Transport message identifier.
        sender_id (SenderID): Identifier of the author.
        group_id (GroupID): Identifier of the group conversation.
        text (str): Raw message text, before normalization.
        timestamp (datetime): When the message was sent (UTC).
        quoted_sender_id (SenderID | None): Author of the message this one
            replies to, if any. Treated as the message target.
    """

    id: MessageID
    sender_id: SenderID
    group_id: GroupID
    text: str
    timestamp: datetime
    quoted_sender_id: SenderID | None = None

    @property
    def epoch_seconds(self) -> float:
        ts = self.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.timestamp()


@dataclass(frozen=True, slots=True)
class GroupContext:
    """Group metadata supplied by the transport with each message.

    Attributes:
        size (int): Number of participants in the group.
        whitelisted (bool): Whether the transport considers the group verified.
        monitor_mode (bool): Group-level monitor mode flag.
    """

    size: int = 0
    whitelisted: bool = False
    monitor_mode: bool = False


@dataclass(frozen=True, slots=True)
class WhitelistEntry:
    """Sensitivity reduction for a verified friend group.

    Attributes:
        group_id (GroupID): Group the entry applies to.
        multiplier (float): Friend-group multiplier applied to the raw score.
        expires_at (float | None): Epoch seconds after which the entry lapses.
        reason (str): Free-form note recorded by the administrator.
    """

    group_id: GroupID
    multiplier: float = 0.5
    expires_at: float | None = None
    reason: str = ""

    def is_active(self, now: float) -> bool:
        return self.expires_at is None or now < self.expires_at

    def to_dict(self) -> dict:
        return {
            "group_id": self.group_id,
            "multiplier": self.multiplier,
            "expires_at": self.expires_at,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WhitelistEntry":
        return cls(
            group_id=str(data["group_id"]),
            multiplier=float(data.get("multiplier", 0.5)),
            expires_at=data.get("expires_at"),
            reason=str(data.get("reason", "")),
        )
