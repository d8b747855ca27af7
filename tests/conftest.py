"""
Pytest configuration and fixtures for BullyWatch tests.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from bullywatch.datatypes.message_datatypes import Message  # noqa: E402

BASE_TIME = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float | None = None) -> None:
        self.now = BASE_TIME.timestamp() if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_message(
    text: str,
    *,
    sender: str = "1001",
    group: str = "g1",
    message_id: str | None = None,
    seconds: float = 0,
    quoted: str | None = None,
) -> Message:
    make_message.counter += 1
    return Message(
        id=message_id or f"m{make_message.counter}",
        sender_id=sender,
        group_id=group,
        text=text,
        timestamp=BASE_TIME + timedelta(seconds=seconds),
        quoted_sender_id=quoted,
    )


make_message.counter = 0


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
