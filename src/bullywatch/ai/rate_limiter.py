"""Call budgeting for the paid classifiers."""

from __future__ import annotations

import time
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, Dict

from bullywatch.util.logger import get_logger

logger = get_logger("rate_limiter")


class SlidingWindowRateLimiter:
    """Allow at most ``max_calls`` per key within a trailing ``period``.

    Args:
        max_calls: Calls allowed per key and period.
        period: Window length in seconds.
        clock: Time source.
    """

    def __init__(self, max_calls: int, period: float, clock: Callable[[], float] = time.time) -> None:
        self.max_calls = max_calls
        self.period = period
        self._clock = clock
        self._calls: Dict[str, Deque[float]] = {}

    def _trim(self, key: str, now: float) -> Deque[float]:
        calls = self._calls.setdefault(key, deque())
        while calls and calls[0] <= now - self.period:
            calls.popleft()
        return calls

    def try_acquire(self, key: str) -> bool:
        """Record a call for ``key`` if it is under the limit.

        Returns:
            True when the call is allowed.
        """
        now = self._clock()
        calls = self._trim(key, now)
        if len(calls) >= self.max_calls:
            return False
        calls.append(now)
        return True

    def remaining(self, key: str) -> int:
        return max(0, self.max_calls - len(self._trim(key, self._clock())))

    def cleanup(self) -> int:
        """Forget keys with no calls in the current window."""
        now = self._clock()
        idle = [key for key in list(self._calls) if not self._trim(key, now)]
        for key in idle:
            del self._calls[key]
        return len(idle)


class DailyBudget:
    """Spend cap that resets at UTC midnight.

    Args:
        limit: Maximum spend per UTC day, or None for unlimited.
        cost_per_call: Cost charged by :meth:`try_spend`.
    """

    def __init__(self, limit: float | None, cost_per_call: float, clock: Callable[[], float] = time.time) -> None:
        self.limit = limit
        self.cost_per_call = cost_per_call
        self._clock = clock
        self._day = self._today()
        self._spent = 0.0
        self._exhausted_logged = False

    def _today(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).strftime("%Y-%m-%d")

    @property
    def spent(self) -> float:
        self._roll()
        return self._spent

    def _roll(self) -> None:
        today = self._today()
        if today != self._day:
            self._day = today
            self._spent = 0.0
            self._exhausted_logged = False

    def try_spend(self) -> bool:
        self._roll()
        if self.limit is not None and self._spent + self.cost_per_call > self.limit:
            if not self._exhausted_logged:
                logger.warning("[BUDGET] Daily budget of %.4f exhausted (spent %.4f)", self.limit, self._spent)
                self._exhausted_logged = True
            return False
        self._spent += self.cost_per_call
        return True
