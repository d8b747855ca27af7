"""Generic scheduler for periodic maintenance tasks.

Provides a reusable async task runner that waits a delay, calls a
user-supplied coroutine, and repeats. The delay is recomputed before every
wait, so calendar-aligned jobs (such as the monthly feedback run) stay aligned.
Handles lifecycle (start/shutdown) and standard error handling.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from bullywatch.util.logger import get_logger

logger = get_logger("periodic_scheduler")


def seconds_until_next_month(now: datetime | None = None) -> float:
    """Seconds from ``now`` (UTC) until 00:00 UTC on the first of next month."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if now.month == 12:
        target = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        target = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return max(0.0, (target - now).total_seconds())


class PeriodicTaskScheduler:
    """
    Reusable scheduler for one periodic coroutine.

    Args:
        name: Human-readable name for logging (e.g., "eviction", "feedback").
        coro: Async callable with no arguments, run once per period.
        get_delay: Callable returning the seconds to wait before the next run.
    """

    def __init__(
        self,
        name: str,
        coro: Callable[[], Awaitable[Any]],
        get_delay: Callable[[], float],
    ) -> None:
        self._name = name
        self._coro = coro
        self._get_delay = get_delay
        self._task: asyncio.Task | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> None:
        """Run the coroutine once, logging (not raising) ordinary failures."""
        try:
            await self._coro()
            self.runs += 1
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[%s] Unexpected error during periodic run: %s", self._name, exc)

    async def _run_loop(self) -> None:
        """Infinite loop: sleep, run, repeat."""
        try:
            while True:
                delay = self._get_delay()
                logger.debug("[%s] Next run in %.1fs", self._name, delay)
                await asyncio.sleep(delay)
                await self.run_once()
        except asyncio.CancelledError:
            logger.info("[%s] Periodic task cancelled", self._name)
            raise

    def start(self) -> None:
        """Start the background task if not already running."""
        if self.running:
            logger.warning("[%s] Task already running", self._name)
            return
        logger.info("[%s] Starting periodic task", self._name)
        self._task = asyncio.create_task(self._run_loop())

    async def shutdown(self) -> None:
        """Stop the task and wait for it to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[%s] Scheduler shutdown complete", self._name)
