"""Tests for the periodic task scheduler."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from bullywatch.scheduler.periodic_scheduler import PeriodicTaskScheduler, seconds_until_next_month


class TestSecondsUntilNextMonth:
    def test_last_hour_of_month(self):
        now = datetime(2026, 3, 31, 23, 0, tzinfo=timezone.utc)
        assert seconds_until_next_month(now) == 3600

    def test_december_rolls_over_the_year(self):
        now = datetime(2026, 12, 31, 12, 0, tzinfo=timezone.utc)
        assert seconds_until_next_month(now) == 12 * 3600

    def test_naive_datetime_is_treated_as_utc(self):
        assert seconds_until_next_month(datetime(2026, 2, 28, 0, 0)) == 86400


@pytest.mark.asyncio
async def test_runs_repeatedly_until_shutdown():
    calls = []

    async def job():
        calls.append(1)

    scheduler = PeriodicTaskScheduler("test", job, lambda: 0.01)
    scheduler.start()
    assert scheduler.running
    for _ in range(100):
        if scheduler.runs >= 2:
            break
        await asyncio.sleep(0.01)
    await scheduler.shutdown()

    assert scheduler.runs >= 2
    assert len(calls) == scheduler.runs
    assert not scheduler.running


@pytest.mark.asyncio
async def test_failures_are_logged_and_loop_continues():
    attempts = []

    async def flaky():
        attempts.append(1)
        raise RuntimeError("boom")

    with patch("bullywatch.scheduler.periodic_scheduler.logger") as mock_logger:
        scheduler = PeriodicTaskScheduler("flaky", flaky, lambda: 0.01)
        scheduler.start()
        for _ in range(100):
            if len(attempts) >= 2:
                break
            await asyncio.sleep(0.01)
        await scheduler.shutdown()

    assert len(attempts) >= 2
    assert scheduler.runs == 0
    assert mock_logger.error.called


@pytest.mark.asyncio
async def test_start_twice_keeps_one_task():
    async def job():
        return None

    scheduler = PeriodicTaskScheduler("dup", job, lambda: 60)
    scheduler.start()
    first = scheduler._task
    scheduler.start()
    assert scheduler._task is first
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_run_once_propagates_cancellation():
    async def cancelled():
        raise asyncio.CancelledError()

    scheduler = PeriodicTaskScheduler("cancel", cancelled, lambda: 60)
    with pytest.raises(asyncio.CancelledError):
        await scheduler.run_once()
