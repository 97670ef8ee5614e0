"""Tests for the timer schedulers."""

import asyncio

import pytest

from dbbrowser.browser.scheduler import AsyncioScheduler, ManualScheduler


class TestManualScheduler:
    """Test cases for ManualScheduler."""

    def test_fires_in_due_order(self):
        scheduler = ManualScheduler()
        fired = []
        scheduler.call_later(2.0, lambda: fired.append("late"))
        scheduler.call_later(1.0, lambda: fired.append("early"))

        assert scheduler.advance(2.0) == 2
        assert fired == ["early", "late"]
        assert scheduler.now() == 2.0

    def test_cancelled_timer_never_fires(self):
        """Test that a cancelled token is skipped and reported as cancelled once."""
        scheduler = ManualScheduler()
        fired = []
        token = scheduler.call_later(1.0, lambda: fired.append(1))

        assert scheduler.cancel(token) is True
        assert scheduler.cancel(token) is False
        assert scheduler.advance(5.0) == 0
        assert fired == []

    def test_cancel_none_is_ignored(self):
        assert ManualScheduler().cancel(None) is False

    def test_timers_scheduled_during_advance_fire(self):
        """Test that a self-rescheduling timer fires at each interval."""
        scheduler = ManualScheduler()
        ticks = []

        def tick():
            ticks.append(scheduler.now())
            scheduler.call_later(0.5, tick)

        scheduler.call_later(0.5, tick)
        scheduler.advance(2.0)

        assert ticks == [0.5, 1.0, 1.5, 2.0]
        assert scheduler.pending() == 1

    def test_not_yet_due_stays_pending(self):
        scheduler = ManualScheduler(start=10.0)
        scheduler.call_later(3.0, lambda: None)

        scheduler.advance(2.9)

        assert scheduler.pending() == 1
        assert scheduler.now() == pytest.approx(12.9)

    def test_cancel_all(self):
        scheduler = ManualScheduler()
        scheduler.call_later(1.0, lambda: None)
        scheduler.call_later(2.0, lambda: None)

        scheduler.cancel_all()

        assert scheduler.pending() == 0
        assert scheduler.advance(3.0) == 0


class TestAsyncioScheduler:
    """Test cases for AsyncioScheduler."""

    @pytest.mark.asyncio
    async def test_callback_runs_on_loop(self):
        scheduler = AsyncioScheduler()
        done = asyncio.Event()

        scheduler.call_later(0.01, done.set)
        await asyncio.wait_for(done.wait(), 1.0)

        assert scheduler.pending() == 0

    @pytest.mark.asyncio
    async def test_cancel_prevents_callback(self):
        scheduler = AsyncioScheduler()
        fired = []
        token = scheduler.call_later(0.01, lambda: fired.append(1))

        assert scheduler.cancel(token) is True
        await asyncio.sleep(0.05)

        assert fired == []
        assert scheduler.cancel(token) is False

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        scheduler = AsyncioScheduler()
        scheduler.call_later(10.0, lambda: None)
        scheduler.call_later(10.0, lambda: None)

        scheduler.cancel_all()

        assert scheduler.pending() == 0
