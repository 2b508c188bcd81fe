"""Unit tests for the draft timers."""

import asyncio

import pytest

from feedback_wizard.scheduler import AsyncioScheduler, ManualScheduler, epoch_ms


class TestManualScheduler:
    """Test cases for the virtual-time scheduler."""

    def test_nothing_fires_before_due(self):
        scheduler = ManualScheduler(start_ms=100)
        fired = []
        scheduler.call_later(50, lambda: fired.append(scheduler.now()))

        assert scheduler.advance(49) == 0
        assert fired == []
        assert scheduler.advance(1) == 1
        assert fired == [150]
        assert scheduler.now() == 150

    def test_fires_in_due_order(self):
        scheduler = ManualScheduler()
        fired = []
        scheduler.call_later(30, lambda: fired.append("late"))
        scheduler.call_later(10, lambda: fired.append("early"))
        scheduler.call_later(10, lambda: fired.append("early-second"))

        scheduler.advance(100)

        assert fired == ["early", "early-second", "late"]
        assert scheduler.now() == 100

    def test_cancelled_timers_do_not_fire(self):
        scheduler = ManualScheduler()
        fired = []
        handle = scheduler.call_later(10, lambda: fired.append(1))
        scheduler.call_later(20, lambda: fired.append(2))

        handle.cancel()

        assert scheduler.pending == 1
        assert scheduler.advance(50) == 1
        assert fired == [2]
        assert scheduler.pending == 0


class TestAsyncioScheduler:
    """Test cases for the event-loop scheduler."""

    @pytest.mark.asyncio
    async def test_uses_running_loop(self):
        done = asyncio.Event()

        AsyncioScheduler().call_later(1, done.set)

        await asyncio.wait_for(done.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_cancel(self):
        fired = []

        handle = AsyncioScheduler().call_later(1, lambda: fired.append(1))
        handle.cancel()
        await asyncio.sleep(0.01)

        assert fired == []


def test_epoch_ms_is_milliseconds():
    assert epoch_ms() > 1_600_000_000_000
