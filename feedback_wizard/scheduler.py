"""Timers and clocks used by debounced draft writes.

Each scheduler hands back a handle with ``cancel()``. A DraftStore owns
at most one live handle at a time.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import threading
import time
from typing import Callable, List, Optional, Protocol, Tuple


def epoch_ms() -> int:
    """Wall clock in integer epoch milliseconds."""
    return int(time.time() * 1000)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Fires callbacks on daemon ``threading.Timer`` threads."""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(delay_ms, 0) / 1000.0, callback)
        timer.daemon = True
        timer.start()
        return timer


class AsyncioScheduler:
    """Fires callbacks on an asyncio event loop.

    Without an explicit loop the running loop is looked up at call time,
    so the scheduler can be built before the server loop starts.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(delay_ms, 0) / 1000.0, callback)


class _ManualTimer:
    __slots__ = ("callback", "cancelled")

    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-time scheduler and clock.

    Nothing fires until :meth:`advance` moves the clock forward, which
    makes debounce behaviour reproducible when replaying recorded input.
    """

    def __init__(self, start_ms: int = 0) -> None:
        self._now = start_ms
        self._counter = itertools.count()
        self._queue: List[Tuple[int, int, _ManualTimer]] = []

    def now(self) -> int:
        return self._now

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(callback)
        heapq.heappush(self._queue, (self._now + max(delay_ms, 0), next(self._counter), timer))
        return timer

    @property
    def pending(self) -> int:
        """Number of armed, uncancelled timers."""
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def advance(self, delta_ms: int) -> int:
        """Move the clock forward, firing due timers in order. Returns how many fired."""
        target = self._now + delta_ms
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            self._now = due
            if timer.cancelled:
                continue
            timer.callback()
            fired += 1
        self._now = target
        return fired
