"""Cancellable delayed tasks -- the assistant's "typing" latency.

Two schedulers share one interface, schedule(delay, callback) -> ScheduledTask:

    AsyncioScheduler  -- real timers on the running event loop (call_later)
    ManualScheduler   -- a virtual clock that tests advance by hand

Callbacks always run on the thread that owns the scheduler, so conversation
state never needs a lock.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable

from carebot.log import logger

# Absorbs float drift when a test advances in steps (1.99 + 0.01 == 2.0).
_CLOCK_TOLERANCE = 1e-9


class ScheduledTask:
    """Handle for one deferred callback. Runs at most once; cancel() wins if it comes first."""

    def __init__(self, callback: Callable[[], None], delay: float) -> None:
        self._callback = callback
        self.delay = delay
        self._cancelled = False
        self._done = False
        self._timer: asyncio.TimerHandle | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._done

    @property
    def pending(self) -> bool:
        return not (self._cancelled or self._done)

    def cancel(self) -> bool:
        """Cancel the task. Returns False if it already ran or was already cancelled."""
        if not self.pending:
            return False
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        return True

    def _run(self) -> None:
        if not self.pending:
            return
        self._done = True
        self._timer = None
        self._callback()


class AsyncioScheduler:
    """Schedules callbacks on an asyncio event loop.

    With no loop given, the loop running at schedule() time is used, so this
    must be called from a coroutine or a callback on that loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        loop = self._loop or asyncio.get_running_loop()
        task = ScheduledTask(callback, delay)
        task._timer = loop.call_later(max(0.0, delay), task._run)
        return task


class ManualScheduler:
    """Virtual-clock scheduler. Nothing runs until advance() or run_all() is called."""

    def __init__(self) -> None:
        self._now = 0.0
        self._heap: list[tuple[float, int, ScheduledTask]] = []
        self._seq = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        """Number of tasks still waiting to run."""
        return sum(1 for _, _, task in self._heap if task.pending)

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask(callback, delay)
        heapq.heappush(self._heap, (self._now + max(0.0, delay), next(self._seq), task))
        return task

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every task that falls due. Returns how many ran.

        Tasks scheduled by a callback run too if they fall due inside the window.
        """
        if seconds < 0:
            raise ValueError("cannot move the clock backwards")
        target = self._now + seconds
        ran = 0
        while self._heap and self._heap[0][0] <= target + _CLOCK_TOLERANCE:
            due, _, task = heapq.heappop(self._heap)
            self._now = max(self._now, due)
            if task.pending:
                task._run()
                ran += 1
        self._now = max(self._now, target)
        return ran

    def run_all(self, max_tasks: int = 1000) -> int:
        """Run tasks in due order until none are left. Returns how many ran."""
        ran = 0
        while self._heap:
            if ran >= max_tasks:
                logger.warning("ManualScheduler.run_all stopped after %d tasks", max_tasks)
                break
            due = self._heap[0][0]
            ran += self.advance(max(0.0, due - self._now))
        return ran
