# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Discrete-event clock.

Virtual time is an integer number of milliseconds. Nothing happens between
calls to :meth:`EventClock.run_step` / :meth:`EventClock.run_steps`; every
"asynchronous" operation in the simulation is a timer on this clock.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class Timer:
    """Handle for a scheduled callback."""

    __slots__ = ("due", "seq", "callback", "args", "cancelled", "period")

    def __init__(
        self,
        due: int,
        seq: int,
        callback: Callable[..., Any],
        args: tuple,
        period: int | None = None,
    ):
        self.due = due
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.period = period

    def cancel(self) -> None:
        """Prevent the callback (and any later repetitions) from firing."""
        self.cancelled = True

    def __lt__(self, other: Timer) -> bool:
        return (self.due, self.seq) < (other.due, other.seq)


class EventClock:
    """Single-threaded event queue ordered by (due time, scheduling order)."""

    def __init__(self, start_ms: int = 0):
        self._now = start_ms
        self._queue: list[Timer] = []
        self._seq = itertools.count()

    @property
    def now(self) -> int:
        """Current virtual time in milliseconds."""
        return self._now

    @property
    def pending(self) -> int:
        """Number of live timers still queued."""
        return sum(1 for t in self._queue if not t.cancelled)

    def schedule(self, delay_ms: int, callback: Callable[..., Any], *args: Any) -> Timer:
        """Run ``callback(*args)`` after ``delay_ms`` of virtual time."""
        timer = Timer(self._now + max(0, int(delay_ms)), next(self._seq), callback, args)
        heapq.heappush(self._queue, timer)
        return timer

    def schedule_periodic(
        self,
        period_ms: int,
        callback: Callable[..., Any],
        *args: Any,
        first_delay_ms: int | None = None,
    ) -> Timer:
        """Run ``callback(*args)`` every ``period_ms`` until the timer is cancelled."""
        if period_ms <= 0:
            raise ValueError("period_ms must be positive")
        delay = period_ms if first_delay_ms is None else first_delay_ms
        timer = Timer(
            self._now + max(0, int(delay)), next(self._seq), callback, args, period=int(period_ms)
        )
        heapq.heappush(self._queue, timer)
        return timer

    def _pop_live(self, limit: int | None = None) -> Timer | None:
        while self._queue:
            head = self._queue[0]
            if head.cancelled:
                heapq.heappop(self._queue)
                continue
            if limit is not None and head.due > limit:
                return None
            return heapq.heappop(self._queue)
        return None

    def _fire(self, timer: Timer) -> None:
        self._now = max(self._now, timer.due)
        if timer.period is not None:
            # Re-arm before firing so the callback may cancel its own timer
            timer.due = self._now + timer.period
            timer.seq = next(self._seq)
            heapq.heappush(self._queue, timer)
        timer.callback(*timer.args)

    def run_step(self) -> bool:
        """Fire the next live timer.

        Returns:
            False if the queue was empty, True otherwise.
        """
        timer = self._pop_live()
        if timer is None:
            return False
        self._fire(timer)
        return True

    def run_steps(self, duration_ms: int) -> int:
        """Fire every timer due within ``duration_ms`` and advance time by it.

        Returns:
            Number of timers fired.
        """
        end = self._now + max(0, int(duration_ms))
        fired = 0
        while True:
            timer = self._pop_live(limit=end)
            if timer is None:
                break
            self._fire(timer)
            fired += 1
        self._now = end
        return fired
