from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from typing import Any

from ports.time import ClockPort, SchedulerPort


class FakeClockPort(ClockPort):
    """Manual clock; only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    def set(self, value: float) -> None:
        self._now = value


class _FakeTimer:
    def __init__(self, when: float, fn: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.when = when
        self.fn = fn
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeSchedulerPort(SchedulerPort):
    """Timers fire only inside `advance`, in due-time order."""

    def __init__(self, clock: FakeClockPort | None = None) -> None:
        self.clock = clock or FakeClockPort()
        self._heap: list[tuple[float, int, _FakeTimer]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any) -> _FakeTimer:
        timer = _FakeTimer(self.clock.now() + max(0.0, delay), fn, args)
        heapq.heappush(self._heap, (timer.when, next(self._seq), timer))
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, t in self._heap if not t.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every timer that falls due. Returns fired count."""
        deadline = self.clock.now() + seconds
        fired = 0
        while self._heap and self._heap[0][0] <= deadline:
            when, _, timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            self.clock.set(max(self.clock.now(), when))
            timer.fn(*timer.args)
            fired += 1
        self.clock.set(deadline)
        return fired
