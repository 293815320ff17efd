from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

from ports.time import ClockPort, SchedulerPort, TimerHandle


class SystemClockPort(ClockPort):
    """Wall-clock seconds; registry timestamps are shown to humans."""

    def now(self) -> float:
        return time.time()


class AsyncioSchedulerPort(SchedulerPort):
    """Timers on an asyncio loop. Must be used from the loop's thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay), fn, *args)
