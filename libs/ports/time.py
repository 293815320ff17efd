from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Protocol


class ClockPort(ABC):
    @abstractmethod
    def now(self) -> float: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class SchedulerPort(ABC):
    """One-shot timers. Repeating work re-arms itself through a new handle."""

    @abstractmethod
    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any) -> TimerHandle: ...
