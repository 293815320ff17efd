from .system import AsyncioSchedulerPort, SystemClockPort

__all__ = ["SystemClockPort", "AsyncioSchedulerPort"]
