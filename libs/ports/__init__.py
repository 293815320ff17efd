from .delivery import DeliveryOutcome, DeliveryPort, DeliveryResult, DeliveryStats
from .ipc import RelayClosedError, RelayPort
from .options import OptionsStorePort
from .stats import PeerConnectionPort
from .time import ClockPort, SchedulerPort, TimerHandle

__all__ = [
    "RelayPort",
    "RelayClosedError",
    "PeerConnectionPort",
    "DeliveryPort",
    "DeliveryResult",
    "DeliveryOutcome",
    "DeliveryStats",
    "OptionsStorePort",
    "ClockPort",
    "SchedulerPort",
    "TimerHandle",
]
