from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from domain.delivery import BreakerSnapshot

Method = Literal["POST", "DELETE"]


class DeliveryOutcome(StrEnum):
    SUCCESS = "success"
    BREAKER_OPEN = "breaker-open"
    TRANSPORT_ERROR = "transport-error"
    HTTP_ERROR = "http-error"
    INVALID = "invalid"


@dataclass(frozen=True)
class DeliveryResult:
    outcome: DeliveryOutcome
    method: str
    connection_id: str
    status_code: int | None = None
    detail: str | None = None
    elapsed_ms: float = 0.0
    bytes_sent: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome is DeliveryOutcome.SUCCESS


@dataclass(frozen=True)
class DeliveryStats:
    requests: int = 0
    messages_sent: int = 0
    bytes_sent: int = 0
    total_time_ms: float = 0.0
    errors: int = 0
    rejected: int = 0
    breaker_status: str = "closed"


class DeliveryPort(ABC):
    """Pushes or deletes one connection's series at the collector.

    `send` reports every outcome through the result; it does not raise for
    network or HTTP failures and never retries.
    """

    @abstractmethod
    def configure(self, url: str, username: str = "", password: str = "", gzip: bool = False) -> None: ...

    @abstractmethod
    async def send(
        self, method: Method, connection_id: str, job: str, block: str | None = None
    ) -> DeliveryResult: ...

    @abstractmethod
    def stats(self) -> DeliveryStats: ...

    def breaker_snapshot(self) -> BreakerSnapshot | None:
        return None

    @abstractmethod
    async def aclose(self) -> None: ...
