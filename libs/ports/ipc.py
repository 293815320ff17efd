from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any


class RelayClosedError(RuntimeError):
    """Write attempted on an endpoint (or toward a peer) that is gone."""


class RelayPort(ABC):
    """One end of an ordered, duplex message channel.

    `send` never raises: a message that cannot be written (peer gone,
    endpoint closed) is dropped and reported as False.
    `recv` returns {"topic", "data", "envelope"} or None when idle.
    """

    @abstractmethod
    def send(self, topic: str, payload: Mapping[str, Any]) -> bool: ...

    @abstractmethod
    def recv(self, timeout_ms: int = 100) -> dict[str, Any] | None: ...

    @abstractmethod
    def close(self) -> None: ...

    @property
    @abstractmethod
    def closed(self) -> bool: ...


__all__ = ["RelayPort", "RelayClosedError"]
