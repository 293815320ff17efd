from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from queue import Empty, SimpleQueue
from typing import Any, Final

from ports.ipc import RelayClosedError, RelayPort
from shared.contracts.v1.relay_wire import RelayEnvelope

LOG: Final = logging.getLogger("relay.inproc")


class InprocRelayPort(RelayPort):
    """Queue-backed endpoint. Create connected endpoints with `pair()`."""

    def __init__(self, name: str = "inproc") -> None:
        self.name = name
        self._inbox: SimpleQueue[dict[str, Any]] = SimpleQueue()
        self._peer: InprocRelayPort | None = None
        self._closed = False

    @classmethod
    def pair(cls, left: str = "left", right: str = "right") -> tuple[InprocRelayPort, InprocRelayPort]:
        a, b = cls(left), cls(right)
        a._peer, b._peer = b, a
        return a, b

    @property
    def closed(self) -> bool:
        return self._closed

    def _write(self, msg: dict[str, Any]) -> None:
        peer = self._peer
        if self._closed or peer is None or peer._closed:
            raise RelayClosedError(f"{self.name}: peer unavailable")
        peer._inbox.put(msg)

    def send(self, topic: str, payload: Mapping[str, Any]) -> bool:
        env = RelayEnvelope(msg_id=str(uuid.uuid4()), topic=topic, data=dict(payload))
        envelope = env.model_dump(mode="json")
        try:
            self._write({"topic": topic, "data": envelope["data"], "envelope": envelope})
        except RelayClosedError as ex:
            LOG.debug("dropping %s message: %s", topic, ex)
            return False
        return True

    def recv(self, timeout_ms: int = 100) -> dict[str, Any] | None:
        if self._closed:
            return None
        try:
            if timeout_ms <= 0:
                return self._inbox.get_nowait()
            return self._inbox.get(timeout=timeout_ms / 1000.0)
        except Empty:
            return None

    def close(self) -> None:
        self._closed = True
