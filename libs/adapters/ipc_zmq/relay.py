import json
import logging
import uuid
from collections.abc import Mapping
from typing import Any, Final

import zmq
from ports.ipc import RelayClosedError, RelayPort
from shared.contracts.v1.relay_wire import RelayEnvelope

LOG: Final = logging.getLogger("relay.zmq")

# --------- Common helpers ---------


def _new_ctx() -> zmq.Context:
    return zmq.Context.instance()


def _set_common(sock: zmq.Socket, rcv_ms: int = 500, snd_ms: int = 500) -> None:
    sock.setsockopt(zmq.LINGER, 0)
    sock.setsockopt(zmq.RCVTIMEO, rcv_ms)
    sock.setsockopt(zmq.SNDTIMEO, snd_ms)


# --------- Relay endpoint (PUB out, SUB in) ---------


class ZmqRelayPort(RelayPort):
    """
    One relay endpoint made of a PUB socket (outgoing) and a SUB socket (incoming).
    The coordinator side binds both; bridges connect both, crossed over:

        coordinator.bind(send_addr=options, recv_addr=samples)
        bridge.connect(send_addr=samples, recv_addr=options)
    """

    def __init__(self, send_addr: str, recv_addr: str, *, bind: bool) -> None:
        self._ctx = _new_ctx()
        self._pub = self._ctx.socket(zmq.PUB)
        self._sub = self._ctx.socket(zmq.SUB)
        _set_common(self._pub)
        _set_common(self._sub)
        self._sub.setsockopt(zmq.SUBSCRIBE, b"")
        # Prevent unbounded growth
        self._sub.setsockopt(zmq.RCVHWM, 1000)
        self._pub.setsockopt(zmq.SNDHWM, 1000)
        if bind:
            self._pub.bind(send_addr)
            self._sub.bind(recv_addr)
        else:
            self._pub.connect(send_addr)
            self._sub.connect(recv_addr)
        self._closed = False

    @classmethod
    def bind(cls, send_addr: str, recv_addr: str) -> "ZmqRelayPort":
        return cls(send_addr, recv_addr, bind=True)

    @classmethod
    def connect(cls, send_addr: str, recv_addr: str) -> "ZmqRelayPort":
        return cls(send_addr, recv_addr, bind=False)

    @property
    def closed(self) -> bool:
        return self._closed

    def _write(self, topic: str, body: bytes) -> None:
        if self._closed:
            raise RelayClosedError("endpoint closed")
        try:
            self._pub.send_multipart([topic.encode("utf-8"), body], flags=zmq.NOBLOCK)
        except zmq.ZMQError as ex:
            raise RelayClosedError(str(ex)) from ex

    def send(self, topic: str, payload: Mapping[str, Any]) -> bool:
        env = RelayEnvelope(msg_id=str(uuid.uuid4()), topic=topic, data=dict(payload))
        body = json.dumps(env.model_dump(mode="json")).encode("utf-8")
        try:
            self._write(topic, body)
        except RelayClosedError as ex:
            LOG.warning("dropping %s message: %s", topic, ex)
            return False
        return True

    def recv(self, timeout_ms: int = 100) -> dict[str, Any] | None:
        if self._closed:
            return None
        if not self._sub.poll(timeout=max(0, timeout_ms)):
            return None
        try:
            topic, data = self._sub.recv_multipart(flags=zmq.NOBLOCK)
        except (zmq.ZMQError, ValueError) as ex:
            LOG.debug("recv failed: %s", ex)
            return None
        try:
            decoded = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            LOG.debug("dropping undecodable frame on topic %r", topic)
            return None
        if not isinstance(decoded, dict):
            return None
        if "topic" not in decoded and "data" not in decoded:
            # raw page message published without an envelope
            return decoded
        return {
            "topic": topic.decode("utf-8", errors="replace"),
            "data": decoded.get("data", {}),
            "envelope": decoded,
        }

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pub.close(0)
        self._sub.close(0)
