from __future__ import annotations

from collections.abc import Callable
from typing import Any

from ports.stats import PeerConnectionPort


def synthetic_report(tick: int, state: str = "connected") -> list[dict[str, Any]]:
    """A small stats report shaped like a browser's, with counters moving per tick."""
    return [
        {
            "type": "peer-connection",
            "id": "P",
            "timestamp": 1_700_000_000_000 + tick * 1000,
            "dataChannelsOpened": 0,
            "connectionState": state,
        },
        {
            "type": "inbound-rtp",
            "id": "IT01V",
            "kind": "video",
            "ssrc": 1001,
            "packetsReceived": 100 * (tick + 1),
            "bytesReceived": 120_000 * (tick + 1),
            "jitter": 0.004,
            "framesDecoded": 30 * (tick + 1),
        },
        {
            "type": "outbound-rtp",
            "id": "OT01V",
            "kind": "video",
            "ssrc": 2001,
            "packetsSent": 90 * (tick + 1),
            "bytesSent": 110_000 * (tick + 1),
            "active": True,
            "qualityLimitationReason": "bandwidth" if tick % 5 == 4 else "none",
            "qualityLimitationDurations": {"none": 1.5 * tick, "bandwidth": 0.1 * tick},
        },
        {
            "type": "remote-inbound-rtp",
            "id": "RI01V",
            "kind": "video",
            "ssrc": 2001,
            "roundTripTime": 0.031,
            "packetsLost": tick // 3,
        },
        {"type": "codec", "id": "CIT01_96", "mimeType": "video/VP8", "clockRate": 90000},
    ]


class FakePeerConnection(PeerConnectionPort):
    """In-memory connection. State changes fire registered callbacks synchronously."""

    def __init__(
        self,
        state: str = "connected",
        report: Callable[[int, str], list[dict[str, Any]]] = synthetic_report,
    ) -> None:
        self._state = state
        self._report = report
        self._callbacks: list[Callable[[str], None]] = []
        self.reads = 0
        self.fail_reads = False

    @property
    def connection_state(self) -> str:
        return self._state

    def set_state(self, state: str) -> None:
        self._state = state
        for cb in list(self._callbacks):
            cb(state)

    def close(self) -> None:
        self.set_state("closed")

    def get_stats(self) -> list[dict[str, Any]]:
        if self.fail_reads:
            raise RuntimeError("connection torn down")
        report = self._report(self.reads, self._state)
        self.reads += 1
        return report

    def on_state_change(self, callback: Callable[[str], None]) -> None:
        self._callbacks.append(callback)
