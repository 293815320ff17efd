# libs/domain/sampler/service.py
from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Final

from ports.ipc import RelayPort
from ports.stats import PeerConnectionPort
from ports.time import SchedulerPort, TimerHandle
from shared.contracts.v1.relay_wire import TOPIC_READY, TOPIC_SAMPLE, normalize
from shared.contracts.v1.stats import PEER_CONNECTION_TYPE, TERMINAL_STATES, ConfigPush, Sample

LOG: Final = logging.getLogger("sampler")


def new_connection_id() -> str:
    return str(uuid.uuid4())


@dataclass
class TrackedConnection:
    connection_id: str
    connection: PeerConnectionPort
    timer: TimerHandle | None = None


class StatsSampler:
    """Page-side producer: one repeating collection task per tracked connection.

    Each task re-arms itself through the scheduler and keeps its handle on
    the tracked record, so stopping a connection is an explicit cancel.
    """

    def __init__(
        self,
        scheduler: SchedulerPort,
        relay: RelayPort,
        page_url: str,
        id_factory: Callable[[], str] = new_connection_id,
    ) -> None:
        self.scheduler: Final = scheduler
        self.relay: Final = relay
        self.page_url = page_url
        self._new_id = id_factory
        self._tracked: dict[str, TrackedConnection] = {}
        self._removed_listeners: list[Callable[[str], None]] = []
        self.config = ConfigPush()

    # --- configuration ----------------------------------------------------

    def apply_config(self, push: ConfigPush) -> None:
        self.config = push
        LOG.debug(
            "config: enabled=%s interval=%sms stats=%s",
            push.enabled,
            push.update_interval,
            push.enabled_stats,
        )

    def announce_ready(self) -> bool:
        return self.relay.send(TOPIC_READY, {})

    @property
    def active(self) -> bool:
        return bool(self.config.url) and self.config.enabled

    @property
    def interval_s(self) -> float:
        return max(self.config.update_interval, 1) / 1000.0

    # --- lifecycle --------------------------------------------------------

    def on_removed(self, listener: Callable[[str], None]) -> None:
        self._removed_listeners.append(listener)

    def tracked_ids(self) -> list[str]:
        return list(self._tracked)

    def add(self, connection: PeerConnectionPort) -> str:
        """Track a freshly created connection; the first collection runs now."""
        conn_id = self._new_id()
        self._tracked[conn_id] = TrackedConnection(conn_id, connection)
        LOG.info("tracking connection %s (%d active)", conn_id, len(self._tracked))
        connection.on_state_change(lambda state: self._state_changed(conn_id, state))
        self.collect(conn_id)
        return conn_id

    def remove(self, conn_id: str) -> None:
        tracked = self._tracked.pop(conn_id, None)
        if tracked is None:
            return
        if tracked.timer is not None:
            tracked.timer.cancel()
        for listener in self._removed_listeners:
            listener(conn_id)

    def close(self) -> None:
        for conn_id in list(self._tracked):
            self.remove(conn_id)

    def _state_changed(self, conn_id: str, state: str) -> None:
        LOG.debug("connection %s state -> %s", conn_id, state)
        if state in TERMINAL_STATES and conn_id in self._tracked:
            # final collection now; collect() sees the terminal state and stops
            self.collect(conn_id)

    # --- one tick ---------------------------------------------------------

    def collect(self, conn_id: str) -> None:
        tracked = self._tracked.get(conn_id)
        if tracked is None:
            return
        if tracked.timer is not None:
            tracked.timer.cancel()
            tracked.timer = None

        pc = tracked.connection
        state = pc.connection_state
        if self.active:
            try:
                report = list(pc.get_stats())
            except Exception as ex:
                # torn down underneath us
                LOG.info("stats read failed for %s, stopping: %r", conn_id, ex)
                self.remove(conn_id)
                return
            wanted = {PEER_CONNECTION_TYPE, *self.config.enabled_stats}
            values = [
                dict(v) for v in report if isinstance(v, Mapping) and v.get("type") in wanted
            ]
            if values:
                self._emit(Sample(url=self.page_url, id=conn_id, state=state, values=values))

        if state in TERMINAL_STATES:
            LOG.info("connection %s is %s, sampling stopped", conn_id, state)
            self.remove(conn_id)
            return
        tracked.timer = self.scheduler.call_later(self.interval_s, self.collect, conn_id)

    def _emit(self, sample: Sample) -> None:
        if not self.relay.send(TOPIC_SAMPLE, sample.model_dump(mode="json")):
            # the next tick carries fresher data; nothing to retry
            LOG.debug("sample for %s dropped by relay", sample.id)

    # --- inbound configuration ---------------------------------------------

    def drain_inbox(self, max_messages: int = 100) -> int:
        """Apply configuration pushes waiting on the relay. Returns how many."""
        applied = 0
        for _ in range(max_messages):
            msg = self.relay.recv(timeout_ms=0)
            if msg is None:
                break
            push = normalize(msg)
            if isinstance(push, ConfigPush):
                self.apply_config(push)
                applied += 1
        return applied
