from __future__ import annotations

import asyncio
import logging
from typing import Final

from adapters.ipc_inproc import InprocRelayPort
from adapters.stats_source import FakePeerConnection
from adapters.time import AsyncioSchedulerPort
from domain.relay import RelayBridge
from domain.sampler import StatsSampler
from ports.ipc import RelayPort
from ports.time import SchedulerPort

from apps.sampler.settings import SamplerSettings

LOG: Final = logging.getLogger("sampler")

READY_RETRY_S: Final = 1.0


def build_upstream(settings: SamplerSettings) -> RelayPort:
    if settings.ipc_impl == "zmq":
        from adapters.ipc_zmq import ZmqRelayPort

        return ZmqRelayPort.connect(
            send_addr=settings.samples_connect, recv_addr=settings.options_connect
        )
    raise ValueError("inproc transport needs the coordinator end passed in as upstream")


class SamplerApp:
    """Page side in one process: synthetic connections -> StatsSampler -> bridge -> upstream."""

    def __init__(
        self,
        settings: SamplerSettings,
        *,
        upstream: RelayPort | None = None,
        scheduler: SchedulerPort | None = None,
    ) -> None:
        self.settings = settings
        self.upstream = upstream or build_upstream(settings)
        self.page, bridge_side = InprocRelayPort.pair("page", "bridge")
        self.bridge = RelayBridge(bridge_side, self.upstream, settings.page_url)
        self.scheduler = scheduler or AsyncioSchedulerPort()
        self.sampler = StatsSampler(self.scheduler, self.page, settings.page_url)
        self.sampler.on_removed(self._removed)
        self.connections: dict[str, FakePeerConnection] = {}
        self._running = True

    def _removed(self, conn_id: str) -> None:
        self.connections.pop(conn_id, None)
        LOG.info("connection %s removed (%d left)", conn_id, len(self.connections))

    def open_connection(self) -> str:
        pc = FakePeerConnection()
        conn_id = self.sampler.add(pc)
        self.connections[conn_id] = pc
        lifetime = self.settings.connection_lifetime_s
        if lifetime:
            self.scheduler.call_later(lifetime, pc.close)
        return conn_id

    def start(self) -> list[str]:
        self.sampler.announce_ready()
        return [self.open_connection() for _ in range(self.settings.connections)]

    def pump(self) -> int:
        """One pass page <-> bridge <-> upstream, then apply any config push."""
        moved = self.bridge.pump_once()
        moved += self.sampler.drain_inbox()
        return moved

    async def run(self, idle_s: float = 0.05) -> None:
        self.start()
        loop = asyncio.get_running_loop()
        next_ready = loop.time() + READY_RETRY_S
        try:
            while self._running:
                if not self.pump():
                    await asyncio.sleep(idle_s)
                # PUB/SUB drops whatever is sent before the subscription settles
                if not self.sampler.config.url and loop.time() >= next_ready:
                    self.sampler.announce_ready()
                    next_ready = loop.time() + READY_RETRY_S
        finally:
            self.close()

    def stop(self) -> None:
        self._running = False

    def close(self) -> None:
        self._running = False
        self.sampler.close()
        self.page.close()
        self.bridge.page.close()
        self.upstream.close()
