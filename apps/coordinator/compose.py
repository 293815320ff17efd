from __future__ import annotations

import asyncio
import logging
from typing import Any, Final

import httpx
from adapters.ipc_inproc import InprocRelayPort
from adapters.options_store import JsonFileOptionsStore, MemoryOptionsStore, OptionsStoreError
from adapters.pushgateway_httpx import PushgatewayClient
from adapters.time import SystemClockPort
from domain.connections import ConnectionRegistry
from domain.coordinator import Coordinator
from domain.delivery import BreakerRegistry
from ports.ipc import RelayPort
from ports.options import OptionsStorePort
from ports.time import ClockPort
from pydantic import ValidationError
from shared.contracts.v1.options import ExporterOptions

from apps.coordinator.settings import CoordinatorSettings

LOG: Final = logging.getLogger("coordinator")


def build_relay(settings: CoordinatorSettings) -> tuple[RelayPort, RelayPort | None]:
    """Coordinator endpoint, plus the bridge-side peer when running in-process."""
    if settings.ipc_impl == "zmq":
        from adapters.ipc_zmq import ZmqRelayPort

        return ZmqRelayPort.bind(send_addr=settings.options_bind, recv_addr=settings.samples_bind), None

    coordinator_end, bridge_end = InprocRelayPort.pair("coordinator", "bridge")
    return coordinator_end, bridge_end


def build_options_store(settings: CoordinatorSettings) -> OptionsStorePort:
    if not settings.options_file:
        return MemoryOptionsStore()
    try:
        return JsonFileOptionsStore(settings.options_file)
    except OptionsStoreError as ex:
        LOG.error("%s; options will not persist this run", ex)
        return MemoryOptionsStore()


def ensure_defaults(store: OptionsStorePort, defaults: ExporterOptions) -> ExporterOptions:
    """Fill in missing option keys, then return the validated result.

    A store that refuses the write leaves the defaults in memory only; options
    that fail validation are replaced wholesale by `defaults`.
    """
    current = store.get()
    missing = {k: v for k, v in defaults.model_dump(mode="json").items() if k not in current}
    if missing:
        try:
            store.set(missing)
            current = store.get()
        except OptionsStoreError as ex:
            LOG.error("could not store default options: %s", ex)
            current = {**missing, **current}
    try:
        return ExporterOptions.model_validate(current)
    except ValidationError as ex:
        LOG.error("stored options are invalid, running with defaults: %s", ex.errors())
        return defaults


class CoordinatorApp:
    def __init__(
        self,
        settings: CoordinatorSettings,
        *,
        clock: ClockPort | None = None,
        relay: RelayPort | None = None,
        store: OptionsStorePort | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.clock = clock or SystemClockPort()
        if relay is None:
            self.relay, self.bridge_end = build_relay(settings)
        else:
            self.relay, self.bridge_end = relay, None
        self.store = store or build_options_store(settings)
        options = ensure_defaults(self.store, settings.options)

        self.delivery = PushgatewayClient(
            self.clock,
            timeout_s=settings.request_timeout_s,
            breakers=BreakerRegistry(
                self.clock,
                failure_threshold=settings.breaker_failure_threshold,
                cooldown_s=settings.breaker_cooldown_s,
            ),
            transport=transport,
        )
        self.registry = ConnectionRegistry()
        self.coordinator = Coordinator(
            self.registry,
            self.delivery,
            self.relay,
            self.clock,
            options=options,
            stale_after_s=settings.stale_after_s,
        )
        self._unsubscribe = self.store.on_change(self._options_changed)
        self._running = True

    def _options_changed(self, changes: dict[str, Any]) -> None:
        self.coordinator.apply_options(changes)

    async def relay_loop(self, idle_s: float = 0.05) -> None:
        LOG.info("relay loop starting (%s)", self.settings.ipc_impl)
        while self._running:
            handled = await self.coordinator.drain_relay()
            if not handled:
                await asyncio.sleep(idle_s)

    async def cleanup_loop(self) -> None:
        interval = self.settings.cleanup_interval_minutes * 60.0
        LOG.info("cleanup every %.0f min", self.settings.cleanup_interval_minutes)
        while self._running:
            await asyncio.sleep(interval)
            try:
                await self.coordinator.sweep()
            except Exception:
                LOG.exception("cleanup sweep failed")

    async def run(self) -> None:
        self.coordinator.publish_options()
        tasks = [
            asyncio.create_task(self.relay_loop(), name="relay"),
            asyncio.create_task(self.cleanup_loop(), name="cleanup"),
        ]
        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            LOG.info("coordinator cancelled")
        finally:
            for t in tasks:
                t.cancel()
            await self.aclose()

    def stop(self) -> None:
        self._running = False

    async def aclose(self) -> None:
        self._running = False
        self._unsubscribe()
        await self.delivery.aclose()
        self.relay.close()
