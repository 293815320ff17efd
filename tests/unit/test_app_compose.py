from __future__ import annotations

import pytest
from adapters.ipc_inproc import InprocRelayPort
from adapters.options_store import MemoryOptionsStore, OptionsStoreError
from adapters.time.fakes import FakeClockPort, FakeSchedulerPort
from ports.ipc import RelayPort
from shared.contracts.v1.options import ExporterOptions
from shared.contracts.v1.relay_wire import TOPIC_OPTIONS

from apps.coordinator.compose import CoordinatorApp, build_relay, ensure_defaults
from apps.coordinator.settings import CoordinatorSettings
from apps.sampler.compose import SamplerApp, build_upstream
from apps.sampler.settings import SamplerSettings


class _ReadOnlyStore(MemoryOptionsStore):
    def _persist(self, values):
        raise OptionsStoreError("read-only")


def test_coordinator_compose_inproc_returns_connected_pair():
    relay, bridge_end = build_relay(CoordinatorSettings(ipc_impl="inproc"))
    assert isinstance(relay, RelayPort) and isinstance(bridge_end, RelayPort)
    assert relay.send(TOPIC_OPTIONS, {"url": ""})
    assert bridge_end.recv(timeout_ms=0)["topic"] == TOPIC_OPTIONS


def test_ensure_defaults_fills_missing_keys_only():
    store = MemoryOptionsStore({"url": "http://custom:9091"})
    opts = ensure_defaults(store, ExporterOptions())
    assert opts.url == "http://custom:9091"
    assert store.get()["job"] == "webrtc-internals-exporter"
    assert set(store.get()) == set(ExporterOptions.model_fields)


def test_ensure_defaults_survives_store_write_failure():
    opts = ensure_defaults(_ReadOnlyStore({"update_interval": 7}), ExporterOptions())
    assert opts.update_interval == 7
    assert opts.job == "webrtc-internals-exporter"


def test_ensure_defaults_degrades_to_defaults_on_invalid_options():
    store = MemoryOptionsStore({"update_interval": 500, "url": "ftp://nope"})
    assert ensure_defaults(store, ExporterOptions()) == ExporterOptions()


def test_store_changes_reach_the_coordinator():
    store = MemoryOptionsStore()
    app = CoordinatorApp(CoordinatorSettings(ipc_impl="inproc"), clock=FakeClockPort(), store=store)
    store.set({"update_interval": 10})
    assert app.coordinator.options.update_interval == 10
    msg = app.bridge_end.recv(timeout_ms=0)
    assert msg["topic"] == TOPIC_OPTIONS and msg["data"]["update_interval"] == 10


def test_sampler_inproc_needs_an_upstream():
    with pytest.raises(ValueError):
        build_upstream(SamplerSettings(ipc_impl="inproc"))


def test_sampler_app_opens_configured_connections():
    upstream, _ = InprocRelayPort.pair()
    sched = FakeSchedulerPort()
    app = SamplerApp(
        SamplerSettings(connections=3, connection_lifetime_s=5), upstream=upstream, scheduler=sched
    )
    ids = app.start()
    assert len(ids) == 3 and set(app.connections) == set(ids)
    sched.advance(5)
    assert app.connections == {}
    assert app.sampler.tracked_ids() == []
