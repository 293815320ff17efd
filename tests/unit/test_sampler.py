from __future__ import annotations

import itertools

from adapters.ipc_inproc import InprocRelayPort
from adapters.stats_source import FakePeerConnection
from adapters.time.fakes import FakeSchedulerPort
from domain.sampler import StatsSampler
from shared.contracts.v1.relay_wire import TOPIC_CONFIG, TOPIC_READY, TOPIC_SAMPLE, normalize
from shared.contracts.v1.stats import ConfigPush, Sample

PAGE = "https://meet.google.com/abc-defg-hij"
CONFIG = ConfigPush(
    url="http://pgw:9091", enabled=True, update_interval=1000, enabled_stats=["inbound-rtp"]
)


def _make(config: ConfigPush | None = CONFIG):
    page, bridge = InprocRelayPort.pair("page", "bridge")
    sched = FakeSchedulerPort()
    ids = (f"pc-{n}" for n in itertools.count(1))
    sampler = StatsSampler(sched, page, PAGE, id_factory=lambda: next(ids))
    if config is not None:
        sampler.apply_config(config)
    return sampler, sched, bridge


def _samples(bridge: InprocRelayPort) -> list[Sample]:
    out = []
    while (msg := bridge.recv(timeout_ms=0)) is not None:
        if msg["topic"] == TOPIC_SAMPLE:
            decoded = normalize(msg)
            assert isinstance(decoded, Sample)
            out.append(decoded)
    return out


def test_first_sample_immediately_then_every_interval():
    sampler, sched, bridge = _make()
    conn_id = sampler.add(FakePeerConnection())
    assert conn_id == "pc-1"
    assert len(_samples(bridge)) == 1

    sched.advance(0.5)
    assert _samples(bridge) == []
    sched.advance(0.5)
    assert len(_samples(bridge)) == 1
    sched.advance(3.0)
    assert len(_samples(bridge)) == 3


def test_samples_only_carry_enabled_types_plus_peer_connection():
    sampler, _, bridge = _make()
    sampler.add(FakePeerConnection())
    (s,) = _samples(bridge)
    assert s.url == PAGE and s.state == "connected"
    assert {v["type"] for v in s.values} == {"peer-connection", "inbound-rtp"}


def test_terminal_state_emits_final_sample_and_stops():
    sampler, sched, bridge = _make()
    pc = FakePeerConnection()
    conn_id = sampler.add(pc)
    _samples(bridge)

    pc.set_state("closed")
    final = _samples(bridge)
    assert [s.state for s in final] == ["closed"]
    assert conn_id not in sampler.tracked_ids()
    assert sched.pending == 0
    sched.advance(10)
    assert _samples(bridge) == []


def test_failed_state_also_stops_sampling():
    sampler, sched, bridge = _make()
    pc = FakePeerConnection()
    sampler.add(pc)
    pc.set_state("failed")
    assert [s.state for s in _samples(bridge)][-1] == "failed"
    assert sampler.tracked_ids() == []


def test_stats_read_failure_removes_connection_and_notifies():
    sampler, sched, bridge = _make()
    removed: list[str] = []
    sampler.on_removed(removed.append)
    pc = FakePeerConnection()
    conn_id = sampler.add(pc)
    pc.fail_reads = True
    sched.advance(1.0)
    assert removed == [conn_id]
    assert sampler.tracked_ids() == []
    assert sched.pending == 0


def test_inactive_without_url_or_enabled_but_keeps_ticking():
    sampler, sched, bridge = _make(ConfigPush(url="", enabled=True, update_interval=1000))
    pc = FakePeerConnection()
    sampler.add(pc)
    assert _samples(bridge) == []
    assert pc.reads == 0
    assert sched.pending == 1

    sampler.apply_config(CONFIG.model_copy(update={"enabled": False}))
    sched.advance(1.0)
    assert _samples(bridge) == []

    sampler.apply_config(CONFIG)
    sched.advance(1.0)
    assert len(_samples(bridge)) == 1


def test_independent_ids_per_connection():
    sampler, _, bridge = _make()
    a = sampler.add(FakePeerConnection())
    b = sampler.add(FakePeerConnection())
    assert a != b
    assert {s.id for s in _samples(bridge)} == {a, b}


def test_close_cancels_all_timers():
    sampler, sched, _ = _make()
    sampler.add(FakePeerConnection())
    sampler.add(FakePeerConnection())
    sampler.close()
    assert sampler.tracked_ids() == []
    assert sched.pending == 0


def test_drain_inbox_applies_config_and_ready_goes_out():
    sampler, _, bridge = _make(config=None)
    assert sampler.announce_ready()
    assert bridge.recv(timeout_ms=0)["topic"] == TOPIC_READY
    bridge.send(TOPIC_CONFIG, CONFIG.wire())
    assert sampler.drain_inbox() == 1
    assert sampler.active and sampler.interval_s == 1.0
