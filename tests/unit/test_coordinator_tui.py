# tests/unit/test_coordinator_tui.py
from adapters.options_store import MemoryOptionsStore
from adapters.time.fakes import FakeClockPort
from apps.coordinator.compose import CoordinatorApp
from apps.coordinator.settings import CoordinatorSettings
from apps.coordinator.tui import ExporterTUI


def make_tui():
    clock = FakeClockPort(start=10_000.0)
    exporter = CoordinatorApp(
        CoordinatorSettings(ipc_impl="inproc"), clock=clock, store=MemoryOptionsStore()
    )
    # Use the real constructor so Textual's Reactable init runs
    tui = ExporterTUI(exporter)
    tui._table = None
    tui._status = None
    return tui, clock


def test_classify_live_late_stale():
    tui, clock = make_tui()
    reg = tui.exporter.registry
    reg.record_delivery("live", "https://meet.google.com", clock.now() - 1)
    reg.record_delivery("late", "https://meet.google.com", clock.now() - 10)
    reg.record_delivery("stale", "https://meet.google.com", clock.now() - 31)
    tui._sync_rows()

    assert tui._classify(tui.rows["live"]) == "LIVE"
    assert tui._classify(tui.rows["late"]) == "LATE"
    assert tui._classify(tui.rows["stale"]) == "STALE"


def test_sorted_rows_by_last_update_origin_and_id():
    tui, clock = make_tui()
    reg = tui.exporter.registry
    reg.record_delivery("b", "https://a.example", clock.now() - 1)
    reg.record_delivery("a", "https://z.example", clock.now() - 5)
    tui._sync_rows()

    tui._sort_mode = "last"
    assert [r.connection_id for r in tui._sorted_rows()] == ["b", "a"]

    tui._sort_mode = "origin"
    assert [r.connection_id for r in tui._sorted_rows()] == ["b", "a"]

    tui._sort_mode = "id"
    assert [r.connection_id for r in tui._sorted_rows()] == ["a", "b"]


def test_status_text_shows_breaker_and_counters():
    tui, clock = make_tui()
    tui.exporter.registry.record_delivery("pc", "https://meet.google.com", clock.now())
    s = tui._status_text()
    assert "Connections: 1" in s
    assert "Breaker: closed" in s
    assert "Last sweep: —" in s


def test_status_text_shows_failing_breaker():
    tui, _ = make_tui()
    delivery = tui.exporter.delivery
    breaker = delivery.breakers.get(delivery.url)
    for _ in range(3):
        breaker.record_failure()
    assert "Breaker: open (3 failures)" in tui._status_text()


def test_rows_carry_collection_status_per_origin():
    tui, clock = make_tui()
    tui.exporter.coordinator.apply_options({"enabled_origins": {"https://meet.google.com": False}})
    tui.exporter.registry.record_delivery("pc", "https://meet.google.com", clock.now())
    tui.exporter.registry.record_delivery("x", "https://example.com", clock.now())
    tui._sync_rows()
    assert tui._collection_status(tui.rows["pc"]) == "Disabled"
    assert tui._collection_status(tui.rows["x"]) == "Manual"
