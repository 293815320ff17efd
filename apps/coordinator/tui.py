from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from domain.origins import domain_status
from rich.text import Text
from shared.config.loader import load_coordinator_settings
from textual.app import App, ComposeResult
from textual.reactive import reactive
from textual.widgets import DataTable, Footer, Header, Static

from apps.coordinator.compose import CoordinatorApp


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, UTC).replace(microsecond=0).isoformat()


def _fmt_bytes(n: int) -> str:
    size = float(n)
    for unit in ("B", "KiB", "MiB"):
        if size < 1024:
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}GiB"


@dataclass
class ConnectionRow:
    connection_id: str
    origin: str
    last_update_at: float | None = None


class ExporterTUI(App):
    CSS_PATH = None
    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
        ("s", "sort", "Sort"),
        ("w", "sweep", "Sweep"),
        ("?", "help", "Help"),
    ]

    rows: reactive[dict[str, ConnectionRow]] = reactive(dict)

    def __init__(self, exporter: CoordinatorApp | None = None) -> None:
        super().__init__()
        self.exporter = exporter or CoordinatorApp(load_coordinator_settings())
        self._table: DataTable | None = None
        self._status: Static | None = None
        self._sort_mode: str = "last"  # last | origin | id

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        s = self.exporter.settings
        yield Static(
            f"[b]ipc_impl[/b]= {s.ipc_impl} • samples: {s.samples_bind} • "
            f"job: {self.exporter.coordinator.options.job}"
        )
        table = DataTable(zebra_stripes=True)
        table.add_columns("Connection", "Origin", "Collection", "Last Update (UTC)", "Age", "Status")
        self._table = table
        self._status = Static("")
        yield table
        yield self._status
        yield Footer()

    def on_mount(self) -> None:
        self.run_worker(self.exporter.run(), name="coordinator", exclusive=True)
        self.set_interval(1.0, self._refresh_table)
        self._refresh_table()

    def on_unmount(self) -> None:
        self.exporter.stop()

    # ----- Actions (key bindings) -----

    def action_quit(self) -> None:
        self.exporter.stop()
        self.exit()

    def action_refresh(self) -> None:
        self._refresh_table()

    def action_sort(self) -> None:
        self._sort_mode = {"last": "origin", "origin": "id", "id": "last"}[self._sort_mode]
        self.notify(f"Sort: {self._sort_mode}", severity="information")
        self._refresh_table()

    def action_sweep(self) -> None:
        self.run_worker(self._sweep(), name="sweep")

    def action_help(self) -> None:
        self.notify(
            "Keys: q quit • r refresh • s sort • w sweep now • ? help\n"
            "Sort cycles: last update → origin → id\n"
            "Rows turn yellow when late; red once past the stale threshold.",
            severity="information",
        )

    async def _sweep(self) -> None:
        retired = await self.exporter.coordinator.sweep()
        self.notify(f"Sweep retired {len(retired)} connection(s)", severity="information")
        self._refresh_table()

    # ----- Table rendering -----

    def _sync_rows(self) -> None:
        self.rows = {
            r.connection_id: ConnectionRow(r.connection_id, r.origin, r.last_update_at)
            for r in self.exporter.registry.records()
        }

    def _age(self, row: ConnectionRow) -> float | None:
        if row.last_update_at is None:
            return None
        return max(0.0, self.exporter.clock.now() - row.last_update_at)

    def _refresh_table(self) -> None:
        self._sync_rows()
        if not self._table:
            return
        self._table.clear()
        styles = {"LIVE": "green", "LATE": "yellow", "STALE": "red"}
        for row in self._sorted_rows():
            status = self._classify(row)
            age = self._age(row)
            self._table.add_row(
                row.connection_id,
                row.origin,
                self._collection_status(row),
                _fmt_ts(row.last_update_at),
                f"{age:.0f}s" if age is not None else "-",
                Text(status, style=styles.get(status, "")),
            )
        if self._status:
            self._status.update(self._status_text())

    def _collection_status(self, row: ConnectionRow) -> str:
        return domain_status(row.origin, self.exporter.coordinator.options.enabled_origins)

    def _classify(self, row: ConnectionRow) -> str:
        """LIVE | LATE | STALE from the age of the last delivery."""
        age = self._age(row)
        if age is None:
            return "STALE"
        coord = self.exporter.coordinator
        if age > coord.stale_threshold_s:
            return "STALE"
        return "LATE" if age > 2 * coord.options.update_interval else "LIVE"

    def _sorted_rows(self) -> list[ConnectionRow]:
        items = list(self.rows.values())
        if self._sort_mode == "origin":
            items.sort(key=lambda r: (r.origin, r.connection_id))
        elif self._sort_mode == "id":
            items.sort(key=lambda r: r.connection_id)
        else:  # "last"
            items.sort(key=lambda r: r.last_update_at or 0.0, reverse=True)
        return items

    def _status_text(self) -> str:
        st = self.exporter.coordinator.status()
        d = st.delivery
        breaker = d.breaker_status
        if st.breaker is not None and st.breaker.consecutive_failures:
            breaker = f"{st.breaker.status} ({st.breaker.consecutive_failures} failures)"
        last_sweep = _fmt_ts(st.last_sweep_at) if st.last_sweep_at is not None else "—"
        return (
            f"Connections: {st.connections} • Breaker: {breaker}"
            f" • Sent: {d.messages_sent} ({_fmt_bytes(d.bytes_sent)})"
            f" • Errors: {d.errors} • Rejected: {d.rejected}"
            f" • Last sweep: {last_sweep} • Sort: {self._sort_mode} • Q quit  ? help"
        )
