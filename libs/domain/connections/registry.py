from __future__ import annotations

import logging
from collections import Counter, OrderedDict
from dataclasses import dataclass
from typing import Final

LOG: Final = logging.getLogger("registry")


@dataclass
class ConnectionRecord:
    connection_id: str
    origin: str
    # None: never delivered, or retired
    last_update_at: float | None = None


class ConnectionRegistry:
    """Liveness of every connection whose series exists at the collector.

    A record is created by the first successful delivery and lives until
    the id is retired. Ids retired for good (the connection closed) are
    remembered, bounded, so a late delivery can never bring them back; an
    id dropped by the staleness sweep is tracked again by its next
    successful delivery.
    """

    def __init__(self, max_retired: int = 10_000) -> None:
        self._records: dict[str, ConnectionRecord] = {}
        self._retired: OrderedDict[str, None] = OrderedDict()
        self._max_retired = max(1, max_retired)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def get(self, connection_id: str) -> ConnectionRecord | None:
        return self._records.get(connection_id)

    def records(self) -> list[ConnectionRecord]:
        return list(self._records.values())

    def is_retired(self, connection_id: str) -> bool:
        return connection_id in self._retired

    def record_delivery(self, connection_id: str, origin: str, timestamp: float) -> bool:
        """Advance the staleness clock after a successful delivery only."""
        if connection_id in self._retired:
            LOG.debug("ignoring delivery for retired connection %s", connection_id)
            return False
        rec = self._records.get(connection_id)
        if rec is None:
            self._records[connection_id] = ConnectionRecord(connection_id, origin, timestamp)
            LOG.info("connection tracked: %s (%s)", connection_id, origin)
        else:
            rec.origin = origin
            rec.last_update_at = timestamp
        return True

    def record_retirement(self, connection_id: str, *, final: bool = True) -> ConnectionRecord | None:
        """Drop the record; with `final`, also block the id from ever coming back."""
        rec = self._records.pop(connection_id, None)
        if rec is not None:
            rec.last_update_at = None
            LOG.info("connection retired: %s (%s)", connection_id, rec.origin)
        if final:
            self._retired[connection_id] = None
            self._retired.move_to_end(connection_id)
            while len(self._retired) > self._max_retired:
                self._retired.popitem(last=False)
        return rec

    def sweep_stale(self, now: float, max_age: float) -> list[str]:
        """Ids whose last delivery predates `now - max_age`."""
        cutoff = now - max_age
        return [
            rec.connection_id
            for rec in self._records.values()
            if rec.last_update_at is not None and rec.last_update_at < cutoff
        ]

    def counts_by_origin(self) -> dict[str, int]:
        return dict(Counter(rec.origin for rec in self._records.values()))
