# libs/domain/coordinator/service.py
from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Final

from domain.connections import ConnectionRegistry
from domain.delivery import BreakerSnapshot
from domain.origins import extract_origin
from domain.stats import format_sample
from ports.delivery import DeliveryOutcome, DeliveryPort, DeliveryResult, DeliveryStats
from ports.ipc import RelayPort
from ports.time import ClockPort
from pydantic import ValidationError
from shared.contracts.v1.options import ExporterOptions
from shared.contracts.v1.relay_wire import TOPIC_OPTIONS, ReadySignal, normalize
from shared.contracts.v1.stats import Sample

LOG: Final = logging.getLogger("coordinator")

MIN_STALE_S: Final = 30.0


@dataclass(frozen=True)
class CoordinatorStatus:
    connections: int
    per_origin: dict[str, int]
    delivery: DeliveryStats
    last_sweep_at: float | None
    samples_received: int
    samples_ignored: int
    retired: int
    stale_threshold_s: float
    destination: str = ""
    breaker: BreakerSnapshot | None = None
    errors_by_outcome: dict[str, int] = field(default_factory=dict)


class Coordinator:
    """Sample -> exposition text -> collector, plus the staleness backstop.

    Messages are handled one at a time in relay order. The sweep runs as a
    separate task and skips ids whose delivery is still in flight. Ids being
    retired, or retired because their connection closed, never get a
    delivery again.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        delivery: DeliveryPort,
        relay: RelayPort,
        clock: ClockPort,
        options: ExporterOptions | None = None,
        stale_after_s: float | None = None,
    ) -> None:
        self.registry: Final = registry
        self.delivery: Final = delivery
        self.relay: Final = relay
        self.clock: Final = clock
        self.options = options or ExporterOptions()
        self._stale_after_s = stale_after_s
        self._inflight: Counter[str] = Counter()
        self._retiring: set[str] = set()
        self._failures: Counter[str] = Counter()
        self.last_sweep_at: float | None = None
        self.samples_received = 0
        self.samples_ignored = 0
        self.retired = 0
        self._configure_delivery()

    # --- configuration ----------------------------------------------------

    @property
    def stale_threshold_s(self) -> float:
        if self._stale_after_s is not None:
            return self._stale_after_s
        return max(2 * self.options.update_interval, MIN_STALE_S)

    def _configure_delivery(self) -> None:
        o = self.options
        self.delivery.configure(o.url, o.username, o.password, o.gzip)

    def apply_options(self, changes: Mapping[str, Any]) -> bool:
        """Validate and apply changed option keys, then republish to bridges."""
        merged = {**self.options.model_dump(), **dict(changes)}
        try:
            updated = ExporterOptions.model_validate(merged)
        except ValidationError as ex:
            LOG.error("rejected option change %s: %s", sorted(changes), ex.errors())
            return False
        self.options = updated
        self._configure_delivery()
        LOG.info("options updated: %s", ", ".join(sorted(changes)))
        self.publish_options()
        return True

    def publish_options(self) -> bool:
        return self.relay.send(TOPIC_OPTIONS, self.options.snapshot())

    # --- relay side -------------------------------------------------------

    async def drain_relay(self, max_messages: int = 100, timeout_ms: int = 0) -> int:
        handled = 0
        msg = self.relay.recv(timeout_ms=timeout_ms)
        while msg is not None:
            await self.handle_message(msg)
            handled += 1
            if handled >= max_messages:
                break
            msg = self.relay.recv(timeout_ms=0)
        return handled

    async def handle_message(self, msg: Mapping[str, Any]) -> None:
        decoded = normalize(msg)
        if isinstance(decoded, Sample):
            await self.handle_sample(decoded)
        elif isinstance(decoded, ReadySignal):
            self.publish_options()
        else:
            LOG.debug("ignoring relay message with topic %r", msg.get("topic"))

    async def handle_sample(self, sample: Sample) -> DeliveryResult | None:
        self.samples_received += 1
        conn_id = sample.id
        if self.registry.is_retired(conn_id) or conn_id in self._retiring:
            self.samples_ignored += 1
            LOG.debug("sample for retired connection %s ignored", conn_id)
            return None
        if not self.options.url:
            self.samples_ignored += 1
            return None

        if sample.state == "closed":
            return await self._retire(conn_id, reason="closed")

        block = format_sample(
            sample,
            agent_id=self.options.agent_id or None,
            quality_limitation_reasons=self.options.quality_limitation_reasons,
        )
        if not block:
            LOG.debug("no data to send for connection %s", conn_id)
            return None

        origin = extract_origin(sample.url) or sample.url
        self._inflight[conn_id] += 1
        try:
            result = await self.delivery.send("POST", conn_id, self.options.job, block)
        finally:
            self._inflight[conn_id] -= 1
            if self._inflight[conn_id] <= 0:
                del self._inflight[conn_id]

        if result.ok:
            self.registry.record_delivery(conn_id, origin, self.clock.now())
        else:
            self._log_failure(result)
        return result

    # --- retirement -------------------------------------------------------

    async def _retire(self, conn_id: str, reason: str, *, final: bool = True) -> DeliveryResult:
        self._retiring.add(conn_id)
        try:
            result = await self.delivery.send("DELETE", conn_id, self.options.job)
        finally:
            self._retiring.discard(conn_id)
        # once a DELETE has been issued the record is done, whatever the outcome
        self.registry.record_retirement(conn_id, final=final)
        self.retired += 1
        if result.ok:
            LOG.info("deleted series for %s connection %s", reason, conn_id)
        else:
            self._log_failure(result)
        return result

    async def sweep(self) -> list[str]:
        """Retire every connection not delivered within the stale threshold.

        The local record goes away whatever the DELETE outcome; a failed
        remote delete is logged and not attempted again. A swept id is not
        blocked: if the connection is still alive, its next successful
        delivery tracks it again.
        """
        now = self.clock.now()
        threshold = self.stale_threshold_s
        candidates = self.registry.sweep_stale(now, threshold)
        if candidates:
            LOG.info("sweeping %d stale connection(s) (threshold %.0fs)", len(candidates), threshold)
        else:
            LOG.debug("no stale connections (%d tracked)", len(self.registry))
        swept: list[str] = []
        for conn_id in candidates:
            # deliveries keep running while earlier DELETEs are awaited
            if not self._still_sweepable(conn_id, now - threshold):
                LOG.debug("skipping %s, delivered or in flight since the scan", conn_id)
                continue
            await self._retire(conn_id, reason="stale", final=False)
            swept.append(conn_id)
        self.last_sweep_at = now
        return swept

    def _still_sweepable(self, conn_id: str, cutoff: float) -> bool:
        if conn_id in self._inflight or conn_id in self._retiring:
            return False
        rec = self.registry.get(conn_id)
        return rec is not None and rec.last_update_at is not None and rec.last_update_at < cutoff

    # --- reporting --------------------------------------------------------

    def _log_failure(self, result: DeliveryResult) -> None:
        self._failures[str(result.outcome)] += 1
        # rejections repeat on every tick while the circuit is open
        level = logging.DEBUG if result.outcome is DeliveryOutcome.BREAKER_OPEN else logging.WARNING
        LOG.log(
            level,
            "%s %s failed: %s%s",
            result.method,
            result.connection_id,
            result.outcome,
            f" ({result.detail})" if result.detail else "",
        )

    def status(self) -> CoordinatorStatus:
        return CoordinatorStatus(
            connections=len(self.registry),
            per_origin=self.registry.counts_by_origin(),
            delivery=self.delivery.stats(),
            last_sweep_at=self.last_sweep_at,
            samples_received=self.samples_received,
            samples_ignored=self.samples_ignored,
            retired=self.retired,
            stale_threshold_s=self.stale_threshold_s,
            destination=self.options.url,
            breaker=self.delivery.breaker_snapshot(),
            errors_by_outcome=dict(self._failures),
        )
