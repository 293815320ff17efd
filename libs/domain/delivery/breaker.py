# libs/domain/delivery/breaker.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from ports.time import ClockPort

LOG: Final = logging.getLogger("breaker")


class CircuitStatus(StrEnum):
    CLOSED = "closed"  # normal operation
    OPEN = "open"  # calls rejected
    HALF_OPEN = "half-open"  # one probe in flight


@dataclass(frozen=True)
class BreakerSnapshot:
    name: str
    status: CircuitStatus
    consecutive_failures: int
    opened_at: float | None
    rejected: int


class CircuitBreaker:
    """Guards one destination.

    Trips after `failure_threshold` consecutive failures, rejects calls for
    `cooldown_s`, then lets exactly one probe through. A successful probe
    closes the circuit; a failed one re-opens it and restarts the cool-down.
    """

    def __init__(
        self,
        name: str,
        clock: ClockPort,
        failure_threshold: int = 3,
        cooldown_s: float = 30.0,
    ) -> None:
        self.name = name
        self._clock = clock
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_s = cooldown_s
        self._status = CircuitStatus.CLOSED
        self._failures = 0
        self._opened_at: float | None = None
        self._probe_in_flight = False
        self._rejected = 0
        # cooperative callers never contend; the lock keeps threaded callers honest
        self._lock = threading.Lock()

    @property
    def status(self) -> CircuitStatus:
        return self._status

    def try_acquire(self) -> bool:
        """Ask permission for one call. False means fail fast, do not send."""
        with self._lock:
            if self._status is CircuitStatus.CLOSED:
                return True
            if self._status is CircuitStatus.OPEN:
                opened = self._opened_at if self._opened_at is not None else 0.0
                if self._clock.now() - opened >= self.cooldown_s:
                    self._status = CircuitStatus.HALF_OPEN
                    self._probe_in_flight = True
                    LOG.info("circuit %s half-open, probing", self.name)
                    return True
                self._rejected += 1
                return False
            # HALF_OPEN: only the single probe may pass
            if not self._probe_in_flight:
                self._probe_in_flight = True
                return True
            self._rejected += 1
            return False

    def record_success(self) -> None:
        with self._lock:
            if self._status is not CircuitStatus.CLOSED:
                LOG.info("circuit %s closed", self.name)
            self._status = CircuitStatus.CLOSED
            self._failures = 0
            self._opened_at = None
            self._probe_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._status is CircuitStatus.HALF_OPEN:
                self._trip("probe failed")
            elif self._status is CircuitStatus.CLOSED and self._failures >= self.failure_threshold:
                self._trip(f"{self._failures} consecutive failures")

    def _trip(self, reason: str) -> None:
        self._status = CircuitStatus.OPEN
        self._opened_at = self._clock.now()
        self._probe_in_flight = False
        LOG.warning("circuit %s opened: %s", self.name, reason)

    def snapshot(self) -> BreakerSnapshot:
        with self._lock:
            return BreakerSnapshot(
                name=self.name,
                status=self._status,
                consecutive_failures=self._failures,
                opened_at=self._opened_at,
                rejected=self._rejected,
            )


class BreakerRegistry:
    """One breaker per destination, created on first use."""

    def __init__(
        self, clock: ClockPort, failure_threshold: int = 3, cooldown_s: float = 30.0
    ) -> None:
        self._clock = clock
        self.failure_threshold = failure_threshold
        self.cooldown_s = cooldown_s
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, destination: str) -> CircuitBreaker:
        cb = self._breakers.get(destination)
        if cb is None:
            cb = CircuitBreaker(
                destination,
                self._clock,
                failure_threshold=self.failure_threshold,
                cooldown_s=self.cooldown_s,
            )
            self._breakers[destination] = cb
        return cb

    def snapshots(self) -> dict[str, BreakerSnapshot]:
        return {name: cb.snapshot() for name, cb in self._breakers.items()}
