from __future__ import annotations

import gzip as gzip_codec
import logging
import time
from typing import Final
from urllib.parse import quote

import httpx
from domain.delivery import BreakerRegistry, BreakerSnapshot
from ports.delivery import DeliveryOutcome, DeliveryPort, DeliveryResult, DeliveryStats, Method
from ports.time import ClockPort

LOG: Final = logging.getLogger("delivery.pushgateway")

CONTENT_TYPE: Final = "text/plain; version=0.0.4; charset=utf-8"
_METHODS: Final = frozenset({"POST", "DELETE"})


def destination_url(base: str, job: str, connection_id: str) -> str:
    """Grouping-key path for one connection's series."""
    return (
        f"{base.rstrip('/')}/metrics/job/{quote(job, safe='')}"
        f"/peerConnectionId/{quote(connection_id, safe='')}"
    )


class PushgatewayClient(DeliveryPort):
    """Pushgateway delivery over httpx with one circuit breaker per base URL.

    No retries; the caller's next tick is the retry. Every failure comes back
    as a DeliveryResult, except cancellation, which counts against the
    breaker and then propagates.
    """

    def __init__(
        self,
        clock: ClockPort,
        *,
        timeout_s: float = 10.0,
        breakers: BreakerRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._clock = clock
        self._timeout_s = timeout_s
        self.breakers = breakers or BreakerRegistry(clock)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._url = ""
        self._auth: httpx.BasicAuth | None = None
        self._gzip = False
        # counters
        self._requests = 0
        self._messages_sent = 0
        self._bytes_sent = 0
        self._total_time_ms = 0.0
        self._errors = 0
        self._rejected = 0

    # ---- configuration ----

    def configure(self, url: str, username: str = "", password: str = "", gzip: bool = False) -> None:
        self._url = url or ""
        self._auth = httpx.BasicAuth(username, password) if username and password else None
        self._gzip = bool(gzip)

    @property
    def url(self) -> str:
        return self._url

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport)
        return self._client

    # ---- DeliveryPort ----

    async def send(
        self, method: Method, connection_id: str, job: str, block: str | None = None
    ) -> DeliveryResult:
        if method not in _METHODS or not self._url or not job or not connection_id:
            return DeliveryResult(
                DeliveryOutcome.INVALID,
                method,
                connection_id,
                detail="method must be POST or DELETE and url, job, id must be set",
            )

        breaker = self.breakers.get(self._url)
        if not breaker.try_acquire():
            self._rejected += 1
            return DeliveryResult(
                DeliveryOutcome.BREAKER_OPEN, method, connection_id, detail=f"circuit open for {self._url}"
            )

        headers: dict[str, str] = {}
        body: bytes | None = None
        if method == "POST":
            body = (block or "").encode("utf-8")
            headers["Content-Type"] = CONTENT_TYPE
            if self._gzip:
                body = gzip_codec.compress(body)
                headers["Content-Encoding"] = "gzip"
        size = len(body) if body else 0

        self._requests += 1
        started = time.perf_counter()
        try:
            resp = await self._http().request(
                method,
                destination_url(self._url, job, connection_id),
                content=body,
                headers=headers,
                auth=self._auth,
            )
        except httpx.HTTPError as ex:
            elapsed = self._elapsed_ms(started)
            breaker.record_failure()
            self._errors += 1
            return DeliveryResult(
                DeliveryOutcome.TRANSPORT_ERROR,
                method,
                connection_id,
                detail=f"{type(ex).__name__}: {ex}",
                elapsed_ms=elapsed,
            )
        except BaseException:
            self._elapsed_ms(started)
            breaker.record_failure()
            self._errors += 1
            raise

        elapsed = self._elapsed_ms(started)
        if resp.is_success:
            breaker.record_success()
            self._messages_sent += 1
            self._bytes_sent += size
            LOG.debug("%s %s -> %d in %.1fms", method, connection_id, resp.status_code, elapsed)
            return DeliveryResult(
                DeliveryOutcome.SUCCESS,
                method,
                connection_id,
                status_code=resp.status_code,
                elapsed_ms=elapsed,
                bytes_sent=size,
            )

        breaker.record_failure()
        self._errors += 1
        return DeliveryResult(
            DeliveryOutcome.HTTP_ERROR,
            method,
            connection_id,
            status_code=resp.status_code,
            detail=(resp.text or resp.reason_phrase)[:200],
            elapsed_ms=elapsed,
        )

    def _elapsed_ms(self, started: float) -> float:
        elapsed = (time.perf_counter() - started) * 1000.0
        self._total_time_ms += elapsed
        return elapsed

    def breaker_snapshot(self) -> BreakerSnapshot | None:
        if not self._url:
            return None
        return self.breakers.get(self._url).snapshot()

    def stats(self) -> DeliveryStats:
        snap = self.breaker_snapshot()
        return DeliveryStats(
            requests=self._requests,
            messages_sent=self._messages_sent,
            bytes_sent=self._bytes_sent,
            total_time_ms=self._total_time_ms,
            errors=self._errors,
            rejected=self._rejected,
            breaker_status=str(snap.status) if snap else "closed",
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
