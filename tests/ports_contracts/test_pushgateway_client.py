from __future__ import annotations

import asyncio
import base64
import gzip

import httpx
import pytest
from adapters.pushgateway_httpx import CONTENT_TYPE, PushgatewayClient, destination_url
from adapters.time.fakes import FakeClockPort
from domain.delivery import BreakerRegistry
from ports.delivery import DeliveryOutcome, DeliveryPort

BLOCK = "# TYPE codec_clockRate gauge\ncodec_clockRate{pageUrl=\"p\"} 90000\n"


def _client(handler, **kw) -> PushgatewayClient:
    clock = kw.pop("clock", FakeClockPort())
    c = PushgatewayClient(
        clock,
        breakers=BreakerRegistry(clock, failure_threshold=3, cooldown_s=30),
        transport=httpx.MockTransport(handler),
    )
    c.configure("http://pgw:9091/", **kw)
    return c


def _run(coro):
    return asyncio.run(coro)


def test_is_a_delivery_port():
    assert isinstance(_client(lambda r: httpx.Response(200)), DeliveryPort)


def test_destination_url_encodes_job_and_id():
    assert (
        destination_url("http://pgw:9091/", "my job", "a/b")
        == "http://pgw:9091/metrics/job/my%20job/peerConnectionId/a%2Fb"
    )


def test_post_sends_exposition_text():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    c = _client(handler)
    res = _run(c.send("POST", "pc-1", "webrtc-internals-exporter", BLOCK))
    assert res.ok and res.status_code == 202
    assert res.bytes_sent == len(BLOCK.encode())
    (req,) = seen
    assert req.method == "POST"
    assert str(req.url) == "http://pgw:9091/metrics/job/webrtc-internals-exporter/peerConnectionId/pc-1"
    assert req.headers["Content-Type"] == CONTENT_TYPE
    assert "Content-Encoding" not in req.headers
    assert "Authorization" not in req.headers
    assert req.content == BLOCK.encode()


def test_gzip_and_basic_auth():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    c = _client(handler, username="user", password="pw", gzip=True)
    _run(c.send("POST", "pc-1", "job", BLOCK))
    (req,) = seen
    assert req.headers["Content-Encoding"] == "gzip"
    assert gzip.decompress(req.content) == BLOCK.encode()
    assert req.headers["Authorization"] == "Basic " + base64.b64encode(b"user:pw").decode()


def test_auth_needs_both_username_and_password():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    c = _client(handler, username="user")
    _run(c.send("DELETE", "pc-1", "job"))
    assert "Authorization" not in seen[0].headers
    assert seen[0].content == b""


@pytest.mark.parametrize(
    "method,conn_id,job",
    [("PUT", "pc", "job"), ("POST", "", "job"), ("DELETE", "pc", "")],
)
def test_invalid_parameters_never_reach_network(method, conn_id, job):
    calls: list[httpx.Request] = []
    c = _client(lambda r: calls.append(r) or httpx.Response(200))
    res = _run(c.send(method, conn_id, job, BLOCK))
    assert res.outcome is DeliveryOutcome.INVALID
    assert calls == []
    assert c.stats().requests == 0


def test_unconfigured_url_is_invalid():
    c = _client(lambda r: httpx.Response(200))
    c.configure("")
    assert _run(c.send("POST", "pc", "job", BLOCK)).outcome is DeliveryOutcome.INVALID


def test_transport_error_is_reported_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    c = _client(handler)
    res = _run(c.send("POST", "pc", "job", BLOCK))
    assert res.outcome is DeliveryOutcome.TRANSPORT_ERROR
    assert "ConnectError" in (res.detail or "")
    assert c.stats().errors == 1


def test_http_error_carries_status():
    c = _client(lambda r: httpx.Response(400, text="bad metric"))
    res = _run(c.send("POST", "pc", "job", BLOCK))
    assert res.outcome is DeliveryOutcome.HTTP_ERROR
    assert res.status_code == 400 and res.detail == "bad metric"


def test_breaker_trips_and_recovers_after_cooldown():
    clock = FakeClockPort()
    status = {"code": 500}
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        return httpx.Response(status["code"])

    c = _client(handler, clock=clock)

    async def scenario():
        outcomes = [(await c.send("POST", "pc", "job", BLOCK)).outcome for _ in range(4)]
        clock.advance(30)
        status["code"] = 200
        outcomes.append((await c.send("POST", "pc", "job", BLOCK)).outcome)
        outcomes.append((await c.send("POST", "pc", "job", BLOCK)).outcome)
        return outcomes

    assert _run(scenario()) == [
        DeliveryOutcome.HTTP_ERROR,
        DeliveryOutcome.HTTP_ERROR,
        DeliveryOutcome.HTTP_ERROR,
        DeliveryOutcome.BREAKER_OPEN,
        DeliveryOutcome.SUCCESS,
        DeliveryOutcome.SUCCESS,
    ]
    assert len(calls) == 5
    stats = c.stats()
    assert stats.rejected == 1 and stats.errors == 3 and stats.messages_sent == 2
    assert stats.breaker_status == "closed"


def test_breakers_are_per_destination():
    c = _client(lambda r: httpx.Response(500))

    async def scenario():
        for _ in range(3):
            await c.send("POST", "pc", "job", BLOCK)
        c.configure("http://other:9091")
        return await c.send("POST", "pc", "job", BLOCK)

    assert _run(scenario()).outcome is DeliveryOutcome.HTTP_ERROR


def test_stats_accumulate():
    c = _client(lambda r: httpx.Response(200))

    async def scenario():
        await c.send("POST", "a", "job", BLOCK)
        await c.send("DELETE", "a", "job")
        await c.aclose()

    _run(scenario())
    s = c.stats()
    assert s.requests == 2 and s.messages_sent == 2
    assert s.bytes_sent == len(BLOCK.encode())
    assert s.total_time_ms >= 0.0
