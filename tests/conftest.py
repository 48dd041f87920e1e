"""
Shared fixtures: a scripted upstream behind httpx.MockTransport.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from gateway.services import UpstreamGateway
from gateway.settings import GatewaySettings

FAST_SETTINGS: dict[str, Any] = {
    "timeout_ms": 500,
    "max_concurrent": 1,
    "min_gap_ms": 0,
    "retry_max": 2,
    "retry_base_ms": 10,
    "circuit_threshold": 3,
    "circuit_reset_ms": 200,
    "dedup_ttl_ms": 5000,
    "max_queue": 500,
}

ARTICLES_PAYLOAD = {
    "articles": [
        {
            "url": "https://example.com/quake",
            "title": "Strong earthquake hits coast",
            "seendate": "20240101T120000Z",
            "socialimage": "https://example.com/quake.jpg",
            "domain": "example.com",
            "language": "English",
            "sourcecountry": "Japan",
        }
    ]
}


def make_settings(**overrides: Any) -> GatewaySettings:
    return GatewaySettings(**{**FAST_SETTINGS, **overrides})


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Upstream:
    """
    Scripted upstream handler.

    Answers from `script` (a list of (status, body) tuples) in order, then
    falls back to `status` / `body`. Records every request and tracks how
    many requests are being served concurrently.
    """

    def __init__(
        self,
        script: list[tuple[int, Any]] | None = None,
        status: int = 200,
        body: Any = None,
        delay: float = 0.0,
    ):
        self.script = list(script or [])
        self.status = status
        self.body = ARTICLES_PAYLOAD if body is None else body
        self.delay = delay
        self.calls: list[str] = []
        self.started_at: list[float] = []
        self.active = 0
        self.max_active = 0
        self.on_request: Callable[[], None] | None = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        self.started_at.append(time.monotonic())
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        if self.on_request:
            self.on_request()
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            status, body = self.script.pop(0) if self.script else (self.status, self.body)
            if isinstance(body, str):
                return httpx.Response(status, text=body)
            return httpx.Response(status, json=body)
        finally:
            self.active -= 1


def make_gateway(upstream: Upstream, **overrides: Any) -> UpstreamGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    return UpstreamGateway(settings=make_settings(**overrides), http_client=client)


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
