"""
Pytest configuration for unifi-mcp tests.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import pytest

from unifi_mcp._core.client import UniFiClient
from unifi_mcp._core.transport import TransportResponse
from unifi_mcp.capabilities import CapabilityDetector
from unifi_mcp.config import ClientConfig, RetryConfig
from unifi_mcp.registry import ToolRegistry

# Note: With pytest-asyncio in auto mode, no event_loop fixture needed

SITE_PREFIX = "/proxy/network/api/s/default"


@dataclass
class Call:
    method: str
    path: str
    headers: Dict[str, str]
    body: Any
    params: Optional[Dict[str, Any]]
    timeout: float


class FakeTransport:
    """
    In-memory stand-in for Transport.

    Routes are keyed by (method, path). Each route holds a queue of
    responses; the last one repeats. Exceptions in the queue are raised.
    Unrouted requests answer 404.
    """

    def __init__(self) -> None:
        self.calls: List[Call] = []
        self.routes: Dict[tuple, list] = {}
        self.verify_ssl = False
        self.closed = False
        self.add("GET", "/status", TransportResponse(200, body={"up": True}))
        self.add("GET", "/api/system", system_info_direct("9.0.114.25679", "UCG-Ultra"))

    def add(self, method: str, path: str, *responses: Any) -> None:
        self.routes[(method, path)] = list(responses)

    async def send(self, method, url, headers=None, body=None, params=None, timeout=30.0):
        path = urlsplit(url).path
        self.calls.append(Call(method, path, dict(headers or {}), body, params, timeout))
        queue = self.routes.get((method, path))
        if not queue:
            return TransportResponse(404, body={"meta": {"rc": "error", "msg": "api.err.NotFound"}, "data": []})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        return response

    def calls_to(self, path: str, method: Optional[str] = None) -> List[Call]:
        return [c for c in self.calls if c.path == path and (method is None or c.method == method)]

    def close(self) -> None:
        self.closed = True


class FakeClock:
    """Monotonic clock advanced only by the test (or by FakeSleep)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested delays and advances the clock instead of sleeping."""

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self.delays: List[float] = []
        self.clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)


def system_info_direct(version: str, model: str) -> TransportResponse:
    """System info in the direct-object shape returned by gateway consoles."""
    return TransportResponse(
        200,
        body={"version": version, "name": "Gateway", "hardware": {"shortname": model}},
    )


def system_info_envelope(version: str, model: str) -> TransportResponse:
    """System info in the canonical Network Application envelope."""
    return TransportResponse(
        200,
        body={
            "meta": {"rc": "ok"},
            "data": [{"version": version, "hardware_model": model, "hostname": "unifi"}],
        },
    )


def envelope(*records: Dict[str, Any]) -> TransportResponse:
    return TransportResponse(200, body={"meta": {"rc": "ok", "msg": ""}, "data": list(records)})


@pytest.fixture
def client_config():
    """Client configuration with fast, deterministic retries."""
    return ClientConfig(
        gateway="192.168.1.1",
        api_key="test-api-key",
        retry=RetryConfig(max_attempts=3, base_delay=1.0, max_delay=10.0, jitter=1.0),
    )


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep(clock):
    return FakeSleep(clock)


@pytest.fixture
def client(client_config, fake_transport, clock, fake_sleep):
    """UniFiClient wired to the fake transport, clock and sleep (no jitter)."""
    return UniFiClient(
        client_config,
        transport=fake_transport,
        clock=clock,
        sleep=fake_sleep,
        rand=lambda: 0.0,
    )


@pytest.fixture
async def connected_client(client):
    await client.connect()
    return client


@pytest.fixture
def detector(client):
    return CapabilityDetector(client)


@pytest.fixture
def registry(client, detector):
    return ToolRegistry(client, detector)
