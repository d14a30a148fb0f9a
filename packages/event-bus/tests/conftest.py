"""Test fixtures for the Event Bus.

Provides:
  - A fakeredis-backed RedisAdapter, one private FakeServer per test
  - RecordingTransport, an httpx transport standing in for domain endpoints
  - An EventBus wired to both, so delivery never leaves the process
"""

from __future__ import annotations

import httpx
import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from mesh_event_bus.bus import EventBus
from mesh_event_bus.forwarder import EventForwarder
from mesh_shared.redis_client import RedisAdapter, reset_client, set_client


class RecordingTransport(httpx.AsyncBaseTransport):
    """Answers every request with a status per URL, recording what it received.

    Usage:
        transport = RecordingTransport(statuses={"https://b.example/events": 500})

    Unlisted URLs get 200. URLs in `unreachable` raise httpx.ConnectError.
    """

    def __init__(
        self,
        statuses: dict[str, int] | None = None,
        unreachable: set[str] | None = None,
    ) -> None:
        self.statuses = dict(statuses or {})
        self.unreachable = set(unreachable or ())
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.statuses.get(url, 200), json={"ok": True})

    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


@pytest.fixture
def adapter():
    adapter = RedisAdapter(FakeRedis(server=FakeServer(), decode_responses=True))
    set_client(adapter)
    yield adapter
    reset_client()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def make_bus(adapter, transport):
    """Build EventBus instances sharing the test's storage and transport."""

    def make(name: str = "mesh-central-bus") -> EventBus:
        forwarder = EventForwarder(client=httpx.AsyncClient(transport=transport))
        return EventBus(adapter, name=name, forwarder=forwarder)

    return make


@pytest.fixture
def bus(make_bus) -> EventBus:
    return make_bus()
