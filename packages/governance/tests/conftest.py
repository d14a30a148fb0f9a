"""Test fixtures for Governance.

Two ways to drive the registration state machine:

  - FakeStepExecutor / FakePublisher: in-memory, scriptable. A test says
    "create_table fails with AlreadyExists for 'orders'" and asserts the path
    the machine took.
  - In-process executors (`catalog_executor`, `bus_publisher`):
    run the real Catalog Access and Event Bus activities in-process through
    ActivityEnvironment over fakeredis, translating their ApplicationErrors
    exactly as the workflow does. Used for the end-to-end scenarios.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx
import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from mesh_catalog_access import activities as catalog_activities
from mesh_event_bus.activities import publish_notification
from mesh_event_bus.bus import EventBus
from mesh_event_bus.forwarder import EventForwarder
from mesh_shared.bus_models import PublishNotificationRequest, PublishNotificationResult
from mesh_shared.catalog_models import StepResult
from mesh_shared.failures import FailureKind
from mesh_shared.redis_client import RedisAdapter, reset_client, set_client
from mesh_shared.registration_models import RegisterDataProductRequest, TableSpec
from pydantic import BaseModel
from temporalio.exceptions import ApplicationError
from temporalio.testing import ActivityEnvironment

from mesh_governance.executors import step_failure_from_error
from mesh_governance.steps import PUBLISH_NOTIFICATION, StepFailure

# ============================================================================
# In-memory fakes
# ============================================================================


class FakeStepExecutor:
    """Records every action and fails the ones a test scripted to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, BaseModel]] = []
        self.failures: list[tuple[str, FailureKind, Callable[[BaseModel], bool]]] = []
        self.delays: dict[str, float] = {}
        self.after_call: Callable[[str, BaseModel], None] | None = None
        self.running = 0
        self.max_running = 0

    def fail(
        self,
        action: str,
        kind: FailureKind,
        when: Callable[[BaseModel], bool] = lambda request: True,
    ) -> None:
        self.failures.append((action, kind, when))

    def actions(self) -> list[str]:
        return [action for action, _ in self.calls]

    async def execute(self, action: str, request: BaseModel) -> StepResult:
        self.calls.append((action, request))
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            delay = self.delays.get(getattr(request, "table_name", ""), 0)
            if delay:
                await asyncio.sleep(delay)
            for failing_action, kind, when in self.failures:
                if failing_action == action and when(request):
                    raise StepFailure(kind, action, f"scripted {kind.value}")
        finally:
            self.running -= 1
            if self.after_call is not None:
                self.after_call(action, request)
        return StepResult(success=True, message="ok", action=action)


class FakePublisher:
    def __init__(self, kind: FailureKind | None = None) -> None:
        self.published: list[PublishNotificationRequest] = []
        self.kind = kind

    async def publish(self, request: PublishNotificationRequest) -> PublishNotificationResult:
        self.published.append(request)
        if self.kind is not None:
            raise StepFailure(self.kind, PUBLISH_NOTIFICATION, "endpoint unreachable")
        return PublishNotificationResult(
            success=True,
            message="published",
            detail_type=f"{request.producer_account_id}_createResourceLinks",
        )


@pytest.fixture
def executor() -> FakeStepExecutor:
    return FakeStepExecutor()


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def failing_publisher() -> FakePublisher:
    """A publisher whose every delivery fails."""
    return FakePublisher(kind=FailureKind.PUBLISH_FAILURE)


@pytest.fixture
def product_request() -> RegisterDataProductRequest:
    """Producer 111111111111 registering two tables of its sales database."""
    return RegisterDataProductRequest(
        data_product_location="bucket/path",
        producer_account_id="111111111111",
        database_name="sales",
        tables=[
            TableSpec(name="orders", location="bucket/path/orders"),
            TableSpec(name="customers", location="bucket/path/customers"),
        ],
        product_owner_name="Alice",
        product_pii_flag=False,
    )


# ============================================================================
# In-process activity executors
# ============================================================================


class RecordingTransport(httpx.AsyncBaseTransport):
    """Stands in for domain endpoints: records requests, answers 200."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(200, json={"ok": True})


class CatalogStepExecutor:
    """Runs catalog activities in-process, failing the way the workflow sees it."""

    def __init__(self) -> None:
        self.env = ActivityEnvironment()
        self.actions: list[str] = []

    async def execute(self, action: str, request: BaseModel) -> StepResult:
        self.actions.append(action)
        try:
            return await self.env.run(getattr(catalog_activities, action), request)
        except ApplicationError as e:
            raise step_failure_from_error(action, e) from e


class BusPublisher:
    def __init__(self) -> None:
        self.env = ActivityEnvironment()
        self.results: list[PublishNotificationResult] = []

    async def publish(self, request: PublishNotificationRequest) -> PublishNotificationResult:
        try:
            result = await self.env.run(publish_notification, request)
        except ApplicationError as e:
            raise step_failure_from_error(PUBLISH_NOTIFICATION, e) from e
        self.results.append(result)
        return result


@pytest.fixture
def adapter(monkeypatch):
    monkeypatch.delenv("MESH_WORKFLOW_PRINCIPAL", raising=False)
    monkeypatch.delenv("MESH_CATALOG_ADMINS", raising=False)
    adapter = RedisAdapter(FakeRedis(server=FakeServer(), decode_responses=True))
    set_client(adapter)
    yield adapter
    reset_client()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def bus_factory(adapter, transport, monkeypatch) -> Callable[[], EventBus]:
    def make() -> EventBus:
        forwarder = EventForwarder(client=httpx.AsyncClient(transport=transport))
        return EventBus(adapter, forwarder=forwarder)

    monkeypatch.setattr("mesh_event_bus.activities.get_event_bus", make)
    return make


@pytest.fixture
def catalog_executor(adapter) -> CatalogStepExecutor:
    return CatalogStepExecutor()


@pytest.fixture
def bus_publisher(bus_factory) -> BusPublisher:
    return BusPublisher()