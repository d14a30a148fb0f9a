"""Tests for RegistrationStateMachine.

The first group scripts failures on in-memory fakes and asserts which path the
machine took. The end-to-end group runs the real catalog and bus activities
over fakeredis: producer 111111111111 registers bucket/path with two tables,
then re-submits the same request.
"""

from __future__ import annotations

import json

import pytest
from mesh_catalog_access.catalog import DataCatalog
from mesh_event_bus.bus import EventBus
from mesh_shared.catalog_models import (
    CreateDatabaseRequest,
    GrantLocationAccessRequest,
    UpdateDatabaseMetadataRequest,
)
from mesh_shared.failures import FailureKind
from mesh_shared.registration_models import (
    RegisterDataProductRequest,
    RegistrationOptions,
    TableSpec,
)

from mesh_governance.registration import (
    REGISTRATION_TRANSITIONS,
    TABLE_TRANSITIONS,
    RegistrationFailed,
    RegistrationState,
    RegistrationStateMachine,
    TableState,
)
from mesh_governance.steps import (
    CREATE_DATABASE,
    CREATE_TABLE,
    GRANT_LOCATION_ACCESS,
    GRANT_TABLE_PERMISSIONS,
    REGISTER_LOCATION,
    UPDATE_DATABASE_METADATA,
)

S = RegistrationState
PRODUCER = "111111111111"
CENTRAL_DB = "111111111111_sales"

HAPPY_PATH = [
    S.REGISTER_LOCATION,
    S.GRANT_ADMIN_ACCESS,
    S.GRANT_PRODUCER_ACCESS,
    S.CREATE_DATABASE,
    S.UPDATE_DATABASE_OWNER_METADATA,
    S.FAN_OUT_TABLES,
    S.PUBLISH_NOTIFICATION,
]


def _for_table(name: str):
    return lambda request: getattr(request, "table_name", None) == name


def test_only_already_exists_guards_are_installed() -> None:
    guarded = {state for state, t in REGISTRATION_TRANSITIONS.items() if t.catch is not None}
    assert guarded == {S.REGISTER_LOCATION, S.CREATE_DATABASE}
    assert TABLE_TRANSITIONS[TableState.CREATE_TABLE].catch.recovery == (
        TableState.GRANT_TABLE_PERMISSIONS
    )
    assert TABLE_TRANSITIONS[TableState.GRANT_TABLE_PERMISSIONS].catch is None
    assert REGISTRATION_TRANSITIONS[S.REGISTER_LOCATION].catch.recovery == S.GRANT_ADMIN_ACCESS
    assert (
        REGISTRATION_TRANSITIONS[S.CREATE_DATABASE].catch.recovery
        == S.UPDATE_DATABASE_OWNER_METADATA
    )


# ============================================================================
# Happy path
# ============================================================================


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_visits_every_state_in_order(self, product_request, executor, publisher):
        result = await RegistrationStateMachine(product_request, executor, publisher).run()

        assert result.visited_states == HAPPY_PATH
        assert result.recovered_states == []
        assert result.central_database_name == CENTRAL_DB
        assert result.table_names == ["orders", "customers"]
        assert executor.actions()[:5] == [
            REGISTER_LOCATION,
            GRANT_LOCATION_ACCESS,
            GRANT_LOCATION_ACCESS,
            CREATE_DATABASE,
            UPDATE_DATABASE_METADATA,
        ]
        assert executor.actions()[5:].count(CREATE_TABLE) == 2
        assert executor.actions()[5:].count(GRANT_TABLE_PERMISSIONS) == 2

    @pytest.mark.asyncio
    async def test_step_requests(self, product_request, executor, publisher):
        await RegistrationStateMachine(product_request, executor, publisher).run()
        requests = [request for _, request in executor.calls]

        admin, producer = requests[1], requests[2]
        assert isinstance(admin, GrantLocationAccessRequest)
        assert admin.principal == "mesh-workflow-role"
        assert producer.principal == PRODUCER
        assert producer.permissions == ["DATA_LOCATION_ACCESS"]

        database = requests[3]
        assert isinstance(database, CreateDatabaseRequest)
        assert database.name == CENTRAL_DB
        assert database.description == (
            "Data product for bucket/path in Producer account 111111111111"
        )

        metadata = requests[4]
        assert isinstance(metadata, UpdateDatabaseMetadataRequest)
        assert metadata.parameters == {
            "data_owner": PRODUCER,
            "data_owner_name": "Alice",
            "pii_flag": "false",
        }

    @pytest.mark.asyncio
    async def test_publishes_once_with_table_names_in_input_order(
        self, product_request, executor, publisher
    ):
        executor.delays = {"orders": 0.03, "customers": 0.0}
        await RegistrationStateMachine(product_request, executor, publisher).run()

        assert len(publisher.published) == 1
        published = publisher.published[0]
        assert published.table_names == ["orders", "customers"]
        assert published.central_database_name == CENTRAL_DB
        assert published.database_name == "sales"

    @pytest.mark.asyncio
    async def test_table_grant_follows_its_create(self, product_request, executor, publisher):
        await RegistrationStateMachine(product_request, executor, publisher).run()
        for name in ("orders", "customers"):
            table_actions = [
                action
                for action, request in executor.calls
                if getattr(request, "table_name", None) == name
            ]
            assert table_actions == [CREATE_TABLE, GRANT_TABLE_PERMISSIONS]

    @pytest.mark.asyncio
    async def test_tables_respect_parallelism_limit(self, product_request, executor, publisher):
        product_request.options = RegistrationOptions(max_parallel_tables=1)
        executor.delays = {"orders": 0.01, "customers": 0.01}
        await RegistrationStateMachine(product_request, executor, publisher).run()
        assert executor.max_running == 1


# ============================================================================
# Recovery and failure routing
# ============================================================================


class TestRecovery:
    @pytest.mark.asyncio
    async def test_location_already_registered(self, product_request, executor, publisher):
        executor.fail(REGISTER_LOCATION, FailureKind.ALREADY_EXISTS)
        result = await RegistrationStateMachine(product_request, executor, publisher).run()

        assert result.visited_states == HAPPY_PATH
        assert result.recovered_states == [S.REGISTER_LOCATION]
        assert len(publisher.published) == 1

    @pytest.mark.asyncio
    async def test_database_already_exists_still_updates_metadata(
        self, product_request, executor, publisher
    ):
        executor.fail(CREATE_DATABASE, FailureKind.ALREADY_EXISTS)
        result = await RegistrationStateMachine(product_request, executor, publisher).run()

        assert result.recovered_states == [S.CREATE_DATABASE]
        assert UPDATE_DATABASE_METADATA in executor.actions()

    @pytest.mark.asyncio
    async def test_table_already_exists_still_grants(self, product_request, executor, publisher):
        executor.fail(CREATE_TABLE, FailureKind.ALREADY_EXISTS, when=_for_table("orders"))
        result = await RegistrationStateMachine(product_request, executor, publisher).run()

        assert result.recovered_states == ["CreateTable[orders]"]
        grants = [
            request.table_name
            for action, request in executor.calls
            if action == GRANT_TABLE_PERMISSIONS
        ]
        assert sorted(grants) == ["customers", "orders"]

    @pytest.mark.asyncio
    async def test_permission_denied_is_not_recovered(self, product_request, executor, publisher):
        executor.fail(
            GRANT_LOCATION_ACCESS,
            FailureKind.PERMISSION_DENIED,
            when=lambda request: request.principal == PRODUCER,
        )
        machine = RegistrationStateMachine(product_request, executor, publisher)
        with pytest.raises(RegistrationFailed) as exc_info:
            await machine.run()

        failure = exc_info.value
        assert failure.state == S.GRANT_PRODUCER_ACCESS
        assert failure.action == GRANT_LOCATION_ACCESS
        assert failure.kind is FailureKind.PERMISSION_DENIED
        assert CREATE_DATABASE not in executor.actions()
        assert publisher.published == []
        assert machine.progress().state == S.FAILED

    @pytest.mark.asyncio
    async def test_permission_denied_on_guarded_state_fails(
        self, product_request, executor, publisher
    ):
        executor.fail(REGISTER_LOCATION, FailureKind.PERMISSION_DENIED)
        with pytest.raises(RegistrationFailed) as exc_info:
            await RegistrationStateMachine(product_request, executor, publisher).run()
        assert exc_info.value.state == S.REGISTER_LOCATION
        assert executor.actions() == [REGISTER_LOCATION]

    @pytest.mark.asyncio
    async def test_already_exists_on_unguarded_state_fails(
        self, product_request, executor, publisher
    ):
        executor.fail(UPDATE_DATABASE_METADATA, FailureKind.ALREADY_EXISTS)
        with pytest.raises(RegistrationFailed) as exc_info:
            await RegistrationStateMachine(product_request, executor, publisher).run()
        assert exc_info.value.state == S.UPDATE_DATABASE_OWNER_METADATA

    @pytest.mark.asyncio
    async def test_table_failure_fails_fan_out_without_publishing(
        self, product_request, executor, publisher
    ):
        executor.fail(CREATE_TABLE, FailureKind.ENTITY_NOT_FOUND, when=_for_table("customers"))
        with pytest.raises(RegistrationFailed) as exc_info:
            await RegistrationStateMachine(product_request, executor, publisher).run()

        assert exc_info.value.state == S.FAN_OUT_TABLES
        assert exc_info.value.action == CREATE_TABLE
        assert exc_info.value.kind is FailureKind.ENTITY_NOT_FOUND
        assert publisher.published == []

    @pytest.mark.asyncio
    async def test_publish_failure(self, product_request, executor, failing_publisher):
        publisher = failing_publisher
        with pytest.raises(RegistrationFailed) as exc_info:
            await RegistrationStateMachine(product_request, executor, publisher).run()

        assert exc_info.value.state == S.PUBLISH_NOTIFICATION
        assert exc_info.value.kind is FailureKind.PUBLISH_FAILURE
        # Provisioning completed before the notification failed
        assert executor.actions().count(GRANT_TABLE_PERMISSIONS) == 2


# ============================================================================
# Input validation and cancellation
# ============================================================================


class TestValidationAndCancellation:
    @pytest.mark.asyncio
    async def test_empty_tables_fail_before_any_step(self, product_request, executor, publisher):
        product_request.tables = []
        with pytest.raises(RegistrationFailed) as exc_info:
            await RegistrationStateMachine(product_request, executor, publisher).run()

        assert exc_info.value.state == S.VALIDATE_INPUT
        assert exc_info.value.kind is FailureKind.MALFORMED_INPUT
        assert executor.calls == []
        assert publisher.published == []

    @pytest.mark.asyncio
    async def test_missing_location_fails_before_any_step(self, executor, publisher):
        request = RegisterDataProductRequest.model_validate(
            {
                "producerAccountId": "111111111111",
                "databaseName": "sales",
                "tables": [{"name": "orders", "location": "bucket/path/orders"}],
            }
        )
        with pytest.raises(RegistrationFailed) as exc_info:
            await RegistrationStateMachine(request, executor, publisher).run()

        assert exc_info.value.kind is FailureKind.MALFORMED_INPUT
        assert exc_info.value.message == "data_product_location is required"
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_string_pii_flag_is_stored_as_given(self, product_request, executor, publisher):
        product_request.product_pii_flag = "confidential"
        await RegistrationStateMachine(product_request, executor, publisher).run()

        [metadata] = [
            request for action, request in executor.calls if action == UPDATE_DATABASE_METADATA
        ]
        assert metadata.parameters["pii_flag"] == "confidential"

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, product_request, executor, publisher):
        machine = RegistrationStateMachine(
            product_request, executor, publisher, cancel_requested=lambda: True
        )
        with pytest.raises(RegistrationFailed) as exc_info:
            await machine.run()
        assert exc_info.value.kind is FailureKind.CANCELLED
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_cancel_between_steps(self, product_request, executor, publisher):
        cancelled = False

        def cancel_after_database(action, request) -> None:
            nonlocal cancelled
            if action == CREATE_DATABASE:
                cancelled = True

        executor.after_call = cancel_after_database
        machine = RegistrationStateMachine(
            product_request, executor, publisher, cancel_requested=lambda: cancelled
        )
        with pytest.raises(RegistrationFailed) as exc_info:
            await machine.run()

        assert exc_info.value.kind is FailureKind.CANCELLED
        assert exc_info.value.state == S.UPDATE_DATABASE_OWNER_METADATA
        assert executor.actions()[-1] == CREATE_DATABASE
        assert machine.progress().cancel_requested is True

    @pytest.mark.asyncio
    async def test_progress(self, product_request, executor, publisher):
        machine = RegistrationStateMachine(product_request, executor, publisher)
        assert machine.progress().state == S.REGISTER_LOCATION
        assert machine.progress().visited_states == []
        await machine.run()
        assert machine.progress().state == S.DONE
        assert machine.progress().visited_states == HAPPY_PATH


# ============================================================================
# End to end over the real activities
# ============================================================================


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_registers_and_notifies(
        self, product_request, catalog_executor, bus_publisher, bus_factory, adapter, transport
    ):
        bus: EventBus = bus_factory()
        await bus.register_domain("Sales", PRODUCER, "https://sales.example.com/mesh/events")

        result = await RegistrationStateMachine(
            product_request, catalog_executor, bus_publisher
        ).run()

        assert result.visited_states == HAPPY_PATH
        assert result.recovered_states == []
        assert result.table_names == ["orders", "customers"]

        catalog = DataCatalog(adapter)
        assert await catalog.describe_location("bucket/path") is not None
        grants = await catalog.location_grants("bucket/path")
        assert grants["mesh-workflow-role"] == ["DATA_LOCATION_ACCESS"]
        assert grants[PRODUCER] == ["DATA_LOCATION_ACCESS"]

        database = await catalog.describe_database(CENTRAL_DB)
        assert database["parameters"] == {
            "data_owner": PRODUCER,
            "data_owner_name": "Alice",
            "pii_flag": "false",
        }
        assert await catalog.list_tables(CENTRAL_DB) == ["customers", "orders"]
        for name in ("orders", "customers"):
            table_grants = await catalog.table_grants(CENTRAL_DB, name)
            assert table_grants[PRODUCER] == {
                "permissions": ["ALL"],
                "grantable_permissions": ["ALL"],
            }

        assert bus_publisher.results[0].delivered_to == ["Sales"]
        body = json.loads(transport.requests[0].content)
        assert body["detailType"] == "111111111111_createResourceLinks"
        assert body["detail"]["tableNames"] == ["orders", "customers"]

    @pytest.mark.asyncio
    async def test_resubmission_recovers_and_renotifies(
        self, product_request, catalog_executor, bus_publisher
    ):
        await RegistrationStateMachine(product_request, catalog_executor, bus_publisher).run()
        second = await RegistrationStateMachine(
            product_request, catalog_executor, bus_publisher
        ).run()

        assert second.table_names == ["orders", "customers"]
        assert second.recovered_states == [
            S.REGISTER_LOCATION,
            S.CREATE_DATABASE,
            "CreateTable[orders]",
            "CreateTable[customers]",
        ]
        assert len(bus_publisher.results) == 2

    @pytest.mark.asyncio
    async def test_denied_workflow_principal_stops_the_run(
        self, product_request, catalog_executor, bus_publisher, adapter, monkeypatch
    ):
        monkeypatch.setenv("MESH_CATALOG_ADMINS", "someone-else")
        with pytest.raises(RegistrationFailed) as exc_info:
            await RegistrationStateMachine(product_request, catalog_executor, bus_publisher).run()

        assert exc_info.value.state == S.REGISTER_LOCATION
        assert exc_info.value.kind is FailureKind.PERMISSION_DENIED
        assert catalog_executor.actions == [REGISTER_LOCATION]
        assert bus_publisher.results == []

    @pytest.mark.asyncio
    async def test_single_table_scenario(
        self, product_request, catalog_executor, bus_publisher, bus_factory, transport
    ):
        await bus_factory().register_domain(
            "Sales", PRODUCER, "https://sales.example.com/mesh/events"
        )
        product_request.tables = [product_request.tables[0]]

        result = await RegistrationStateMachine(
            product_request, catalog_executor, bus_publisher
        ).run()

        assert result.table_names == ["orders"]
        assert bus_publisher.results[0].detail_type == "111111111111_createResourceLinks"
        body = json.loads(transport.requests[0].content)
        assert body["detail"]["tableNames"] == ["orders"]


@pytest.mark.asyncio
async def test_result_order_follows_input_not_completion(product_request, executor, publisher):
    product_request.tables = [
        TableSpec(name="t2", location="bucket/path/t2"),
        TableSpec(name="t1", location="bucket/path/t1"),
    ]
    executor.delays = {"t2": 0.03, "t1": 0.0}

    result = await RegistrationStateMachine(product_request, executor, publisher).run()

    assert result.table_names == ["t2", "t1"]
    assert publisher.published[0].table_names == ["t2", "t1"]
