"""The data product registration state machine.

RegistrationStateMachine drives one registration request through the
transition table below, building each step's request from the
RegisterDataProductRequest:

  RegisterLocation             register_location
      AlreadyExists → GrantAdminAccess
  GrantAdminAccess             grant_location_access (workflow principal)
  GrantProducerAccess          grant_location_access (producer account)
  CreateDatabase               create_database
      AlreadyExists → UpdateDatabaseOwnerMetadata
  UpdateDatabaseOwnerMetadata  update_database_metadata
  FanOutTables                 per table: CreateTable → GrantTablePermissions
      CreateTable AlreadyExists → GrantTablePermissions
  PublishNotification          publish_notification

Only the three AlreadyExists guards recover locally. Any other failure ends the
run with RegistrationFailed, which names the state, the action and the kind so
an operator can fix the cause and re-submit the same request.

Input problems are reported before any step runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from mesh_shared.bus_models import PublishNotificationRequest, PublishNotificationResult
from mesh_shared.catalog_models import (
    CreateDatabaseRequest,
    CreateTableRequest,
    GrantLocationAccessRequest,
    GrantTablePermissionsRequest,
    RegisterLocationRequest,
    UpdateDatabaseMetadataRequest,
)
from mesh_shared.failures import FailureKind
from mesh_shared.registration_models import (
    RegisterDataProductRequest,
    RegistrationProgress,
    RegistrationResult,
    TableSpec,
    find_input_problems,
)

from mesh_governance.fan_out import for_each
from mesh_governance.recovery import Transition, guard
from mesh_governance.state_machine import DONE, FAILED, StateMachine
from mesh_governance.steps import (
    CREATE_DATABASE,
    CREATE_TABLE,
    GRANT_LOCATION_ACCESS,
    GRANT_TABLE_PERMISSIONS,
    PUBLISH_NOTIFICATION,
    REGISTER_LOCATION,
    UPDATE_DATABASE_METADATA,
    NotificationPublisher,
    StepExecutor,
    StepFailure,
)


class RegistrationState:
    VALIDATE_INPUT = "ValidateInput"
    REGISTER_LOCATION = "RegisterLocation"
    GRANT_ADMIN_ACCESS = "GrantAdminAccess"
    GRANT_PRODUCER_ACCESS = "GrantProducerAccess"
    CREATE_DATABASE = "CreateDatabase"
    UPDATE_DATABASE_OWNER_METADATA = "UpdateDatabaseOwnerMetadata"
    FAN_OUT_TABLES = "FanOutTables"
    PUBLISH_NOTIFICATION = "PublishNotification"
    DONE = DONE
    FAILED = FAILED


class TableState:
    CREATE_TABLE = "CreateTable"
    GRANT_TABLE_PERMISSIONS = "GrantTablePermissions"


S = RegistrationState

REGISTRATION_TRANSITIONS: dict[str, Transition] = {
    S.REGISTER_LOCATION: guard(
        Transition(REGISTER_LOCATION, S.GRANT_ADMIN_ACCESS),
        recovery=S.GRANT_ADMIN_ACCESS,
    ),
    S.GRANT_ADMIN_ACCESS: Transition(GRANT_LOCATION_ACCESS, S.GRANT_PRODUCER_ACCESS),
    S.GRANT_PRODUCER_ACCESS: Transition(GRANT_LOCATION_ACCESS, S.CREATE_DATABASE),
    S.CREATE_DATABASE: guard(
        Transition(CREATE_DATABASE, S.UPDATE_DATABASE_OWNER_METADATA),
        recovery=S.UPDATE_DATABASE_OWNER_METADATA,
    ),
    S.UPDATE_DATABASE_OWNER_METADATA: Transition(UPDATE_DATABASE_METADATA, S.FAN_OUT_TABLES),
    S.FAN_OUT_TABLES: Transition("for_each_table", S.PUBLISH_NOTIFICATION),
    S.PUBLISH_NOTIFICATION: Transition(PUBLISH_NOTIFICATION, S.DONE),
}

TABLE_TRANSITIONS: dict[str, Transition] = {
    TableState.CREATE_TABLE: guard(
        Transition(CREATE_TABLE, TableState.GRANT_TABLE_PERMISSIONS),
        recovery=TableState.GRANT_TABLE_PERMISSIONS,
    ),
    TableState.GRANT_TABLE_PERMISSIONS: Transition(GRANT_TABLE_PERMISSIONS, DONE),
}


class RegistrationFailed(Exception):
    """The registration ended in the Failed state."""

    def __init__(self, state: str, action: str, kind: FailureKind, message: str) -> None:
        super().__init__(f"{state} ({action}) failed with {kind.value}: {message}")
        self.state = state
        self.action = action
        self.kind = kind
        self.message = message


class RegistrationStateMachine:
    """Runs one registration request to Done or Failed."""

    def __init__(
        self,
        request: RegisterDataProductRequest,
        executor: StepExecutor,
        publisher: NotificationPublisher,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        cancel_requested: Callable[[], bool] | None = None,
    ) -> None:
        self.request = request
        self.executor = executor
        self.publisher = publisher
        self.logger = logger or logging.getLogger(__name__)
        self.cancel_requested = cancel_requested or (lambda: False)
        self.machine = StateMachine(
            REGISTRATION_TRANSITIONS,
            S.REGISTER_LOCATION,
            logger=self.logger,
            cancel_requested=self.cancel_requested,
            label=request.central_database_name,
        )
        self.table_names: list[str] = []
        self.recovered_tables: set[str] = set()
        self.publication: PublishNotificationResult | None = None

    def progress(self) -> RegistrationProgress:
        return RegistrationProgress(
            state=self.machine.state,
            visited_states=list(self.machine.visited),
            cancel_requested=self.cancel_requested(),
        )

    async def run(self) -> RegistrationResult:
        problems = find_input_problems(self.request)
        if problems:
            self.machine.state = S.FAILED
            self.machine.failed_state = S.VALIDATE_INPUT
            raise RegistrationFailed(
                S.VALIDATE_INPUT, "validate_input", FailureKind.MALFORMED_INPUT, "; ".join(problems)
            )

        try:
            await self.machine.run(
                {
                    S.REGISTER_LOCATION: self._register_location,
                    S.GRANT_ADMIN_ACCESS: self._grant_admin_access,
                    S.GRANT_PRODUCER_ACCESS: self._grant_producer_access,
                    S.CREATE_DATABASE: self._create_database,
                    S.UPDATE_DATABASE_OWNER_METADATA: self._update_database_owner_metadata,
                    S.FAN_OUT_TABLES: self._fan_out_tables,
                    S.PUBLISH_NOTIFICATION: self._publish_notification,
                }
            )
        except StepFailure as failure:
            raise RegistrationFailed(
                self.machine.failed_state or self.machine.state,
                failure.action,
                failure.kind,
                failure.message,
            ) from failure

        return RegistrationResult(
            central_database_name=self.request.central_database_name,
            producer_account_id=self.request.producer_account_id,
            table_names=self.table_names,
            visited_states=list(self.machine.visited),
            recovered_states=list(self.machine.recovered)
            + [
                f"{TableState.CREATE_TABLE}[{name}]"
                for name in self.table_names
                if name in self.recovered_tables
            ],
        )

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _register_location(self) -> None:
        await self.executor.execute(
            REGISTER_LOCATION,
            RegisterLocationRequest(
                location=self.request.data_product_location,
                role=self.request.options.data_access_role,
            ),
        )

    async def _grant_admin_access(self) -> None:
        await self.executor.execute(
            GRANT_LOCATION_ACCESS,
            GrantLocationAccessRequest(
                location=self.request.data_product_location,
                principal=self.request.options.workflow_principal,
            ),
        )

    async def _grant_producer_access(self) -> None:
        await self.executor.execute(
            GRANT_LOCATION_ACCESS,
            GrantLocationAccessRequest(
                location=self.request.data_product_location,
                principal=self.request.producer_account_id,
            ),
        )

    async def _create_database(self) -> None:
        request = self.request
        await self.executor.execute(
            CREATE_DATABASE,
            CreateDatabaseRequest(
                name=request.central_database_name,
                description=(
                    f"Data product for {request.data_product_location} "
                    f"in Producer account {request.producer_account_id}"
                ),
            ),
        )

    async def _update_database_owner_metadata(self) -> None:
        request = self.request
        await self.executor.execute(
            UPDATE_DATABASE_METADATA,
            UpdateDatabaseMetadataRequest(
                name=request.central_database_name,
                parameters={
                    "data_owner": request.producer_account_id,
                    "data_owner_name": request.product_owner_name,
                    "pii_flag": request.pii_flag,
                },
            ),
        )

    async def _fan_out_tables(self) -> None:
        self.table_names = await for_each(
            self.request.tables,
            self._register_table,
            max_concurrency=self.request.options.max_parallel_tables,
        )

    async def _register_table(self, index: int, table: TableSpec) -> str:
        request = self.request
        machine = StateMachine(
            TABLE_TRANSITIONS,
            TableState.CREATE_TABLE,
            logger=self.logger,
            cancel_requested=self.cancel_requested,
            label=f"{request.central_database_name}.{table.name}",
        )
        await machine.run(
            {
                TableState.CREATE_TABLE: lambda: self.executor.execute(
                    CREATE_TABLE,
                    CreateTableRequest(
                        database_name=request.central_database_name,
                        table_name=table.name,
                        owner=request.producer_account_id,
                        location=table.location,
                    ),
                ),
                TableState.GRANT_TABLE_PERMISSIONS: lambda: self.executor.execute(
                    GRANT_TABLE_PERMISSIONS,
                    GrantTablePermissionsRequest(
                        database_name=request.central_database_name,
                        table_name=table.name,
                        principal=request.producer_account_id,
                    ),
                ),
            }
        )
        if machine.recovered:
            self.recovered_tables.add(table.name)
        return table.name

    async def _publish_notification(self) -> None:
        request = self.request
        self.publication = await self.publisher.publish(
            PublishNotificationRequest(
                producer_account_id=request.producer_account_id,
                database_name=request.database_name,
                central_database_name=request.central_database_name,
                table_names=self.table_names,
            )
        )
