"""RegisterDataProductWorkflow: Catalog Access (×N) → Event Bus.

The primary governance workflow. A producer account asks the central account
to register a data product; this workflow provisions it and tells the producer
which central tables to link to:

1. Register the storage location (already registered → continue)
2. Grant location access to the workflow principal, then to the producer
3. Create the central database (already exists → continue) and record owner metadata
4. For each table, in parallel: create it (already exists → continue) and
   grant the producer ALL with grant option
5. Publish a "{producer}_createResourceLinks" event on the central bus

The control flow is RegistrationStateMachine; this class only wires it to
Temporal. Provisioning activities run on catalog-access-queue, the
notification on event-bus-queue, the workflow itself on governance-queue.

Operators can follow a run with the `progress` query and stop it between steps
with the `request_cancellation` signal. A failed registration ends as an
ApplicationError typed with the failure kind, with the failing state and
action in its details. Re-submitting the same request is safe.
"""

from temporalio import workflow
from temporalio.exceptions import ApplicationError

with workflow.unsafe.imports_passed_through():
    from mesh_shared.failures import FailureKind
    from mesh_shared.registration_models import (
        RegisterDataProductRequest,
        RegistrationProgress,
        RegistrationResult,
    )

    from mesh_governance.executors import ActivityNotificationPublisher, ActivityStepExecutor
    from mesh_governance.registration import RegistrationFailed, RegistrationStateMachine


def registration_error(failure: RegistrationFailed, cancel_reason: str = "") -> ApplicationError:
    """The workflow failure for a registration that ended in Failed."""
    message = str(failure)
    if failure.kind is FailureKind.CANCELLED and cancel_reason:
        message = f"{message} (reason: {cancel_reason})"
    return ApplicationError(
        message,
        {"state": failure.state, "action": failure.action, "kind": failure.kind.value},
        type=failure.kind.value,
        non_retryable=True,
    )


@workflow.defn
class RegisterDataProductWorkflow:
    """Registers a producer's data product in the central catalog."""

    def __init__(self) -> None:
        self._cancel_requested = False
        self._cancel_reason = ""
        self._machine: RegistrationStateMachine | None = None

    @workflow.run
    async def run(self, request: RegisterDataProductRequest) -> RegistrationResult:
        self._machine = RegistrationStateMachine(
            request,
            ActivityStepExecutor(request.options),
            ActivityNotificationPublisher(request.options),
            logger=workflow.logger,
            cancel_requested=lambda: self._cancel_requested,
        )
        try:
            result = await self._machine.run()
        except RegistrationFailed as e:
            raise registration_error(e, self._cancel_reason) from e

        workflow.logger.info(
            f"Registered {result.central_database_name} with tables {result.table_names}"
        )
        return result

    @workflow.signal
    def request_cancellation(self, reason: str = "") -> None:
        """Stop before the next step starts. The step in flight finishes first."""
        workflow.logger.info(f"Cancellation requested: {reason or 'no reason given'}")
        self._cancel_requested = True
        self._cancel_reason = reason

    @workflow.query
    def progress(self) -> RegistrationProgress:
        if self._machine is None:
            return RegistrationProgress(state="Pending", cancel_requested=self._cancel_requested)
        return self._machine.progress()
