"""Temporal-backed step executor and notification publisher.

Used from inside RegisterDataProductWorkflow: each provisioning action becomes a
workflow.execute_activity call dispatched to the Catalog Access queue, the
notification to the Event Bus queue. The activity's ApplicationError type is
turned back into a StepFailure kind for the state machine to route on.

Retry split:
  - provisioning steps: bounded exponential retry of transient failures
    (max_step_attempts); every other kind is non-retryable.
  - notification: a single attempt. A failed publish fails the registration.
"""

from __future__ import annotations

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError, ApplicationError
from temporalio.exceptions import TimeoutError as ActivityTimeoutError

with workflow.unsafe.imports_passed_through():
    from mesh_catalog_access.activities import (
        create_database,
        create_table,
        grant_location_access,
        grant_table_permissions,
        register_location,
        update_database_metadata,
    )
    from mesh_event_bus.activities import publish_notification
    from mesh_shared.bus_models import PublishNotificationRequest, PublishNotificationResult
    from mesh_shared.catalog_models import StepResult
    from mesh_shared.failures import FailureKind
    from mesh_shared.registration_models import RegistrationOptions
    from mesh_shared.task_queues import CATALOG_ACCESS_QUEUE, EVENT_BUS_QUEUE
    from pydantic import BaseModel

    from mesh_governance import steps
    from mesh_governance.steps import StepFailure

_CATALOG_ACTIVITIES = {
    steps.REGISTER_LOCATION: register_location,
    steps.GRANT_LOCATION_ACCESS: grant_location_access,
    steps.CREATE_DATABASE: create_database,
    steps.UPDATE_DATABASE_METADATA: update_database_metadata,
    steps.CREATE_TABLE: create_table,
    steps.GRANT_TABLE_PERMISSIONS: grant_table_permissions,
}

_NON_RETRYABLE = [kind.value for kind in FailureKind if not kind.retryable]


def step_failure_from_error(action: str, error: BaseException) -> StepFailure:
    """Translate an activity failure into a StepFailure with its FailureKind."""
    cause = error.cause if isinstance(error, ActivityError) and error.cause else error
    if isinstance(cause, ApplicationError):
        return StepFailure(FailureKind.parse(cause.type), action, cause.message)
    if isinstance(cause, ActivityTimeoutError):
        return StepFailure(FailureKind.TRANSIENT, action, f"timed out: {cause.message}")
    return StepFailure(FailureKind.INTERNAL, action, str(cause))


class ActivityStepExecutor:
    """Runs catalog actions as activities on CATALOG_ACCESS_QUEUE."""

    def __init__(self, options: RegistrationOptions) -> None:
        self.timeout = timedelta(seconds=options.step_timeout_seconds)
        self.retry_policy = RetryPolicy(
            initial_interval=timedelta(seconds=1),
            backoff_coefficient=2.0,
            maximum_interval=timedelta(seconds=30),
            maximum_attempts=options.max_step_attempts,
            non_retryable_error_types=_NON_RETRYABLE,
        )

    async def execute(self, action: str, request: BaseModel) -> StepResult:
        try:
            return await workflow.execute_activity(
                _CATALOG_ACTIVITIES[action],
                request,
                task_queue=CATALOG_ACCESS_QUEUE,
                start_to_close_timeout=self.timeout,
                retry_policy=self.retry_policy,
            )
        except ActivityError as e:
            raise step_failure_from_error(action, e) from e


class ActivityNotificationPublisher:
    """Publishes notifications through the Event Bus activity, one attempt only."""

    def __init__(self, options: RegistrationOptions) -> None:
        self.timeout = timedelta(seconds=options.step_timeout_seconds)

    async def publish(self, request: PublishNotificationRequest) -> PublishNotificationResult:
        try:
            return await workflow.execute_activity(
                publish_notification,
                request,
                task_queue=EVENT_BUS_QUEUE,
                start_to_close_timeout=self.timeout,
                retry_policy=RetryPolicy(maximum_attempts=1),
            )
        except ActivityError as e:
            failure = step_failure_from_error(steps.PUBLISH_NOTIFICATION, e)
            if failure.kind is not FailureKind.PUBLISH_FAILURE:
                failure = StepFailure(FailureKind.PUBLISH_FAILURE, failure.action, failure.message)
            raise failure from e
