"""RegisterDataDomainWorkflow: validate inputs → Event Bus.

Simplest workflow — registers a producer/consumer domain on the central bus so
the domain's account may put events and receives its createResourceLinks
notifications. Must run once per domain before registering its data products.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from mesh_event_bus.activities import register_data_domain
    from mesh_shared.bus_models import RegisterDomainRequest, RegisterDomainResult
    from mesh_shared.failures import FailureKind
    from mesh_shared.task_queues import EVENT_BUS_QUEUE


@workflow.defn
class RegisterDataDomainWorkflow:
    """Installs a domain's put-events permission and routing rule."""

    @workflow.run
    async def run(self, request: RegisterDomainRequest) -> RegisterDomainResult:
        return await workflow.execute_activity(
            register_data_domain,
            request,
            task_queue=EVENT_BUS_QUEUE,
            start_to_close_timeout=timedelta(seconds=30),
            retry_policy=RetryPolicy(
                maximum_attempts=3,
                non_retryable_error_types=[FailureKind.DOMAIN_CONFLICT.value],
            ),
        )
