"""NotifyProducerWorkflow: Event Bus.

Re-sends the createResourceLinks notification for a data product that is
already provisioned. This closes the gap a failed PublishNotification leaves
behind (catalog complete, producer never told) without re-running provisioning.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from mesh_event_bus.activities import publish_notification
    from mesh_shared.bus_models import PublishNotificationRequest, PublishNotificationResult
    from mesh_shared.task_queues import EVENT_BUS_QUEUE


@workflow.defn
class NotifyProducerWorkflow:
    """Publishes one notification, retrying delivery a few times."""

    @workflow.run
    async def run(self, request: PublishNotificationRequest) -> PublishNotificationResult:
        return await workflow.execute_activity(
            publish_notification,
            request,
            task_queue=EVENT_BUS_QUEUE,
            start_to_close_timeout=timedelta(minutes=2),
            retry_policy=RetryPolicy(
                initial_interval=timedelta(seconds=5),
                maximum_attempts=5,
            ),
        )
