"""Component registry: maps component names to their workflows and activities.

This is the central lookup table that the runner uses to determine what to
register on a worker based on the CLI argument. Each component entry specifies:

- task_queue: Which Temporal task queue this worker polls
- workflows: Workflow classes to register (only Governance has these)
- activities: Activity functions to register

Catalog Access and the Event Bus hold the side effects; Governance only
orchestrates. Keeping them on separate workers means a slow delivery endpoint
never starves catalog provisioning.
"""

from dataclasses import dataclass, field
from typing import Any

from mesh_catalog_access.activities import (
    create_database,
    create_table,
    grant_location_access,
    grant_table_permissions,
    register_location,
    update_database_metadata,
)
from mesh_event_bus.activities import (
    deregister_data_domain,
    list_data_domains,
    publish_notification,
    register_data_domain,
)
from mesh_governance.workflows.notify_producer import NotifyProducerWorkflow
from mesh_governance.workflows.register_data_domain import RegisterDataDomainWorkflow
from mesh_governance.workflows.register_data_product import RegisterDataProductWorkflow
from mesh_shared.task_queues import (
    CATALOG_ACCESS_QUEUE,
    EVENT_BUS_QUEUE,
    GOVERNANCE_QUEUE,
)


@dataclass
class ComponentConfig:
    """Configuration for a single component's worker."""

    task_queue: str
    workflows: list[Any] = field(default_factory=list)
    activities: list[Any] = field(default_factory=list)


COMPONENTS: dict[str, ComponentConfig] = {
    "governance": ComponentConfig(
        task_queue=GOVERNANCE_QUEUE,
        workflows=[
            RegisterDataProductWorkflow,
            RegisterDataDomainWorkflow,
            NotifyProducerWorkflow,
        ],
    ),
    "catalog-access": ComponentConfig(
        task_queue=CATALOG_ACCESS_QUEUE,
        activities=[
            register_location,
            grant_location_access,
            create_database,
            update_database_metadata,
            create_table,
            grant_table_permissions,
        ],
    ),
    "event-bus": ComponentConfig(
        task_queue=EVENT_BUS_QUEUE,
        activities=[
            publish_notification,
            register_data_domain,
            deregister_data_domain,
            list_data_domains,
        ],
    ),
}
