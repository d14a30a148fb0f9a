"""Task queue name constants for each component.

Every component runs on its own Temporal worker with a dedicated task queue.
Catalog provisioning and event delivery scale independently of the
governance workflows that drive them.

These constants are the single source of truth for queue names. Both the worker
runner (which starts workers listening on the right queue) and the workflow
definitions (which dispatch activities to the right queue) reference these.
"""

# Governance: runs the workflows that orchestrate activities across other queues
GOVERNANCE_QUEUE = "governance-queue"

# Resource Access: provisioning backend and event bus activities
CATALOG_ACCESS_QUEUE = "catalog-access-queue"
EVENT_BUS_QUEUE = "event-bus-queue"
