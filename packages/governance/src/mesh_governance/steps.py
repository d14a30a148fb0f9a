"""Step contracts: what the orchestrator needs from its collaborators.

The registration state machine never calls Temporal, Redis or HTTP directly.
It talks to a StepExecutor (one provisioning action per call) and a
NotificationPublisher. The workflow wires both to activities; tests wire them
to in-memory fakes.

A failed step raises StepFailure carrying the FailureKind the executor
observed. That kind is the only thing recovery policies look at.
"""

from __future__ import annotations

from typing import Protocol

from mesh_shared.bus_models import PublishNotificationRequest, PublishNotificationResult
from mesh_shared.catalog_models import StepResult
from mesh_shared.failures import FailureKind
from pydantic import BaseModel

# Provisioning actions, named after the Catalog Access activities that perform them
REGISTER_LOCATION = "register_location"
GRANT_LOCATION_ACCESS = "grant_location_access"
CREATE_DATABASE = "create_database"
UPDATE_DATABASE_METADATA = "update_database_metadata"
CREATE_TABLE = "create_table"
GRANT_TABLE_PERMISSIONS = "grant_table_permissions"
PUBLISH_NOTIFICATION = "publish_notification"


class StepFailure(Exception):
    """A step ended in failure of a known kind."""

    def __init__(self, kind: FailureKind, action: str, message: str = "") -> None:
        super().__init__(f"{action} failed with {kind.value}: {message}")
        self.kind = kind
        self.action = action
        self.message = message


class StepExecutor(Protocol):
    async def execute(self, action: str, request: BaseModel) -> StepResult:
        """Run one provisioning action. Raises StepFailure on failure."""
        ...


class NotificationPublisher(Protocol):
    async def publish(self, request: PublishNotificationRequest) -> PublishNotificationResult:
        """Put one notification on the bus. Raises StepFailure on failure."""
        ...
