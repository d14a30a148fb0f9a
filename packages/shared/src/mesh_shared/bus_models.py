"""Event Bus boundary models — the contract between Governance and the Event Bus.

Covers both halves of the cross-account handshake:
  - Notification: the registration workflow publishes a NotificationEvent whose
    detail_type is "{producer_account_id}_createResourceLinks".
  - Domain registry: each producer/consumer domain is registered once, which
    installs a put-events policy statement for its account and a routing rule
    matching its account-scoped detail type.

Design choices:
  - detail_type is the routing key and is account-scoped by construction, so a
    rule never matches more than one domain as long as account ids are unique.
    The registry enforces that uniqueness instead of assuming it.
  - Events go over the wire in camelCase (detailType, tableNames, ...), the
    shape remote domains subscribe to. snake_case is accepted on input.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mesh_shared.models import PlatformResult

# Marker identifying events emitted by the registration workflow
CENTRAL_WORKFLOW_SOURCE = "mesh.central.registration"
RESOURCE_LINKS_SUFFIX = "createResourceLinks"
PUT_EVENTS_ACTION = "events:PutEvents"


def resource_links_detail_type(account_id: str) -> str:
    """Routing key for notifications addressed to one account."""
    return f"{account_id}_{RESOURCE_LINKS_SUFFIX}"


def put_events_statement_id(account_id: str) -> str:
    return f"AllowDataDomainAccToPutEvents_{account_id}"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Events
# ============================================================================


class ResourceLinksDetail(_CamelModel):
    """Payload telling a producer which central tables to link to."""

    central_database_name: str
    producer_account_id: str
    database_name: str
    table_names: list[str]


class NotificationEvent(_CamelModel):
    """An event on the central bus."""

    source: str = CENTRAL_WORKFLOW_SOURCE
    detail_type: str
    detail: ResourceLinksDetail
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    time: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def resource_links(cls, detail: ResourceLinksDetail) -> NotificationEvent:
        return cls(
            detail_type=resource_links_detail_type(detail.producer_account_id),
            detail=detail,
        )


class EventPattern(_CamelModel):
    """Exact-match pattern: an event matches when both fields contain its values."""

    source: list[str]
    detail_type: list[str]

    def matches(self, event: NotificationEvent) -> bool:
        return event.source in self.source and event.detail_type in self.detail_type


class EventRule(_CamelModel):
    """Forwards matching events on the central bus to one domain endpoint."""

    name: str
    domain_id: str
    pattern: EventPattern
    target: str


class PolicyStatement(_CamelModel):
    """Lets an account put events on the central bus."""

    statement_id: str
    principal: str
    action: str = PUT_EVENTS_ACTION


class DomainRegistration(_CamelModel):
    """A producer/consumer domain participating in the mesh."""

    domain_id: str
    account_id: str
    event_endpoint: str
    registered_at: datetime | None = None


# ============================================================================
# Activity Request/Result Pairs
# ============================================================================


class PublishNotificationRequest(BaseModel):
    """Input for publish_notification."""

    producer_account_id: str
    database_name: str
    central_database_name: str
    table_names: list[str]


class PublishNotificationResult(PlatformResult):
    """Result of publish_notification: which domains received the event."""

    event_id: str = ""
    detail_type: str = ""
    delivered_to: list[str] = []


class RegisterDomainRequest(BaseModel):
    """Input for register_data_domain."""

    domain_id: str
    account_id: str
    event_endpoint: str


class RegisterDomainResult(PlatformResult):
    """Result of register_data_domain."""

    domain_id: str = ""
    rule_name: str = ""
    replaced: bool = False


class DeregisterDomainRequest(BaseModel):
    """Input for deregister_data_domain."""

    domain_id: str


class DeregisterDomainResult(PlatformResult):
    """Result of deregister_data_domain."""

    domain_id: str = ""


class ListDomainsRequest(BaseModel):
    """Input for list_data_domains."""


class ListDomainsResult(PlatformResult):
    """Result of list_data_domains."""

    domains: list[DomainRegistration] = []
