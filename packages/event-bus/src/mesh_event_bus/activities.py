"""Event Bus activities — notification publishing and the domain registry.

Run on EVENT_BUS_QUEUE. Four activities:

  publish_notification    — tell a producer account its central tables exist
  register_data_domain    — let a domain's account put events, route its events to it
  deregister_data_domain  — remove a domain's rule, policy statement and account claim
  list_data_domains       — survey registered domains

publish_notification is the last step of the registration workflow. Any error
while publishing surfaces as PublishFailure: provisioning has already
completed, and the workflow reports the product as registered-but-unnotified
rather than retrying delivery on its own.
"""

from __future__ import annotations

from mesh_shared.bus_models import (
    DeregisterDomainRequest,
    DeregisterDomainResult,
    ListDomainsRequest,
    ListDomainsResult,
    NotificationEvent,
    PublishNotificationRequest,
    PublishNotificationResult,
    RegisterDomainRequest,
    RegisterDomainResult,
    ResourceLinksDetail,
)
from mesh_shared.failures import MeshError, PublishFailureError
from temporalio import activity

from mesh_event_bus.bus import get_event_bus, rule_name


@activity.defn
async def publish_notification(request: PublishNotificationRequest) -> PublishNotificationResult:
    """Publish a createResourceLinks event addressed to the producer account."""
    event = NotificationEvent.resource_links(
        ResourceLinksDetail(
            central_database_name=request.central_database_name,
            producer_account_id=request.producer_account_id,
            database_name=request.database_name,
            table_names=request.table_names,
        )
    )
    activity.logger.info(
        f"Publishing {event.detail_type} for {len(request.table_names)} tables "
        f"of '{request.central_database_name}'"
    )
    bus = get_event_bus()
    try:
        delivered_to = await bus.put_event(event)
    except MeshError as e:
        failure = e if isinstance(e, PublishFailureError) else PublishFailureError(
            f"Publishing {event.detail_type} failed: {e}", resource=e.resource
        )
        activity.logger.warning(f"publish_notification failed: {failure}")
        raise failure.to_application_error() from e
    finally:
        await bus.close()

    return PublishNotificationResult(
        success=True,
        message=f"Event {event.event_id} delivered to {len(delivered_to)} domain(s)",
        event_id=event.event_id,
        detail_type=event.detail_type,
        delivered_to=delivered_to,
    )


@activity.defn
async def register_data_domain(request: RegisterDomainRequest) -> RegisterDomainResult:
    """Register a producer/consumer domain on the central bus.

    Idempotent: registering the same domain ID again replaces its rule.
    """
    activity.logger.info(
        f"Registering domain '{request.domain_id}' for account {request.account_id}"
    )
    bus = get_event_bus()
    try:
        _, replaced = await bus.register_domain(
            request.domain_id, request.account_id, request.event_endpoint
        )
    except MeshError as e:
        activity.logger.warning(f"register_data_domain failed with {e.kind.value}: {e}")
        raise e.to_application_error() from e
    finally:
        await bus.close()

    return RegisterDomainResult(
        success=True,
        message=(
            f"Domain '{request.domain_id}' "
            f"{'re-registered' if replaced else 'registered'} on bus '{bus.name}'"
        ),
        domain_id=request.domain_id,
        rule_name=rule_name(request.domain_id),
        replaced=replaced,
    )


@activity.defn
async def deregister_data_domain(request: DeregisterDomainRequest) -> DeregisterDomainResult:
    """Remove a domain from the central bus."""
    activity.logger.info(f"Deregistering domain '{request.domain_id}'")
    bus = get_event_bus()
    try:
        await bus.deregister_domain(request.domain_id)
    except MeshError as e:
        raise e.to_application_error() from e
    finally:
        await bus.close()

    return DeregisterDomainResult(
        success=True,
        message=f"Domain '{request.domain_id}' deregistered",
        domain_id=request.domain_id,
    )


@activity.defn
async def list_data_domains(request: ListDomainsRequest) -> ListDomainsResult:
    """List every registered domain."""
    bus = get_event_bus()
    try:
        domains = await bus.list_domains()
    except MeshError as e:
        raise e.to_application_error() from e
    finally:
        await bus.close()

    return ListDomainsResult(
        success=True,
        message=f"{len(domains)} domain(s) registered",
        domains=domains,
    )
