"""EventBus — the central account's event bus and its domain registry.

Two responsibilities share one storage layout:

  Domain registry (control plane)
    register_domain() installs, per domain, a policy statement allowing the
    domain's account to put events on this bus and a rule forwarding events
    whose detail_type is "{account_id}_createResourceLinks" to the domain's
    endpoint. Registration is an upsert keyed by domain ID: registering the
    same domain again replaces its rule, it never adds a second one.

  Event routing (data plane)
    put_event() matches an event against every rule and delivers it to each
    matching rule's target through the EventForwarder.

Account IDs are the routing keys, so one account may belong to only one
domain. The account index is claimed with SET NX before anything else is
written; a second domain claiming the same account gets DomainConflictError.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from collections.abc import Iterator
from datetime import UTC, datetime

import httpx
from mesh_shared.bus_models import (
    CENTRAL_WORKFLOW_SOURCE,
    DomainRegistration,
    EventPattern,
    EventRule,
    NotificationEvent,
    PolicyStatement,
    put_events_statement_id,
    resource_links_detail_type,
)
from mesh_shared.failures import (
    DomainConflictError,
    EntityNotFoundError,
    TransientServiceError,
)
from mesh_shared.redis_client import RedisAdapter, get_client
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from mesh_event_bus.forwarder import EventForwarder
from mesh_event_bus.keys import account_idx, domain_key, policy_key, rule_key, rules_idx

logger = logging.getLogger(__name__)

DEFAULT_BUS_NAME = "mesh-central-bus"

_BACKEND_ERRORS = (
    RedisConnectionError,
    RedisTimeoutError,
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)


@contextlib.contextmanager
def _backend_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except _BACKEND_ERRORS as e:
        raise TransientServiceError(
            f"{operation}: event bus storage unavailable: {e}", resource=operation
        ) from e


def rule_name(domain_id: str) -> str:
    return f"{domain_id}Rule"


class EventBus:
    """A named event bus backed by Redis, delivering over HTTP."""

    def __init__(
        self,
        client: RedisAdapter,
        name: str = DEFAULT_BUS_NAME,
        forwarder: EventForwarder | None = None,
    ) -> None:
        self.client = client
        self.name = name
        self.forwarder = forwarder or EventForwarder()

    async def close(self) -> None:
        await self.forwarder.close()

    # ------------------------------------------------------------------
    # Domain registry
    # ------------------------------------------------------------------

    async def register_domain(
        self, domain_id: str, account_id: str, event_endpoint: str
    ) -> tuple[DomainRegistration, bool]:
        """Upsert a domain's policy statement and routing rule.

        Returns the stored registration and whether an earlier registration of
        the same domain ID was replaced.
        """
        with _backend_errors("register_domain"):
            owner_key = account_idx(self.name, account_id)
            if not await self.client.set_if_absent(owner_key, domain_id):
                owner = await self.client.get(owner_key)
                if owner is not None and owner != domain_id:
                    raise DomainConflictError(
                        f"Account '{account_id}' is already registered to domain '{owner}'",
                        resource=account_id,
                    )
                if owner is None:
                    await self.client.set(owner_key, domain_id)

            previous = await self.get_domain(domain_id)
            registration = DomainRegistration(
                domain_id=domain_id,
                account_id=account_id,
                event_endpoint=event_endpoint,
                registered_at=datetime.now(UTC),
            )
            rule = EventRule(
                name=rule_name(domain_id),
                domain_id=domain_id,
                pattern=EventPattern(
                    source=[CENTRAL_WORKFLOW_SOURCE],
                    detail_type=[resource_links_detail_type(account_id)],
                ),
                target=event_endpoint,
            )
            statement = PolicyStatement(
                statement_id=put_events_statement_id(account_id),
                principal=account_id,
            )

            tx = self.client.multi()
            tx.set(domain_key(self.name, domain_id), registration.model_dump_json())
            tx.set(rule_key(self.name, domain_id), rule.model_dump_json())
            tx.sadd(rules_idx(self.name), domain_id)
            tx.hset(policy_key(self.name), statement.statement_id, statement.model_dump_json())
            if previous is not None and previous.account_id != account_id:
                # The domain moved to another account: release the old one
                tx.delete(account_idx(self.name, previous.account_id))
                tx.hdel(policy_key(self.name), put_events_statement_id(previous.account_id))
            await tx.execute()

        action = "Replaced" if previous is not None else "Registered"
        logger.info(
            f"{action} domain '{domain_id}' (account {account_id}) on bus '{self.name}' "
            f"→ {event_endpoint}"
        )
        return registration, previous is not None

    async def deregister_domain(self, domain_id: str) -> DomainRegistration:
        """Remove a domain's rule, policy statement and account claim."""
        with _backend_errors("deregister_domain"):
            registration = await self.get_domain(domain_id)
            if registration is None:
                raise EntityNotFoundError(
                    f"Domain '{domain_id}' is not registered on bus '{self.name}'",
                    resource=domain_id,
                )
            tx = self.client.multi()
            tx.delete(domain_key(self.name, domain_id))
            tx.delete(rule_key(self.name, domain_id))
            tx.srem(rules_idx(self.name), domain_id)
            tx.hdel(policy_key(self.name), put_events_statement_id(registration.account_id))
            tx.delete(account_idx(self.name, registration.account_id))
            await tx.execute()
        logger.info(f"Deregistered domain '{domain_id}' from bus '{self.name}'")
        return registration

    async def get_domain(self, domain_id: str) -> DomainRegistration | None:
        with _backend_errors("get_domain"):
            raw = await self.client.get(domain_key(self.name, domain_id))
        return DomainRegistration.model_validate_json(raw) if raw else None

    async def list_domains(self) -> list[DomainRegistration]:
        with _backend_errors("list_domains"):
            domain_ids = sorted(await self.client.smembers(rules_idx(self.name)))
        domains = [await self.get_domain(domain_id) for domain_id in domain_ids]
        return [d for d in domains if d is not None]

    async def list_rules(self) -> list[EventRule]:
        with _backend_errors("list_rules"):
            rules: list[EventRule] = []
            for domain_id in sorted(await self.client.smembers(rules_idx(self.name))):
                raw = await self.client.get(rule_key(self.name, domain_id))
                if raw:
                    rules.append(EventRule.model_validate_json(raw))
        return rules

    async def is_put_allowed(self, account_id: str) -> bool:
        """Whether the bus policy lets `account_id` put events on this bus."""
        with _backend_errors("is_put_allowed"):
            raw = await self.client.hget(policy_key(self.name), put_events_statement_id(account_id))
        if not raw:
            return False
        return PolicyStatement.model_validate_json(raw).principal == account_id

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def put_event(self, event: NotificationEvent) -> list[str]:
        """Route one event, put by the bus owner, to every matching rule.

        Returns the domain IDs delivered to.
        """
        matched = [rule for rule in await self.list_rules() if rule.pattern.matches(event)]
        if not matched:
            logger.warning(
                f"Event {event.event_id} ({event.detail_type}) matched no rule on bus "
                f"'{self.name}'; is the producer's domain registered?"
            )
        for rule in matched:
            await self.forwarder.deliver(rule.target, event)
        return [rule.domain_id for rule in matched]


def get_event_bus() -> EventBus:
    """Build the central EventBus named by MESH_EVENT_BUS_NAME."""
    name = os.environ.get("MESH_EVENT_BUS_NAME", DEFAULT_BUS_NAME)
    return EventBus(get_client(), name=name)
