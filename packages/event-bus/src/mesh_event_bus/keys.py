"""Redis key patterns for the Event Bus.

All keys use the `bus:{bus_name}:` prefix so several buses can share one Redis
database. Key functions are pure — they compute key names, never touch Redis.

Every routing record is keyed per domain, so registrations for different
domains never write the same key.
"""


def domain_key(bus: str, domain_id: str) -> str:
    """A DomainRegistration as JSON."""
    return f"bus:{bus}:domain:{domain_id}"


def rule_key(bus: str, domain_id: str) -> str:
    """The routing rule installed for a domain, as JSON."""
    return f"bus:{bus}:rule:{domain_id}"


def rules_idx(bus: str) -> str:
    """Set of domain IDs that have a routing rule."""
    return f"bus:{bus}:rule:idx:all"


def account_idx(bus: str, account_id: str) -> str:
    """String lookup: account ID → the domain ID that claimed it."""
    return f"bus:{bus}:account:{account_id}"


def policy_key(bus: str) -> str:
    """Hash: statement ID → JSON policy statement allowing an account to put events."""
    return f"bus:{bus}:policy"
