"""Redis key patterns for Catalog Access.

All keys use the `cat:` prefix. JSON strings for catalog objects, hashes for
grants (principal → JSON permissions), sets for indexes. Key functions are
pure — they compute key names, never touch Redis.

If the catalog moved to a managed metadata service these would become its
resource names: locations, databases, tables, and the grants on each.
"""


# ============================================================================
# Location keys
# ============================================================================


def location_key(location: str) -> str:
    """A registered storage location."""
    return f"cat:location:{location}"


def location_grants_key(location: str) -> str:
    """Hash: principal → JSON list of permissions on a location."""
    return f"cat:location:{location}:grants"


def location_idx_all() -> str:
    """Set of all registered locations."""
    return "cat:location:idx:all"


# ============================================================================
# Database keys
# ============================================================================


def database_key(name: str) -> str:
    """A database definition, including its metadata parameters."""
    return f"cat:database:{name}"


def database_tables_key(name: str) -> str:
    """Set of table names in a database."""
    return f"cat:database:{name}:tables"


# ============================================================================
# Table keys
# ============================================================================


def table_key(database: str, table: str) -> str:
    """A table definition."""
    return f"cat:table:{database}:{table}"


def table_grants_key(database: str, table: str) -> str:
    """Hash: principal → JSON {permissions, grantable_permissions} on a table."""
    return f"cat:table:{database}:{table}:grants"
