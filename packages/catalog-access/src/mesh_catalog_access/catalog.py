"""DataCatalog — the provisioning backend behind the catalog activities.

Holds the central account's view of the lake: registered storage locations,
databases, tables, and the permissions granted on each. Every public method is
one provisioning operation with the failure contract the registration workflow
routes on:

  - creating something that exists        → AlreadyExistsError
  - acting on a parent that doesn't exist → EntityNotFoundError
  - caller not allowed to do it           → PermissionDeniedError
  - storage unreachable / timing out      → TransientServiceError, retried here
                                            with exponential backoff first

Grants are additive upserts: granting the same permission twice is a no-op, so
the grant steps are safe to repeat on a re-submitted registration.

Location access follows the lake rule the workflow is built around: once a
location is registered, creating a table under it requires DATA_LOCATION_ACCESS
on that location, even for a catalog admin. That is why the workflow grants the
workflow principal access before creating any table.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any

import httpx
from mesh_shared.catalog_models import DATA_LOCATION_ACCESS
from mesh_shared.failures import (
    AlreadyExistsError,
    EntityNotFoundError,
    PermissionDeniedError,
    TransientServiceError,
)
from mesh_shared.redis_client import RedisAdapter, get_client
from mesh_shared.registration_models import DEFAULT_WORKFLOW_PRINCIPAL
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mesh_catalog_access.keys import (
    database_key,
    database_tables_key,
    location_grants_key,
    location_idx_all,
    location_key,
    table_grants_key,
    table_key,
)

logger = logging.getLogger(__name__)

_BACKEND_ERRORS = (
    RedisConnectionError,
    RedisTimeoutError,
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)

_retry_transient = retry(
    retry=retry_if_exception_type(TransientServiceError),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
    stop=stop_after_attempt(3),
    reraise=True,
)


def normalize_location(location: str) -> str:
    """Strip surrounding whitespace and trailing slashes: "bucket/path/" → "bucket/path"."""
    return location.strip().rstrip("/")


def _now() -> str:
    return datetime.now(UTC).isoformat()


@contextlib.contextmanager
def _backend_errors(operation: str) -> Iterator[None]:
    """Re-raise storage connectivity errors as TransientServiceError."""
    try:
        yield
    except _BACKEND_ERRORS as e:
        raise TransientServiceError(
            f"{operation}: catalog backend unavailable: {e}", resource=operation
        ) from e


class DataCatalog:
    """Catalog operations performed on behalf of one calling principal."""

    def __init__(
        self,
        client: RedisAdapter,
        principal: str = DEFAULT_WORKFLOW_PRINCIPAL,
        admins: set[str] | None = None,
    ) -> None:
        self.client = client
        self.principal = principal
        self.admins = admins if admins is not None else {principal}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _authorize(self, action: str, resource: str) -> None:
        if self.principal not in self.admins:
            raise PermissionDeniedError(
                f"Principal '{self.principal}' is not allowed to {action} on '{resource}'",
                resource=resource,
            )

    async def _load(self, key: str) -> dict[str, Any] | None:
        raw = await self.client.get(key)
        return json.loads(raw) if raw else None

    async def _require_database(self, name: str) -> dict[str, Any]:
        database = await self._load(database_key(name))
        if database is None:
            raise EntityNotFoundError(f"Database '{name}' does not exist", resource=name)
        return database

    async def _require_table(self, database: str, table: str) -> dict[str, Any]:
        await self._require_database(database)
        found = await self._load(table_key(database, table))
        if found is None:
            raise EntityNotFoundError(
                f"Table '{database}.{table}' does not exist", resource=f"{database}.{table}"
            )
        return found

    async def _check_location_access(self, location: str) -> None:
        """Require DATA_LOCATION_ACCESS on the registered location covering `location`."""
        registered_locations = await self.client.smembers(location_idx_all())
        for registered in sorted(registered_locations, key=len, reverse=True):
            if location != registered and not location.startswith(f"{registered}/"):
                continue
            grants = await self.location_grants(registered)
            if DATA_LOCATION_ACCESS not in grants.get(self.principal, []):
                raise PermissionDeniedError(
                    f"Principal '{self.principal}' lacks {DATA_LOCATION_ACCESS} "
                    f"on registered location '{registered}'",
                    resource=registered,
                )
            return

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    @_retry_transient
    async def register_location(self, location: str, role: str) -> None:
        """Put a storage location under catalog management, accessed through `role`."""
        location = normalize_location(location)
        with _backend_errors("register_location"):
            self._authorize("register a location", location)
            document = {"location": location, "role": role, "registered_at": _now()}
            # Index first: sadd is idempotent, so a retry after a partial write converges
            await self.client.sadd(location_idx_all(), location)
            created = await self.client.set_if_absent(location_key(location), json.dumps(document))
            if not created:
                raise AlreadyExistsError(
                    f"Location '{location}' is already registered", resource=location
                )
        logger.info(f"Registered location '{location}' with role '{role}'")

    @_retry_transient
    async def grant_location_access(
        self, location: str, principal: str, permissions: list[str]
    ) -> list[str]:
        """Add permissions on a registered location. Returns the principal's full set."""
        location = normalize_location(location)
        with _backend_errors("grant_location_access"):
            self._authorize("grant permissions", location)
            if await self._load(location_key(location)) is None:
                raise EntityNotFoundError(
                    f"Location '{location}' is not registered", resource=location
                )
            grants_key = location_grants_key(location)
            existing = await self.client.hget(grants_key, principal)
            merged = sorted(set(json.loads(existing) if existing else []) | set(permissions))
            await self.client.hset(grants_key, principal, json.dumps(merged))
        logger.info(f"Granted {merged} on location '{location}' to '{principal}'")
        return merged

    async def describe_location(self, location: str) -> dict[str, Any] | None:
        with _backend_errors("describe_location"):
            return await self._load(location_key(normalize_location(location)))

    async def location_grants(self, location: str) -> dict[str, list[str]]:
        with _backend_errors("location_grants"):
            raw = await self.client.hgetall(location_grants_key(normalize_location(location)))
        return {principal: json.loads(perms) for principal, perms in raw.items()}

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------

    @_retry_transient
    async def create_database(self, name: str, description: str = "") -> None:
        with _backend_errors("create_database"):
            self._authorize("create a database", name)
            now = _now()
            document = {
                "name": name,
                "description": description,
                "parameters": {},
                "created_at": now,
                "updated_at": now,
            }
            created = await self.client.set_if_absent(database_key(name), json.dumps(document))
            if not created:
                raise AlreadyExistsError(f"Database '{name}' already exists", resource=name)
        logger.info(f"Created database '{name}'")

    @_retry_transient
    async def update_database_metadata(
        self, name: str, parameters: dict[str, str]
    ) -> dict[str, str]:
        """Merge parameters into an existing database. Returns the merged parameters."""
        with _backend_errors("update_database_metadata"):
            self._authorize("update a database", name)
            database = await self._require_database(name)
            database["parameters"] = {**database.get("parameters", {}), **parameters}
            database["updated_at"] = _now()
            await self.client.set(database_key(name), json.dumps(database))
        logger.info(f"Updated metadata of database '{name}': {sorted(parameters)}")
        return database["parameters"]

    async def describe_database(self, name: str) -> dict[str, Any] | None:
        with _backend_errors("describe_database"):
            return await self._load(database_key(name))

    async def list_tables(self, database: str) -> list[str]:
        with _backend_errors("list_tables"):
            return sorted(await self.client.smembers(database_tables_key(database)))

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    @_retry_transient
    async def create_table(self, database: str, table: str, owner: str, location: str) -> None:
        location = normalize_location(location)
        resource = f"{database}.{table}"
        with _backend_errors("create_table"):
            self._authorize("create a table", resource)
            await self._require_database(database)
            await self._check_location_access(location)
            document = {
                "database_name": database,
                "name": table,
                "owner": owner,
                "location": location,
                "created_at": _now(),
            }
            await self.client.sadd(database_tables_key(database), table)
            created = await self.client.set_if_absent(
                table_key(database, table), json.dumps(document)
            )
            if not created:
                raise AlreadyExistsError(f"Table '{resource}' already exists", resource=resource)
        logger.info(f"Created table '{resource}' at '{location}' owned by '{owner}'")

    @_retry_transient
    async def grant_table_permissions(
        self,
        database: str,
        table: str,
        principal: str,
        permissions: list[str],
        grantable_permissions: list[str],
    ) -> dict[str, list[str]]:
        """Add permissions (and grant options) on a table. Returns the principal's full grant."""
        resource = f"{database}.{table}"
        with _backend_errors("grant_table_permissions"):
            self._authorize("grant permissions", resource)
            await self._require_table(database, table)
            grants_key = table_grants_key(database, table)
            raw = await self.client.hget(grants_key, principal)
            existing = json.loads(raw) if raw else {"permissions": [], "grantable_permissions": []}
            merged = {
                "permissions": sorted(set(existing["permissions"]) | set(permissions)),
                "grantable_permissions": sorted(
                    set(existing["grantable_permissions"]) | set(grantable_permissions)
                ),
            }
            await self.client.hset(grants_key, principal, json.dumps(merged))
        logger.info(f"Granted {merged['permissions']} on table '{resource}' to '{principal}'")
        return merged

    async def describe_table(self, database: str, table: str) -> dict[str, Any] | None:
        with _backend_errors("describe_table"):
            return await self._load(table_key(database, table))

    async def table_grants(self, database: str, table: str) -> dict[str, dict[str, list[str]]]:
        with _backend_errors("table_grants"):
            raw = await self.client.hgetall(table_grants_key(database, table))
        return {principal: json.loads(grant) for principal, grant in raw.items()}


# ============================================================================
# Factory
# ============================================================================


def get_catalog() -> DataCatalog:
    """Build a DataCatalog for this worker's principal.

    MESH_WORKFLOW_PRINCIPAL names the caller (default mesh-workflow-role).
    MESH_CATALOG_ADMINS is a comma-separated list of principals allowed to
    mutate the catalog; it defaults to the workflow principal alone.
    """
    principal = os.environ.get("MESH_WORKFLOW_PRINCIPAL", DEFAULT_WORKFLOW_PRINCIPAL)
    raw_admins = os.environ.get("MESH_CATALOG_ADMINS", "")
    admins = {a.strip() for a in raw_admins.split(",") if a.strip()} or {principal}
    return DataCatalog(get_client(), principal=principal, admins=admins)
