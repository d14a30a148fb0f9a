"""Catalog Access activities — Temporal activity functions for catalog provisioning.

These run on the catalog-access worker (CATALOG_ACCESS_QUEUE). The registration
workflow dispatches to this queue for every provisioning step of a data product.

Six activities — each is an atomic business verb targeting one operation:

  register_location         — put a storage location under catalog management
  grant_location_access     — grant DATA_LOCATION_ACCESS on a location
  create_database           — create the product's central database
  update_database_metadata  — record owner / PII metadata on the database
  create_table              — create one table of the product
  grant_table_permissions   — grant table permissions to the producer account

Each activity delegates to the DataCatalog and raises failures as Temporal
ApplicationErrors typed with their FailureKind. AlreadyExists is raised like
any other failure: it is the workflow, not the activity, that decides a
duplicate is fine at that point of the sequence.
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator

from mesh_shared.catalog_models import (
    CreateDatabaseRequest,
    CreateTableRequest,
    GrantLocationAccessRequest,
    GrantTablePermissionsRequest,
    RegisterLocationRequest,
    StepResult,
    UpdateDatabaseMetadataRequest,
)
from mesh_shared.failures import MeshError
from temporalio import activity

from mesh_catalog_access.catalog import get_catalog


@contextlib.contextmanager
def _raise_as_application_error(action: str) -> Iterator[None]:
    try:
        yield
    except MeshError as e:
        activity.logger.warning(f"{action} failed with {e.kind.value}: {e}")
        raise e.to_application_error() from e


@activity.defn
async def register_location(request: RegisterLocationRequest) -> StepResult:
    """Register the data product's storage location with its data access role."""
    activity.logger.info(f"Registering location '{request.location}'")
    with _raise_as_application_error("register_location"):
        await get_catalog().register_location(request.location, request.role)
    return StepResult(
        success=True,
        message=f"Location '{request.location}' registered",
        action="register_location",
        resource=request.location,
    )


@activity.defn
async def grant_location_access(request: GrantLocationAccessRequest) -> StepResult:
    """Grant location permissions to a principal (the workflow role or a producer account)."""
    activity.logger.info(
        f"Granting {request.permissions} on '{request.location}' to '{request.principal}'"
    )
    with _raise_as_application_error("grant_location_access"):
        granted = await get_catalog().grant_location_access(
            request.location, request.principal, request.permissions
        )
    return StepResult(
        success=True,
        message=f"'{request.principal}' holds {granted} on '{request.location}'",
        action="grant_location_access",
        resource=request.location,
    )


@activity.defn
async def create_database(request: CreateDatabaseRequest) -> StepResult:
    """Create the central database for a data product."""
    activity.logger.info(f"Creating database '{request.name}'")
    with _raise_as_application_error("create_database"):
        await get_catalog().create_database(request.name, request.description)
    return StepResult(
        success=True,
        message=f"Database '{request.name}' created",
        action="create_database",
        resource=request.name,
    )


@activity.defn
async def update_database_metadata(request: UpdateDatabaseMetadataRequest) -> StepResult:
    """Merge ownership metadata (data_owner, data_owner_name, pii_flag) into a database."""
    activity.logger.info(f"Updating metadata of database '{request.name}'")
    with _raise_as_application_error("update_database_metadata"):
        parameters = await get_catalog().update_database_metadata(
            request.name, request.parameters
        )
    return StepResult(
        success=True,
        message=f"Database '{request.name}' metadata updated",
        data=dict(parameters),
        action="update_database_metadata",
        resource=request.name,
    )


@activity.defn
async def create_table(request: CreateTableRequest) -> StepResult:
    """Create one table of a data product in its central database."""
    resource = f"{request.database_name}.{request.table_name}"
    activity.logger.info(f"Creating table '{resource}' at '{request.location}'")
    with _raise_as_application_error("create_table"):
        await get_catalog().create_table(
            request.database_name, request.table_name, request.owner, request.location
        )
    return StepResult(
        success=True,
        message=f"Table '{resource}' created",
        action="create_table",
        resource=resource,
    )


@activity.defn
async def grant_table_permissions(request: GrantTablePermissionsRequest) -> StepResult:
    """Grant table permissions (with grant option) to the producer account."""
    resource = f"{request.database_name}.{request.table_name}"
    activity.logger.info(f"Granting {request.permissions} on '{resource}' to '{request.principal}'")
    with _raise_as_application_error("grant_table_permissions"):
        await get_catalog().grant_table_permissions(
            request.database_name,
            request.table_name,
            request.principal,
            request.permissions,
            request.grantable_permissions,
        )
    return StepResult(
        success=True,
        message=f"'{request.principal}' granted {request.permissions} on '{resource}'",
        action="grant_table_permissions",
        resource=resource,
    )
