"""Catalog Access boundary models — the contract between Governance and Catalog Access.

These types cross the Temporal activity boundary. The registration workflow
creates them as arguments; activities in Catalog Access receive them and
return a StepResult on success.

Design choices:
  - Each request targets exactly one provisioning operation, so an activity
    retry never repeats a different operation's side effects.
  - Permissions are plain strings (DATA_LOCATION_ACCESS, ALL, SELECT, ...).
    The catalog stores them as given; it does not interpret a permission
    vocabulary beyond recording who holds what.
"""

from pydantic import BaseModel

from mesh_shared.models import PlatformResult

DATA_LOCATION_ACCESS = "DATA_LOCATION_ACCESS"
ALL_PERMISSIONS = "ALL"


class RegisterLocationRequest(BaseModel):
    """Input for register_location: put a storage path under catalog management."""

    location: str
    role: str


class GrantLocationAccessRequest(BaseModel):
    """Input for grant_location_access: let a principal create tables on a location."""

    location: str
    principal: str
    permissions: list[str] = [DATA_LOCATION_ACCESS]


class CreateDatabaseRequest(BaseModel):
    """Input for create_database."""

    name: str
    description: str = ""


class UpdateDatabaseMetadataRequest(BaseModel):
    """Input for update_database_metadata: merge parameters into a database."""

    name: str
    parameters: dict[str, str] = {}


class CreateTableRequest(BaseModel):
    """Input for create_table."""

    database_name: str
    table_name: str
    owner: str
    location: str


class GrantTablePermissionsRequest(BaseModel):
    """Input for grant_table_permissions."""

    database_name: str
    table_name: str
    principal: str
    permissions: list[str] = [ALL_PERMISSIONS]
    grantable_permissions: list[str] = [ALL_PERMISSIONS]


class StepResult(PlatformResult):
    """Returned by every catalog activity on success."""

    action: str = ""
    resource: str = ""
