"""Registration boundary models — the contract between callers and Governance.

A producer account asks the central governance account to register a data
product: one storage location, one database, one or more tables. The
RegisterDataProductWorkflow receives a RegisterDataProductRequest and returns a
RegistrationResult.

Design choices:
  - Python field names are snake_case. camelCase aliases (dataProductLocation,
    producerAccountId, ...) are accepted on input so requests produced by
    non-Python callers validate unchanged.
  - Semantic checks (non-empty tables, unique table names, required strings)
    live in find_input_problems() rather than in validators. A validation
    error raised while Temporal decodes the workflow input fails the workflow
    *task* and retries forever, so required strings default to "" and a
    missing field decodes. The workflow then calls find_input_problems() and
    fails fast with MalformedInput before any side effect.
  - The central database name is derived, never supplied:
    "{producer_account_id}_{database_name}".
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

DEFAULT_WORKFLOW_PRINCIPAL = "mesh-workflow-role"
DEFAULT_DATA_ACCESS_ROLE = "mesh-data-access-role"
DEFAULT_STEP_TIMEOUT_SECONDS = 60
DEFAULT_MAX_STEP_ATTEMPTS = 3
DEFAULT_MAX_PARALLEL_TABLES = 10


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TableSpec(_CamelModel):
    """One table of a data product: a name and its storage sub-path."""

    name: str = ""
    location: str = ""


class RegistrationOptions(_CamelModel):
    """Per-invocation knobs. Workflow code cannot read the environment, so
    deployment-wide settings travel with the request."""

    workflow_principal: str = DEFAULT_WORKFLOW_PRINCIPAL
    data_access_role: str = DEFAULT_DATA_ACCESS_ROLE
    step_timeout_seconds: int = DEFAULT_STEP_TIMEOUT_SECONDS
    max_step_attempts: int = DEFAULT_MAX_STEP_ATTEMPTS
    max_parallel_tables: int = DEFAULT_MAX_PARALLEL_TABLES


class RegisterDataProductRequest(_CamelModel):
    """Input for RegisterDataProductWorkflow."""

    data_product_location: str = ""
    producer_account_id: str = ""
    database_name: str = ""
    tables: list[TableSpec] = []
    product_owner_name: str = ""
    product_pii_flag: bool | str = False
    options: RegistrationOptions = RegistrationOptions()

    @property
    def central_database_name(self) -> str:
        return central_database_name(self.producer_account_id, self.database_name)

    @property
    def pii_flag(self) -> str:
        """The PII flag as stored in catalog metadata. Booleans become "true" or
        "false"; strings are stored as given."""
        flag = self.product_pii_flag
        if isinstance(flag, bool):
            return "true" if flag else "false"
        return flag


class RegistrationResult(BaseModel):
    """Returned by RegisterDataProductWorkflow once the producer is notified."""

    central_database_name: str
    producer_account_id: str
    table_names: list[str]
    visited_states: list[str] = []
    recovered_states: list[str] = []


class RegistrationProgress(BaseModel):
    """Returned by the workflow's progress query."""

    state: str
    visited_states: list[str] = []
    cancel_requested: bool = False


def central_database_name(producer_account_id: str, database_name: str) -> str:
    return f"{producer_account_id}_{database_name}"


def find_input_problems(request: RegisterDataProductRequest) -> list[str]:
    """Return human-readable problems with a request; empty means valid."""
    problems: list[str] = []
    for field in ("data_product_location", "producer_account_id", "database_name"):
        if not getattr(request, field).strip():
            problems.append(f"{field} is required")
    if not request.tables:
        problems.append("tables must contain at least one table")

    seen: set[str] = set()
    for index, table in enumerate(request.tables):
        if not table.name.strip():
            problems.append(f"tables[{index}].name is required")
        elif table.name in seen:
            problems.append(f"duplicate table name '{table.name}'")
        seen.add(table.name)
        if not table.location.strip():
            problems.append(f"tables[{index}].location is required")

    options = request.options
    if options.step_timeout_seconds <= 0:
        problems.append("options.step_timeout_seconds must be positive")
    if options.max_step_attempts < 1:
        problems.append("options.max_step_attempts must be at least 1")
    if options.max_parallel_tables < 1:
        problems.append("options.max_parallel_tables must be at least 1")
    return problems
