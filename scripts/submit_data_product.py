"""Submit registrations to the governance workers from the command line.

Reads Temporal connection settings (and MESH_* defaults) from the environment,
loading .env first if present.

Usage:
  python scripts/submit_data_product.py product request.json [--wait]
  python scripts/submit_data_product.py domain --domain-id Sales --account-id 111111111111 \
      --endpoint https://sales.example.com/mesh/events
  python scripts/submit_data_product.py progress <workflow-id>
  python scripts/submit_data_product.py cancel <workflow-id> --reason "wrong location"

request.json holds a RegisterDataProductRequest, camelCase or snake_case:
  {"dataProductLocation": "bucket/path", "producerAccountId": "111111111111",
   "databaseName": "sales", "tables": [{"name": "orders", "location": "bucket/path/orders"}],
   "productOwnerName": "Alice", "productPiiFlag": false}

Workflow IDs are deterministic (register-{central_database_name}), so
submitting the same product twice while a run is in flight is rejected by
Temporal instead of starting a duplicate.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from mesh_governance.workflows.register_data_domain import RegisterDataDomainWorkflow
from mesh_governance.workflows.register_data_product import RegisterDataProductWorkflow
from mesh_shared.bus_models import RegisterDomainRequest
from mesh_shared.registration_models import (
    DEFAULT_DATA_ACCESS_ROLE,
    DEFAULT_MAX_PARALLEL_TABLES,
    DEFAULT_STEP_TIMEOUT_SECONDS,
    DEFAULT_WORKFLOW_PRINCIPAL,
    RegisterDataProductRequest,
    RegistrationOptions,
    find_input_problems,
)
from mesh_shared.task_queues import GOVERNANCE_QUEUE
from mesh_shared.temporal_client import connect


def _options_from_env() -> RegistrationOptions:
    return RegistrationOptions(
        workflow_principal=os.environ.get("MESH_WORKFLOW_PRINCIPAL", DEFAULT_WORKFLOW_PRINCIPAL),
        data_access_role=os.environ.get("MESH_DATA_ACCESS_ROLE", DEFAULT_DATA_ACCESS_ROLE),
        step_timeout_seconds=int(
            os.environ.get("MESH_STEP_TIMEOUT_SECONDS", DEFAULT_STEP_TIMEOUT_SECONDS)
        ),
        max_parallel_tables=int(
            os.environ.get("MESH_MAX_PARALLEL_TABLES", DEFAULT_MAX_PARALLEL_TABLES)
        ),
    )


async def submit_product(path: Path, wait: bool) -> None:
    payload = json.loads(path.read_text())
    payload.setdefault("options", _options_from_env().model_dump())
    request = RegisterDataProductRequest.model_validate(payload)

    problems = find_input_problems(request)
    if problems:
        print("Request rejected:", file=sys.stderr)
        for problem in problems:
            print(f"  - {problem}", file=sys.stderr)
        sys.exit(1)

    client = await connect()
    workflow_id = f"register-{request.central_database_name}"
    handle = await client.start_workflow(
        RegisterDataProductWorkflow.run,
        request,
        id=workflow_id,
        task_queue=GOVERNANCE_QUEUE,
    )
    print(f"Started {workflow_id} (run {handle.result_run_id})")
    if wait:
        result = await handle.result()
        print(json.dumps(result.model_dump(), indent=2))


async def submit_domain(domain_id: str, account_id: str, endpoint: str) -> None:
    client = await connect()
    result = await client.execute_workflow(
        RegisterDataDomainWorkflow.run,
        RegisterDomainRequest(domain_id=domain_id, account_id=account_id, event_endpoint=endpoint),
        id=f"register-domain-{domain_id}",
        task_queue=GOVERNANCE_QUEUE,
    )
    print(result.message)


async def show_progress(workflow_id: str) -> None:
    client = await connect()
    handle = client.get_workflow_handle(workflow_id)
    progress = await handle.query(RegisterDataProductWorkflow.progress)
    print(json.dumps(progress.model_dump(), indent=2))


async def cancel(workflow_id: str, reason: str) -> None:
    client = await connect()
    handle = client.get_workflow_handle(workflow_id)
    await handle.signal(RegisterDataProductWorkflow.request_cancellation, reason)
    print(f"Cancellation requested for {workflow_id}")


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Submit data mesh registrations")
    sub = parser.add_subparsers(dest="command", required=True)

    product = sub.add_parser("product", help="Register a data product from a JSON request")
    product.add_argument("request", type=Path)
    product.add_argument("--wait", action="store_true", help="Wait for the result")

    domain = sub.add_parser("domain", help="Register a producer/consumer domain")
    domain.add_argument("--domain-id", required=True)
    domain.add_argument("--account-id", required=True)
    domain.add_argument("--endpoint", required=True)

    progress = sub.add_parser("progress", help="Show the state of a registration")
    progress.add_argument("workflow_id")

    stop = sub.add_parser("cancel", help="Stop a registration before its next step")
    stop.add_argument("workflow_id")
    stop.add_argument("--reason", default="")

    args = parser.parse_args()
    if args.command == "product":
        asyncio.run(submit_product(args.request, args.wait))
    elif args.command == "domain":
        asyncio.run(submit_domain(args.domain_id, args.account_id, args.endpoint))
    elif args.command == "progress":
        asyncio.run(show_progress(args.workflow_id))
    else:
        asyncio.run(cancel(args.workflow_id, args.reason))


if __name__ == "__main__":
    main()
