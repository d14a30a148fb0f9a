"""Infrastructure verification script.

Starts all three workers in one process (governance, catalog-access,
event-bus), registers a sample data product twice, and checks that the second
run recovers from every "already exists" condition and returns the same tables.

If MESH_VERIFY_ENDPOINT is set, a sample domain for the producer account is
registered first and the notification is delivered there (e.g. a request bin).
Otherwise the event matches no rule and the run still completes.

Prerequisites:
  - Temporal dev server running: `temporal server start-dev`
    OR Temporal Cloud credentials in .env
  - Dependencies installed: `pip install -e .`

Usage:
  python scripts/verify_infra.py
"""

import asyncio
import contextlib
import logging
import os
import uuid

from dotenv import load_dotenv
from mesh_governance.workflows.register_data_domain import RegisterDataDomainWorkflow
from mesh_governance.workflows.register_data_product import RegisterDataProductWorkflow
from mesh_shared.bus_models import RegisterDomainRequest
from mesh_shared.registration_models import RegisterDataProductRequest, TableSpec
from mesh_shared.task_queues import GOVERNANCE_QUEUE
from mesh_shared.temporal_client import connect
from mesh_workers.registry import COMPONENTS
from temporalio.worker import Worker

load_dotenv()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PRODUCER_ACCOUNT_ID = "111111111111"


async def main() -> None:
    """Run the full verification: start workers, execute workflows, check results."""
    client = await connect()
    logger.info("Connected to Temporal server")

    workers = [
        Worker(
            client,
            task_queue=config.task_queue,
            workflows=config.workflows,
            activities=config.activities,
        )
        for config in COMPONENTS.values()
    ]

    async with contextlib.AsyncExitStack() as stack:
        for worker in workers:
            await stack.enter_async_context(worker)
        logger.info(f"{len(workers)} workers started")

        endpoint = os.environ.get("MESH_VERIFY_ENDPOINT")
        if endpoint:
            registered = await client.execute_workflow(
                RegisterDataDomainWorkflow.run,
                RegisterDomainRequest(
                    domain_id="VerifyDomain",
                    account_id=PRODUCER_ACCOUNT_ID,
                    event_endpoint=endpoint,
                ),
                id=f"verify-domain-{uuid.uuid4()}",
                task_queue=GOVERNANCE_QUEUE,
            )
            logger.info(registered.message)

        request = RegisterDataProductRequest(
            data_product_location="verify-bucket/sales",
            producer_account_id=PRODUCER_ACCOUNT_ID,
            database_name="sales",
            tables=[
                TableSpec(name="orders", location="verify-bucket/sales/orders"),
                TableSpec(name="customers", location="verify-bucket/sales/customers"),
            ],
            product_owner_name="Verification",
            product_pii_flag=False,
        )

        results = []
        for attempt in (1, 2):
            result = await client.execute_workflow(
                RegisterDataProductWorkflow.run,
                request,
                id=f"verify-register-{attempt}-{uuid.uuid4()}",
                task_queue=GOVERNANCE_QUEUE,
            )
            logger.info(
                f"Run {attempt}: tables={result.table_names} "
                f"recovered={result.recovered_states}"
            )
            results.append(result)

        first, second = results
        assert first.table_names == ["orders", "customers"], first.table_names
        assert second.table_names == first.table_names, second.table_names
        assert "RegisterLocation" in second.recovered_states, second.recovered_states
        assert "CreateDatabase" in second.recovered_states, second.recovered_states

        logger.info("VERIFICATION PASSED — registration is idempotent end to end")


if __name__ == "__main__":
    asyncio.run(main())
