"""Test fixtures for Catalog Access.

The catalog runs against fakeredis through the real RedisAdapter, one private
FakeServer per test, so no state leaks between tests. Activities call
get_client(); the `adapter` fixture installs the test adapter as the
singleton and removes it afterwards.

Fixtures describe the registration scenario used throughout: producer account
111111111111 registering bucket/path with a `sales` database.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from mesh_catalog_access.catalog import DataCatalog
from mesh_shared.redis_client import RedisAdapter, reset_client, set_client

WORKFLOW_PRINCIPAL = "mesh-workflow-role"
PRODUCER = "111111111111"
LOCATION = "bucket/path"
DATABASE = f"{PRODUCER}_sales"


@pytest.fixture
def adapter():
    """A fresh fakeredis-backed adapter, installed as the client singleton."""
    adapter = RedisAdapter(FakeRedis(server=FakeServer(), decode_responses=True))
    set_client(adapter)
    yield adapter
    reset_client()


@pytest.fixture
def catalog(adapter) -> DataCatalog:
    return DataCatalog(adapter, principal=WORKFLOW_PRINCIPAL)


@pytest_asyncio.fixture
async def provisioned(catalog) -> DataCatalog:
    """A catalog where the location is registered and the workflow principal may use it."""
    await catalog.register_location(LOCATION, "mesh-data-access-role")
    await catalog.grant_location_access(LOCATION, WORKFLOW_PRINCIPAL, ["DATA_LOCATION_ACCESS"])
    await catalog.create_database(DATABASE, "Data product for bucket/path")
    return catalog
