"""
Live checks against a real Databricks SQL warehouse.

Skipped unless --run-live-tests (or RUN_LIVE_TESTS=1) is given. The
workspace comes from the usual DATABRICKS_* variables; set
DATABRICKS_LIVE_SCHEMA to a schema with at least one table.
"""

import os

import pytest

from databricks_federation.config import get_settings
from databricks_federation.domain.models import Constraints, TableReference
from databricks_federation.io.connectors.composite_handler import DatabricksConnector
from databricks_federation.io.connectors.connection_manager import ConnectionManager

pytestmark = pytest.mark.live


@pytest.fixture(scope="module")
def connector() -> DatabricksConnector:
    return DatabricksConnector(get_settings())


def test_connection_validates():
    with ConnectionManager().connection() as conn:
        assert conn.is_valid()


def test_list_schemas(connector):
    assert connector.list_schemas(get_settings().default_catalog)


def test_first_table_round_trip(connector):
    schema_name = os.getenv("DATABRICKS_LIVE_SCHEMA")
    if not schema_name:
        pytest.skip("DATABRICKS_LIVE_SCHEMA not set")

    page = connector.list_tables(schema_name, page_size=1, catalog=get_settings().default_catalog)
    assert page.tables
    table = TableReference(get_settings().default_catalog, schema_name, page.tables[0].table)

    schema = connector.get_table(table)
    partitions = connector.get_partitions(table)
    splits = connector.get_splits(table, Constraints(limit=5), partitions[:1])
    batches = list(
        connector.read_records(table, schema, Constraints(limit=5), splits.splits[0])
    )

    assert sum(batch.num_rows for batch in batches) <= 5
