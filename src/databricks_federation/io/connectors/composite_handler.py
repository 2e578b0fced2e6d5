"""
Host-facing connector facades.

``DatabricksConnector`` pairs one metadata handler with one record handler
for a single Databricks workspace. ``DatabricksMuxConnector`` routes each
call to a per-catalog connector, for deployments serving several
workspaces from one process.
"""

import os
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import pyarrow as pa

from databricks_federation.config.settings import Settings, get_settings
from databricks_federation.domain.models import (
    Constraints,
    ListTablesResult,
    PartitionDescriptor,
    Split,
    SplitsResult,
    TableReference,
)
from databricks_federation.infrastructure.sql import DatabricksDialect
from databricks_federation.utils.logging import get_logger

from .connection_manager import ConnectionManager
from .exceptions import ConnectorError, ErrorClassification, map_exception
from .metadata_handler import DatabricksMetadataHandler, StatusChecker
from .metrics import ConnectorMetrics, RequestContext
from .record_handler import DatabricksRecordHandler
from .secrets import SecretStore

logger = get_logger(__name__)

CONNECTION_STRING_SUFFIX = "_connection_string"


def error_response(exc: BaseException, operation: str = "request") -> Dict[str, str]:
    """Host error payload ``{errorCode, message}`` for any exception."""
    return map_exception(operation, exc).to_dict()


class DatabricksConnector:
    """
    Single-workspace connector exposing every host operation.

    Every call runs with its own ``RequestContext`` sharing this connector's
    metrics sink; failures surface as classified ``ConnectorError``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        secret_store: Optional[SecretStore] = None,
        connection_manager: Optional[ConnectionManager] = None,
        metrics: Optional[ConnectorMetrics] = None,
    ):
        self.settings = settings or get_settings()
        self.dialect = DatabricksDialect()
        self.connection_manager = connection_manager or ConnectionManager(
            self.settings, secret_store=secret_store, dialect=self.dialect
        )
        self.metrics = metrics or ConnectorMetrics()
        self.metadata = DatabricksMetadataHandler(self.connection_manager, self.settings)
        self.records = DatabricksRecordHandler(
            self.connection_manager, self.settings, self.dialect
        )

    def _context(
        self,
        operation: str,
        query_id: str = "",
        table_ref: Optional[TableReference] = None,
        catalog: Optional[str] = None,
        schema: Optional[str] = None,
    ) -> RequestContext:
        return RequestContext(
            query_id=query_id,
            catalog=table_ref.catalog if table_ref else catalog,
            schema=table_ref.schema if table_ref else schema,
            table=table_ref.table if table_ref else None,
            operation=operation,
            metrics=self.metrics,
        )

    def _call(self, context: RequestContext, func, *args, **kwargs):
        context.metrics.increment(f"{context.operation}.requests")
        try:
            with context.timed(context.operation):
                return func(*args, **kwargs)
        except Exception as exc:
            context.metrics.increment(f"{context.operation}.errors")
            error = map_exception(context.operation, exc)
            if error is exc:
                raise
            raise error from exc

    def get_capabilities(self) -> Dict[str, List[str]]:
        return self.metadata.get_capabilities()

    def list_schemas(self, catalog: Optional[str] = None, query_id: str = "") -> List[str]:
        context = self._context("list_schemas", query_id, catalog=catalog)
        return self._call(context, self.metadata.list_schemas, catalog, context)

    def list_tables(
        self,
        schema: str,
        page_token: Optional[str] = None,
        page_size: int = 0,
        catalog: Optional[str] = None,
        query_id: str = "",
    ) -> ListTablesResult:
        context = self._context("list_tables", query_id, catalog=catalog, schema=schema)
        return self._call(
            context, self.metadata.list_tables, schema, page_token, page_size, catalog, context
        )

    def get_table(self, table_ref: TableReference, query_id: str = "") -> pa.Schema:
        context = self._context("get_table", query_id, table_ref)
        return self._call(context, self.metadata.get_table, table_ref, context)

    def get_partitions(
        self,
        table_ref: TableReference,
        status_checker: Optional[StatusChecker] = None,
        query_id: str = "",
    ) -> List[PartitionDescriptor]:
        context = self._context("get_partitions", query_id, table_ref)
        return self._call(
            context, self.metadata.get_partitions, table_ref, status_checker, context
        )

    def get_splits(
        self,
        table_ref: TableReference,
        constraints: Optional[Constraints],
        partitions: Sequence[PartitionDescriptor],
        continuation_token: Optional[str] = None,
        status_checker: Optional[StatusChecker] = None,
        query_id: str = "",
    ) -> SplitsResult:
        context = self._context("get_splits", query_id, table_ref)
        return self._call(
            context,
            self.metadata.get_splits,
            table_ref,
            constraints,
            partitions,
            continuation_token,
            status_checker,
            context,
        )

    def build_record_query(
        self,
        table_ref: TableReference,
        schema: Optional[pa.Schema],
        constraints: Optional[Constraints],
        split: Optional[Split],
    ) -> str:
        return self.records.build_record_query(table_ref, schema, constraints, split)

    def read_records(
        self,
        table_ref: TableReference,
        schema: Optional[pa.Schema],
        constraints: Optional[Constraints],
        split: Split,
        status_checker: Optional[StatusChecker] = None,
        query_id: str = "",
    ) -> Iterator[pa.RecordBatch]:
        context = self._context("read_records", query_id, table_ref)
        context.metrics.increment("read_records.requests")
        try:
            yield from self.records.read_records(
                table_ref, schema, constraints, split, status_checker, context
            )
        except Exception as exc:
            context.metrics.increment("read_records.errors")
            error = map_exception("read_records", exc)
            if error is exc:
                raise
            raise error from exc


class DatabricksMuxConnector:
    """
    Routes host calls to a connector per catalog.

    Args:
        connectors: Catalog name to connector
        default: Connector used for catalogs without an explicit entry
    """

    def __init__(
        self,
        connectors: Mapping[str, DatabricksConnector],
        default: Optional[DatabricksConnector] = None,
    ):
        self.connectors = {name.lower(): conn for name, conn in connectors.items()}
        self.default = default

    @classmethod
    def from_environment(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        settings: Optional[Settings] = None,
        secret_store: Optional[SecretStore] = None,
    ) -> "DatabricksMuxConnector":
        """
        Build one connector per ``<catalog>_connection_string`` variable.

        The base settings supply everything except the connection string.
        """
        environ = os.environ if environ is None else environ
        base = settings or get_settings()
        metrics = ConnectorMetrics()
        connectors: Dict[str, DatabricksConnector] = {}
        for key, value in environ.items():
            if not key.lower().endswith(CONNECTION_STRING_SUFFIX) or not value:
                continue
            catalog = key[: -len(CONNECTION_STRING_SUFFIX)]
            if not catalog or catalog.lower() == "default":
                continue
            catalog_settings = base.model_copy(
                update={"default_connection_string": value, "host": None, "http_path": None}
            )
            connectors[catalog] = DatabricksConnector(
                catalog_settings, secret_store=secret_store, metrics=metrics
            )
            logger.info("mux.catalog_registered", catalog=catalog)

        default = DatabricksConnector(base, secret_store=secret_store, metrics=metrics)
        return cls(connectors, default)

    def connector_for(self, catalog: Optional[str]) -> DatabricksConnector:
        connector = self.connectors.get((catalog or "").lower()) or self.default
        if connector is None:
            raise ConnectorError(
                ErrorClassification.INVALID_INPUT,
                f"No Databricks connection configured for catalog '{catalog}'",
            )
        return connector

    def get_capabilities(self, catalog: Optional[str] = None) -> Dict[str, List[str]]:
        return self.connector_for(catalog).get_capabilities()

    def list_schemas(self, catalog: Optional[str] = None, **kwargs: Any) -> List[str]:
        return self.connector_for(catalog).list_schemas(catalog, **kwargs)

    def list_tables(self, schema: str, catalog: Optional[str] = None, **kwargs: Any) -> ListTablesResult:
        return self.connector_for(catalog).list_tables(schema, catalog=catalog, **kwargs)

    def get_table(self, table_ref: TableReference, **kwargs: Any) -> pa.Schema:
        return self.connector_for(table_ref.catalog).get_table(table_ref, **kwargs)

    def get_partitions(self, table_ref: TableReference, **kwargs: Any) -> List[PartitionDescriptor]:
        return self.connector_for(table_ref.catalog).get_partitions(table_ref, **kwargs)

    def get_splits(self, table_ref: TableReference, *args: Any, **kwargs: Any) -> SplitsResult:
        return self.connector_for(table_ref.catalog).get_splits(table_ref, *args, **kwargs)

    def build_record_query(self, table_ref: TableReference, *args: Any) -> str:
        return self.connector_for(table_ref.catalog).build_record_query(table_ref, *args)

    def read_records(self, table_ref: TableReference, *args: Any, **kwargs: Any) -> Iterator[pa.RecordBatch]:
        return self.connector_for(table_ref.catalog).read_records(table_ref, *args, **kwargs)
