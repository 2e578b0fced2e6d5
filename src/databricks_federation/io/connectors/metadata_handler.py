"""
Metadata and split coordination for Databricks tables.

Answers the host's metadata calls: capabilities, schema and table listing,
column discovery, partition discovery and split generation.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence

import pyarrow as pa

from databricks_federation.config.settings import (
    Settings,
    get_settings,
    resolve_catalog_name,
)
from databricks_federation.domain.models import (
    PARTITION_NAME_KEY,
    PASS_THROUGH_KEY,
    Constraints,
    EncryptionKey,
    ListTablesResult,
    PartitionDescriptor,
    SpillLocation,
    Split,
    SplitsResult,
    TableReference,
)
from databricks_federation.infrastructure.sql import SUPPORTED_FUNCTIONS
from databricks_federation.utils.logging import get_logger

from .connection_manager import ConnectionManager, DatabricksConnection
from .exceptions import ConnectorError, ErrorClassification
from .extractors import arrow_type_for
from .metrics import RequestContext
from .retry import execute_with_retry

logger = get_logger(__name__)

StatusChecker = Callable[[], bool]

GET_PARTITIONS_QUERY = (
    "SELECT DISTINCT partition_id as partition_name "
    "FROM system.information_schema.table_partitions "
    "WHERE table_catalog = ? AND table_schema = ? AND table_name = ?"
)

LIST_PAGINATED_TABLES_QUERY = (
    "SELECT table_name as TABLE_NAME, table_schema as TABLE_SCHEM "
    "FROM system.information_schema.tables "
    "WHERE table_schema = ? "
    "ORDER BY table_name "
    "LIMIT ? OFFSET ?"
)

LIST_TABLES_QUERY = (
    "SELECT table_name as TABLE_NAME, table_schema as TABLE_SCHEM "
    "FROM system.information_schema.tables "
    "WHERE table_schema = ? "
    "ORDER BY table_name"
)

LIST_SCHEMAS_QUERY = (
    "SELECT schema_name FROM system.information_schema.schemata "
    "WHERE catalog_name = ? ORDER BY schema_name"
)

GET_COLUMNS_QUERY = (
    "SELECT column_name, full_data_type, is_nullable "
    "FROM system.information_schema.columns "
    "WHERE table_catalog = ? AND table_schema = ? AND table_name = ? "
    "ORDER BY ordinal_position"
)

# Query failures answered by a fallback (wildcard partition, driver introspection)
FALLBACK_CLASSIFICATIONS = frozenset(
    {
        ErrorClassification.ENTITY_NOT_FOUND,
        ErrorClassification.INVALID_INPUT,
        ErrorClassification.THROTTLED,
        ErrorClassification.INTERNAL_ERROR,
    }
)

# Filter pushdown subtypes advertised to the host
FILTER_PUSHDOWN_SUBTYPES = ["sorted_range_set", "nullable_comparison"]


def _always_running() -> bool:
    return True


def map_table_reference(table_ref: TableReference) -> TableReference:
    """Apply catalog mapping so the reference names the remote catalog."""
    if not table_ref.catalog:
        return table_ref
    mapped = resolve_catalog_name(table_ref.catalog)
    if mapped == table_ref.catalog:
        return table_ref
    return TableReference(mapped, table_ref.schema, table_ref.table)


def decode_token(token: Optional[str], kind: str) -> int:
    """
    Decode a continuation token into a non-negative index.

    Raises:
        ConnectorError: InvalidInput for anything but a non-negative integer
    """
    if token is None or token == "":
        return 0
    try:
        value = int(token)
    except (TypeError, ValueError) as exc:
        raise ConnectorError(
            ErrorClassification.INVALID_INPUT,
            f"Invalid {kind} token: {token!r}",
            original_error=exc,
        ) from exc
    if value < 0:
        raise ConnectorError(
            ErrorClassification.INVALID_INPUT, f"Invalid {kind} token: {token!r}"
        )
    return value


def _fetch_all(
    connection: DatabricksConnection, statement: str, parameters: Sequence[Any]
) -> List[Any]:
    cursor = connection.execute(statement, parameters)
    try:
        return list(cursor.fetchall())
    finally:
        cursor.close()


class DatabricksMetadataHandler:
    """
    Coordinator for metadata, partitions and splits.

    Args:
        connection_manager: Source of live connections
        settings: Connector settings (defaults to ``get_settings()``)
    """

    def __init__(
        self,
        connection_manager: Optional[ConnectionManager] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.connection_manager = connection_manager or ConnectionManager(self.settings)

    def get_capabilities(self) -> Dict[str, List[str]]:
        """Optimizations this connector can push down to Databricks."""
        capabilities = {
            "supports_filter_pushdown": list(FILTER_PUSHDOWN_SUBTYPES),
            "supports_complex_expression_pushdown": sorted(SUPPORTED_FUNCTIONS),
            "supports_top_n_pushdown": ["supports_order_by"],
            "supports_limit_pushdown": ["integer_constant"],
        }
        if self.settings.query_passthrough_enabled:
            capabilities["supports_query_passthrough"] = ["system.query"]
        return capabilities

    def get_partition_schema(self) -> pa.Schema:
        return pa.schema([pa.field(PARTITION_NAME_KEY, pa.string())])

    def list_schemas(
        self, catalog: Optional[str] = None, context: Optional[RequestContext] = None
    ) -> List[str]:
        """List schema names, falling back to driver introspection."""
        context = context or RequestContext(operation="list_schemas", catalog=catalog)
        remote_catalog = resolve_catalog_name(catalog) if catalog else self.settings.default_catalog
        with self.connection_manager.connection(remote_catalog, context) as conn:
            try:
                rows = execute_with_retry(
                    lambda: _fetch_all(conn, LIST_SCHEMAS_QUERY, [remote_catalog]),
                    "schema listing",
                )
                return [row[0] for row in rows if row[0]]
            except ConnectorError as exc:
                self._raise_if_fatal(exc)
                context.logger().warning("metadata.schemas_fallback", error=exc.message)
                cursor = conn.cursor()
                try:
                    cursor.schemas(catalog_name=remote_catalog)
                    return [row[0] for row in cursor.fetchall() if row[0]]
                finally:
                    cursor.close()

    def list_tables(
        self,
        schema: str,
        page_token: Optional[str] = None,
        page_size: int = 0,
        catalog: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> ListTablesResult:
        """
        List tables of ``schema``, one page at a time.

        The token is the offset of the next page. It is None once a page
        comes back empty or shorter than ``page_size``. ``page_size <= 0``
        returns every table in one response.
        """
        context = context or RequestContext(
            operation="list_tables", catalog=catalog, schema=schema
        )
        offset = decode_token(page_token, "table listing")
        remote_catalog = resolve_catalog_name(catalog) if catalog else self.settings.default_catalog
        paged = page_size > 0

        with self.connection_manager.connection(remote_catalog, context) as conn:
            try:
                if paged:
                    rows = execute_with_retry(
                        lambda: _fetch_all(
                            conn, LIST_PAGINATED_TABLES_QUERY, [schema, page_size, offset]
                        ),
                        "table listing",
                    )
                else:
                    rows = execute_with_retry(
                        lambda: _fetch_all(conn, LIST_TABLES_QUERY, [schema]),
                        "table listing",
                    )
                names = [(row[1], row[0]) for row in rows]
            except ConnectorError as exc:
                self._raise_if_fatal(exc)
                context.logger().warning("metadata.tables_fallback", error=exc.message)
                names = self._introspect_tables(conn, remote_catalog, schema)
                if paged:
                    names = names[offset:offset + page_size]

        tables = [TableReference(catalog, table_schema or schema, name) for table_schema, name in names]
        next_token = None
        if paged and tables and len(tables) >= page_size:
            next_token = str(offset + page_size)

        context.logger().info(
            "metadata.tables_listed",
            offset=offset,
            page_size=page_size,
            table_count=len(tables),
            next_offset=next_token,
        )
        return ListTablesResult(tables=tables, next_token=next_token)

    def _introspect_tables(
        self, conn: DatabricksConnection, catalog: Optional[str], schema: str
    ) -> List[tuple]:
        cursor = conn.cursor()
        try:
            cursor.tables(catalog_name=catalog, schema_name=schema)
            rows = cursor.fetchall()
        finally:
            cursor.close()
        # Driver rows follow JDBC getTables(): TABLE_CAT, TABLE_SCHEM, TABLE_NAME, ...
        return sorted((row[1], row[2]) for row in rows)

    def get_table(
        self, table_ref: TableReference, context: Optional[RequestContext] = None
    ) -> pa.Schema:
        """Discover the table's columns as a pyarrow schema."""
        remote = map_table_reference(table_ref)
        context = context or RequestContext(
            operation="get_table",
            catalog=table_ref.catalog,
            schema=table_ref.schema,
            table=table_ref.table,
        )
        catalog = remote.catalog or self.settings.default_catalog
        with self.connection_manager.connection(catalog, context) as conn:
            rows = execute_with_retry(
                lambda: _fetch_all(conn, GET_COLUMNS_QUERY, [catalog, remote.schema, remote.table]),
                "column discovery",
            )
        if not rows:
            raise ConnectorError(
                ErrorClassification.ENTITY_NOT_FOUND,
                f"Table not found: {remote.qualified_name()}",
            )
        fields = [
            pa.field(name, arrow_type_for(data_type), nullable=str(nullable).upper() != "NO")
            for name, data_type, nullable in rows
        ]
        return pa.schema(fields)

    def get_partitions(
        self,
        table_ref: TableReference,
        status_checker: Optional[StatusChecker] = None,
        context: Optional[RequestContext] = None,
    ) -> List[PartitionDescriptor]:
        """
        Discover the table's partitions.

        Returns a single wildcard partition when the table has none or when
        the partition query fails for a reason other than credentials or
        connectivity.
        """
        status_checker = status_checker or _always_running
        remote = map_table_reference(table_ref)
        context = context or RequestContext(
            operation="get_partitions",
            catalog=table_ref.catalog,
            schema=table_ref.schema,
            table=table_ref.table,
        )
        log = context.logger()
        catalog = remote.catalog or self.settings.default_catalog

        with self.connection_manager.connection(catalog, context) as conn:
            try:
                rows = execute_with_retry(
                    lambda: _fetch_all(
                        conn, GET_PARTITIONS_QUERY, [catalog, remote.schema, remote.table]
                    ),
                    "partition discovery",
                )
            except ConnectorError as exc:
                self._raise_if_fatal(exc)
                log.warning(
                    "metadata.partitions_fallback",
                    classification=exc.classification.value,
                    error=exc.message,
                )
                return [PartitionDescriptor.wildcard()]

        if not rows:
            log.info("metadata.partitions_none", partition=PartitionDescriptor.wildcard().name)
            return [PartitionDescriptor.wildcard()]

        partitions: List[PartitionDescriptor] = []
        for row in rows:
            if not status_checker():
                log.info("metadata.partitions_cancelled", discovered=len(partitions))
                return partitions
            name = row[0]
            if name is None or not str(name).strip():
                continue
            partitions.append(PartitionDescriptor(str(name)))

        if not partitions:
            partitions.append(PartitionDescriptor.wildcard())
        context.metrics.increment("partitions.discovered", len(partitions))
        log.debug("metadata.partitions_discovered", partition_count=len(partitions))
        return partitions

    def get_splits(
        self,
        table_ref: TableReference,
        constraints: Optional[Constraints],
        partitions: Sequence[PartitionDescriptor],
        continuation_token: Optional[str] = None,
        status_checker: Optional[StatusChecker] = None,
        context: Optional[RequestContext] = None,
    ) -> SplitsResult:
        """
        Generate one split per partition, resuming at ``continuation_token``.

        At most ``max_splits_per_request`` splits are returned; when
        partitions remain, the result carries the index of the next one.
        """
        constraints = constraints or Constraints()
        status_checker = status_checker or _always_running
        context = context or RequestContext(
            operation="get_splits",
            catalog=table_ref.catalog,
            schema=table_ref.schema,
            table=table_ref.table,
        )
        log = context.logger()

        if constraints.pass_through:
            log.info("splits.pass_through")
            split = self._make_split(context, {PASS_THROUGH_KEY: "true"})
            return SplitsResult(splits=[split])

        start = decode_token(continuation_token, "split")

        if not partitions:
            log.info("splits.unpartitioned")
            return SplitsResult(splits=[self._make_split(context, {})])

        cap = self.settings.max_splits_per_request
        splits: List[Split] = []
        for index in range(start, len(partitions)):
            if not status_checker():
                log.info("splits.cancelled", generated=len(splits))
                break
            splits.append(
                self._make_split(context, {PARTITION_NAME_KEY: partitions[index].name})
            )
            next_index = index + 1
            if len(splits) >= cap and next_index < len(partitions):
                log.info("splits.capped", split_count=len(splits), next_index=next_index)
                context.metrics.increment("splits.generated", len(splits))
                return SplitsResult(splits=splits, continuation_token=str(next_index))

        context.metrics.increment("splits.generated", len(splits))
        log.info("splits.generated", split_count=len(splits))
        return SplitsResult(splits=splits)

    def _make_split(self, context: RequestContext, properties: Dict[str, str]) -> Split:
        spill = SpillLocation.for_query(
            self.settings.spill_bucket, self.settings.spill_prefix, context.query_id or "query"
        )
        return Split(spill, EncryptionKey.generate(), dict(properties))

    @staticmethod
    def _raise_if_fatal(exc: ConnectorError) -> None:
        if exc.classification not in FALLBACK_CLASSIFICATIONS:
            raise exc

