"""
Record reading for Databricks splits.

Builds the split's SELECT statement, executes it and streams the rows back
as pyarrow record batches.
"""

from typing import Any, Callable, Iterator, List, Optional, Sequence

import pyarrow as pa

from databricks_federation.config.settings import Settings, get_settings
from databricks_federation.domain.models import (
    Constraints,
    Split,
    TableReference,
    partition_values_for_split,
)
from databricks_federation.infrastructure.sql import DatabricksDialect, Dialect, SplitQueryBuilder
from databricks_federation.utils.logging import get_logger

from .connection_manager import ConnectionManager
from .exceptions import map_exception
from .extractors import Extractor, ValueHolder, arrow_type_for, make_extractor
from .metadata_handler import map_table_reference
from .metrics import RequestContext

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 10_000


def schema_from_description(description: Optional[Sequence[Sequence[Any]]]) -> pa.Schema:
    """
    Schema of a result set from DB-API ``cursor.description``.

    Decimal columns take precision and scale from the description entries
    at positions 4 and 5.
    """
    fields = []
    for column in description or ():
        name, type_code = column[0], column[1]
        type_name = str(type_code) if type_code else None
        if type_name and type_name.lower() == "decimal" and len(column) > 5:
            precision, scale = column[4], column[5]
            if precision is not None:
                type_name = f"decimal({int(precision)},{int(scale or 0)})"
        fields.append(pa.field(name, arrow_type_for(type_name)))
    return pa.schema(fields)


class DatabricksRecordHandler:
    """
    Executes split queries and converts rows to record batches.

    Args:
        connection_manager: Source of live connections
        settings: Connector settings
        dialect: SQL dialect used by the query builder
    """

    def __init__(
        self,
        connection_manager: Optional[ConnectionManager] = None,
        settings: Optional[Settings] = None,
        dialect: Optional[Dialect] = None,
    ):
        self.settings = settings or get_settings()
        self.dialect = dialect or DatabricksDialect()
        self.connection_manager = connection_manager or ConnectionManager(
            self.settings, dialect=self.dialect
        )
        self.query_builder = SplitQueryBuilder(self.dialect)

    def build_record_query(
        self,
        table_ref: TableReference,
        schema: Optional[pa.Schema],
        constraints: Optional[Constraints],
        split: Optional[Split],
    ) -> str:
        """SELECT statement for one split, against the mapped catalog."""
        return self.query_builder.build_statement(
            map_table_reference(table_ref), schema, constraints, split
        )

    def read_records(
        self,
        table_ref: TableReference,
        schema: Optional[pa.Schema],
        constraints: Optional[Constraints],
        split: Split,
        status_checker: Optional[Callable[[], bool]] = None,
        context: Optional[RequestContext] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> Iterator[pa.RecordBatch]:
        """
        Stream the split's rows as record batches.

        Rows are fetched ``fetch_size`` at a time. The status checker is
        polled before each fetch; reading stops quietly once it reports the
        query is no longer running.
        """
        context = context or RequestContext(
            operation="read_records",
            catalog=table_ref.catalog,
            schema=table_ref.schema,
            table=table_ref.table,
        )
        log = context.logger()
        statement = self.build_record_query(table_ref, schema, constraints, split)
        remote = map_table_reference(table_ref)
        catalog = remote.catalog or self.settings.default_catalog
        fetch_size = self.settings.fetch_size

        with self.connection_manager.connection(catalog, context) as conn:
            try:
                cursor = conn.execute(statement)
            except Exception as exc:
                raise map_exception("query execution", exc) from exc
            try:
                if schema is None or len(schema) == 0:
                    schema = schema_from_description(cursor.description)
                batches = self._stream(
                    cursor, schema, split, fetch_size, batch_size, status_checker, context
                )
                yield from batches
            finally:
                cursor.close()
        log.info("records.read_complete", rows=context.metrics.count("records.read"))

    def _stream(
        self,
        cursor: Any,
        schema: pa.Schema,
        split: Split,
        fetch_size: int,
        batch_size: int,
        status_checker: Optional[Callable[[], bool]],
        context: RequestContext,
    ) -> Iterator[pa.RecordBatch]:
        partition_values = partition_values_for_split(split)
        extractors: List[Extractor] = [
            make_extractor(field, index, partition_values)
            for index, field in enumerate(schema)
        ]
        columns: List[List[Any]] = [[] for _ in extractors]
        holder = ValueHolder()
        pending = 0

        while status_checker is None or status_checker():
            try:
                rows = cursor.fetchmany(fetch_size)
            except Exception as exc:
                raise map_exception("record fetch", exc) from exc
            if not rows:
                break
            for row in rows:
                for position, extract in enumerate(extractors):
                    extract(row, holder)
                    columns[position].append(holder.value if holder.is_set else None)
                pending += 1
                if pending >= batch_size:
                    yield self._to_batch(schema, columns, context)
                    columns = [[] for _ in extractors]
                    pending = 0

        if pending:
            yield self._to_batch(schema, columns, context)

    @staticmethod
    def _to_batch(
        schema: pa.Schema, columns: List[List[Any]], context: RequestContext
    ) -> pa.RecordBatch:
        arrays = [pa.array(values, type=field.type) for values, field in zip(columns, schema)]
        batch = pa.RecordBatch.from_arrays(arrays, schema=schema)
        context.metrics.increment("records.read", batch.num_rows)
        return batch
