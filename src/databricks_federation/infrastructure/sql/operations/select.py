"""
SQL SELECT statement builders.

Builds the per-split SELECT statement executed against Databricks:
projection, qualified FROM, partition/summary/expression predicates,
ordering and limit.
"""

from typing import List, Mapping, Optional, Protocol, Sequence

import pyarrow as pa

from databricks_federation.domain.models import (
    BOOKKEEPING_KEYS,
    PARTITION_NAME_KEY,
    WILDCARD_PARTITION,
    Constraints,
    OrderByField,
    Split,
    TableReference,
    parse_hive_partition,
)
from databricks_federation.io.connectors.exceptions import ConnectorError, ErrorClassification
from databricks_federation.utils.logging import get_logger

from ..expressions import ExpressionTranslator

logger = get_logger(__name__)

PARTITION_PREFIX = "partition_"


class Dialect(Protocol):
    """Protocol for SQL dialects."""

    name: str
    quote_char: str
    supports_transactions: bool

    def quote(self, identifier: str) -> str: ...
    def qualify(
        self, table: str, schema: Optional[str] = None, catalog: Optional[str] = None
    ) -> str: ...
    def translate_function(self, function_name: str, args: Sequence[str]) -> str: ...
    def format_literal(self, value) -> str: ...
    def build_partition_predicate(self, column: str, value: Optional[str]) -> str: ...


class SplitQueryBuilder:
    """
    Builder for the SELECT statement of one split.

    Example:
        >>> from databricks_federation.infrastructure.sql import DatabricksDialect, SplitQueryBuilder
        >>> builder = SplitQueryBuilder(DatabricksDialect())
        >>> builder.build_statement(TableReference("main", "sales", "orders"), None, Constraints(limit=10), None)
        'SELECT * FROM `main`.`sales`.`orders` LIMIT 10'
    """

    def __init__(self, dialect: Dialect):
        """
        Initialize the SplitQueryBuilder.

        Args:
            dialect: SQL dialect to use for statement generation
        """
        self.dialect = dialect
        self.translator = ExpressionTranslator(dialect)

    def build_statement(
        self,
        table_ref: TableReference,
        schema: Optional[pa.Schema],
        constraints: Optional[Constraints],
        split: Optional[Split],
    ) -> str:
        """
        Build the SELECT statement for a split.

        Args:
            table_ref: Remote table (catalog already mapped)
            schema: Projected columns; None or empty selects ``*``
            constraints: Pushed-down constraints
            split: Split whose properties scope the partition

        Returns:
            SQL text; pass-through constraints return the raw query verbatim

        Raises:
            ConnectorError: Pass-through requested without query text (InvalidInput)
        """
        constraints = constraints or Constraints()
        if constraints.pass_through:
            if not (constraints.pass_through_query or "").strip():
                raise ConnectorError(
                    ErrorClassification.INVALID_INPUT,
                    "Pass-through request without a query",
                )
            return constraints.pass_through_query

        parts = [
            self.select_clause(schema),
            "FROM " + self.dialect.qualify(table_ref.table, table_ref.schema, table_ref.catalog),
        ]

        where = self.partition_predicates(split.properties if split else {})
        where.extend(self.summary_predicates(constraints))
        where.extend(self.expression_predicates(constraints))
        if where:
            parts.append("WHERE " + " AND ".join(where))

        order_by = self.order_by_clause(constraints.order_by)
        if order_by:
            parts.append(order_by)

        if constraints.limit > 0:
            parts.append(f"LIMIT {constraints.limit}")

        sql = " ".join(parts)
        logger.debug("query.statement_built", table=table_ref.qualified_name(), sql=sql)
        return sql

    def select_clause(self, schema: Optional[pa.Schema]) -> str:
        if schema is None or len(schema) == 0:
            return "SELECT *"
        return "SELECT " + ", ".join(self.dialect.quote(f.name) for f in schema)

    def partition_predicates(self, properties: Mapping[str, str]) -> List[str]:
        """
        Turn split properties into partition predicates.

        ``partition_name`` holding a Hive path (``year=2023/month=01``)
        expands into one predicate per column; an opaque identifier or the
        wildcard adds nothing. Other ``partition_<col>`` keys and Hive-style
        ``col=value`` keys each add one predicate.
        """
        predicates: List[str] = []
        for key, value in properties.items():
            if key in BOOKKEEPING_KEYS:
                continue
            if key == PARTITION_NAME_KEY:
                for column, column_value in parse_hive_partition(value or "").items():
                    if column_value != WILDCARD_PARTITION:
                        predicates.append(
                            self.dialect.build_partition_predicate(column, column_value)
                        )
                continue
            if key.startswith(PARTITION_PREFIX):
                column = key[len(PARTITION_PREFIX):]
                if column and value and value != WILDCARD_PARTITION:
                    predicates.append(self.dialect.build_partition_predicate(column, value))
            elif "=" in key and not key.startswith("__"):
                column, column_value = key.split("=", 1)
                if column and column_value != WILDCARD_PARTITION:
                    predicates.append(self.dialect.build_partition_predicate(column, column_value))
        return predicates

    def summary_predicates(self, constraints: Constraints) -> List[str]:
        predicates = []
        for column, value_set in constraints.summary.items():
            predicate = self.translator.translate_value_set(column, value_set)
            if predicate:
                predicates.append(predicate)
        return predicates

    def expression_predicates(self, constraints: Constraints) -> List[str]:
        predicates = []
        for expression in constraints.expressions:
            predicate = self.translator.translate(expression)
            # Untranslatable expressions are left for the host to evaluate
            if predicate == "NULL":
                logger.info("query.expression_skipped", expression=repr(expression))
                continue
            predicates.append(predicate)
        return predicates

    def order_by_clause(self, order_by: Sequence[OrderByField]) -> str:
        if not order_by:
            return ""
        terms = []
        for item in order_by:
            term = f"{self.dialect.quote(item.column)} {'ASC' if item.direction.is_ascending else 'DESC'}"
            if item.direction.nulls:
                term += f" NULLS {item.direction.nulls}"
            terms.append(term)
        return "ORDER BY " + ", ".join(terms)
