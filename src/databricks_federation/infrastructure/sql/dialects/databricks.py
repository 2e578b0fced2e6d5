"""
Databricks-specific SQL dialect implementation.

Provides Databricks SQL syntax for identifier quoting, function
translation, literal formatting and partition predicates.
"""

import re
from typing import Optional, Sequence

from ..core.identifier import QUOTE_CHAR, qualify_table, quote_identifier
from ..core.literals import format_literal
from ..expressions import translate_function

HIVE_DEFAULT_PARTITION = "__HIVE_DEFAULT_PARTITION__"

_INTEGER_VALUE = re.compile(r"^-?\d+$")
_DECIMAL_VALUE = re.compile(r"^-?\d*\.\d+$")


class DatabricksDialect:
    """Databricks SQL dialect implementation."""

    name = "databricks"
    quote_char = QUOTE_CHAR
    # Databricks SQL warehouses run every statement in autocommit mode
    supports_transactions = False

    def quote(self, identifier: str) -> str:
        """Quote an identifier using Databricks syntax (backticks)."""
        return quote_identifier(identifier)

    def qualify(
        self, table: str, schema: Optional[str] = None, catalog: Optional[str] = None
    ) -> str:
        """Create a fully qualified three-part table reference."""
        return qualify_table(table, schema, catalog)

    def translate_function(self, function_name: str, args: Sequence[str]) -> str:
        return translate_function(function_name, args)

    def format_literal(self, value) -> str:
        return format_literal(value)

    def build_partition_predicate(self, column: str, value: Optional[str]) -> str:
        """
        Build an equality predicate for one partition column.

        Partition values arrive as strings. Integers, decimals and booleans
        are emitted unquoted; empty values and the Hive default partition
        mean NULL; anything else is a string literal.

        Args:
            column: Unquoted partition column name
            value: Raw partition value

        Returns:
            Predicate SQL, e.g. "`region` = 'EU'"
        """
        quoted = self.quote(column)
        if not value or value == HIVE_DEFAULT_PARTITION:
            return f"{quoted} IS NULL"
        if _INTEGER_VALUE.match(value) or _DECIMAL_VALUE.match(value):
            return f"{quoted} = {value}"
        if value.lower() in ("true", "false"):
            return f"{quoted} = {value.lower()}"
        escaped = value.replace("'", "''")
        return f"{quoted} = '{escaped}'"
