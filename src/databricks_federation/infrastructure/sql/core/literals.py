"""
SQL literal formatting for Databricks.

Values are inlined into generated statements, so every literal is rendered
with the escaping Databricks expects:

* strings: single-quoted, backslashes and single quotes doubled
* booleans: bare TRUE/FALSE
* dates and timestamps: typed literals (DATE '...', TIMESTAMP '...')
* binary: hex literal X'...'
"""

import datetime as dt
from decimal import Decimal
from typing import Any

NULL = "NULL"


def format_string_literal(value: str) -> str:
    """
    Examples:
        >>> format_string_literal("O'Brien")
        "'O''Brien'"
        >>> format_string_literal("C:\\\\tmp")
        "'C:\\\\\\\\tmp'"
    """
    escaped = value.replace("\\", "\\\\").replace("'", "''")
    return f"'{escaped}'"


def format_binary_literal(value: bytes) -> str:
    if not value:
        return NULL
    return "X'" + value.hex().upper() + "'"


def format_timestamp(value: dt.datetime) -> str:
    return value.isoformat(sep=" ")


def format_literal(value: Any) -> str:
    """
    Render a Python value as a Databricks SQL literal.

    Unknown types fall back to their string form so a single odd value never
    aborts statement generation.

    Examples:
        >>> format_literal(True)
        'TRUE'
        >>> format_literal(dt.date(2024, 1, 31))
        "DATE '2024-01-31'"
        >>> format_literal(b"\\x01\\xff")
        "X'01FF'"
    """
    if value is None:
        return NULL
    if isinstance(value, str):
        return format_string_literal(value)
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    # datetime before date: datetime is a date subclass
    if isinstance(value, dt.datetime):
        return f"TIMESTAMP '{format_timestamp(value)}'"
    if isinstance(value, dt.date):
        return f"DATE '{value.isoformat()}'"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return format_binary_literal(bytes(value))
    if isinstance(value, (list, tuple)):
        return format_array_literal(value)
    return str(value)


def format_array_literal(values: Any) -> str:
    """Databricks ARRAY constructor over formatted elements."""
    return "ARRAY(" + ", ".join(format_literal(v) for v in values) + ")"
