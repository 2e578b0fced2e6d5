"""
SQL identifier handling utilities.

Provides functions for quoting and qualifying Databricks identifiers
(catalog, schema, table and column names). Databricks quotes identifiers
with backticks; an embedded backtick is escaped by doubling it.
"""

import re
from typing import Optional

QUOTE_CHAR = "`"

# Keywords that collide with identifiers in Databricks SQL
RESERVED_WORDS = frozenset(
    {
        "ALL", "ALTER", "AND", "ANY", "BETWEEN", "BY", "CASE", "CATALOG",
        "CREATE", "DATABASE", "DELETE", "DISTINCT", "DROP", "ELSE", "END",
        "EXCEPT", "EXISTS", "FALSE", "FROM", "FULL", "GROUP", "HAVING", "IN",
        "INDEX", "INNER", "INSERT", "INTERSECT", "IS", "JOIN", "LEFT", "LIKE",
        "LIMIT", "LOCATION", "MERGE", "NOT", "NULL", "OFFSET", "ON", "OPTIONS",
        "OR", "ORDER", "OUTER", "PARTITION", "REGEXP", "RIGHT", "RLIKE",
        "SCHEMA", "SELECT", "SOME", "TABLE", "TBLPROPERTIES", "THEN", "TRUE",
        "UNION", "UPDATE", "USING", "VIEW", "WHEN", "WHERE", "WITH",
    }
)

_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(name: str) -> str:
    """
    Quote a Databricks identifier.

    Quoting is unconditional.
    Args:
        name: The identifier to quote

    Returns:
        Backtick-quoted identifier

    Examples:
        >>> quote_identifier("order_id")
        '`order_id`'
        >>> quote_identifier("weird`name")
        '`weird``name`'
    """
    escaped = name.replace(QUOTE_CHAR, QUOTE_CHAR * 2)
    return f"{QUOTE_CHAR}{escaped}{QUOTE_CHAR}"


def is_reserved_word(name: str) -> bool:
    return name.upper() in RESERVED_WORDS


def needs_quoting(name: str) -> bool:
    """
    Report whether an identifier must be quoted to be valid.

    True when the name contains whitespace, a hyphen or a dot, starts with
    a digit, contains any other non-word character, or is a reserved word.

    Examples:
        >>> needs_quoting("order")
        True
        >>> needs_quoting("2023_sales")
        True
        >>> needs_quoting("sales")
        False
    """
    if not name:
        return False
    if any(ch.isspace() for ch in name) or "-" in name or "." in name:
        return True
    if name[0].isdigit():
        return True
    if not _PLAIN_IDENTIFIER.match(name):
        return True
    return is_reserved_word(name)


def qualify_table(
    table: str, schema: Optional[str] = None, catalog: Optional[str] = None
) -> str:
    """
    Create a fully qualified table name, omitting blank parts.

    Examples:
        >>> qualify_table("sales", schema="retail", catalog="main")
        '`main`.`retail`.`sales`'
        >>> qualify_table("sales", schema="retail")
        '`retail`.`sales`'
        >>> qualify_table("sales")
        '`sales`'
    """
    parts = [part for part in (catalog, schema, table) if part]
    return ".".join(quote_identifier(part) for part in parts)
