"""
SQL module for Databricks statement generation.

This module provides reusable utilities for building SQL statements with
backtick identifier quoting, three-part qualification, expression
translation and Databricks-specific syntax.
"""

from .core.identifier import needs_quoting, qualify_table, quote_identifier
from .core.literals import format_literal
from .dialects.databricks import DatabricksDialect
from .expressions import (
    SUPPORTED_FUNCTIONS,
    ExpressionTranslator,
    cast_for_type,
    translate_function,
)
from .operations.select import Dialect, SplitQueryBuilder

__all__ = [
    "quote_identifier",
    "qualify_table",
    "needs_quoting",
    "format_literal",
    "translate_function",
    "cast_for_type",
    "ExpressionTranslator",
    "SUPPORTED_FUNCTIONS",
    "Dialect",
    "DatabricksDialect",
    "SplitQueryBuilder",
]
