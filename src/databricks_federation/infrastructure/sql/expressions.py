"""
Expression translation into Databricks SQL.

Turns host expression trees and per-column value sets into SQL fragments.
Translation is best-effort: an unknown function is emitted as
``NAME(args)`` and a node that fails to translate is logged and rendered
as ``NULL`` rather than raising.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence

from databricks_federation.domain.predicates import (
    AllOrNoneValueSet,
    ConstantExpression,
    EquatableValueSet,
    Expression,
    FunctionCallExpression,
    Range,
    SortedRangeSet,
    ValueSet,
    VariableExpression,
)
from databricks_federation.utils.logging import get_logger

from .core.literals import NULL

logger = get_logger(__name__)

# Host function names that differ from the canonical names used below
FUNCTION_ALIASES: Dict[str, str] = {
    "like_pattern": "like",
    "in_predicate": "in",
    "array": "array_constructor",
    "rlike": "regexp_like",
    "modulus": "mod",
    "ceiling": "ceil",
    "is_distinct": "is_distinct_from",
}

_BINARY_OPERATORS: Dict[str, str] = {
    "equal": "=",
    "not_equal": "!=",
    "less_than": "<",
    "less_than_or_equal": "<=",
    "greater_than": ">",
    "greater_than_or_equal": ">=",
    "like": "LIKE",
    "not_like": "NOT LIKE",
    "is_distinct_from": "IS DISTINCT FROM",
}

_ARITHMETIC_OPERATORS: Dict[str, str] = {
    "add": "+",
    "subtract": "-",
    "multiply": "*",
    "divide": "/",
}

# name -> SQL function name, for functions rendered as NAME(a, ...) with fixed arity
_SIMPLE_FUNCTIONS: Dict[str, tuple] = {
    "date_add": ("DATE_ADD", (2,)),
    "date_sub": ("DATE_SUB", (2,)),
    "date_format": ("DATE_FORMAT", (2,)),
    "year": ("YEAR", (1,)),
    "month": ("MONTH", (1,)),
    "day": ("DAY", (1,)),
    "hour": ("HOUR", (1,)),
    "minute": ("MINUTE", (1,)),
    "second": ("SECOND", (1,)),
    "regexp_replace": ("REGEXP_REPLACE", (3,)),
    "length": ("LENGTH", (1,)),
    "substring": ("SUBSTRING", (2, 3)),
    "upper": ("UPPER", (1,)),
    "lower": ("LOWER", (1,)),
    "trim": ("TRIM", (1,)),
    "ltrim": ("LTRIM", (1,)),
    "rtrim": ("RTRIM", (1,)),
    "nullif": ("NULLIF", (2,)),
    "abs": ("ABS", (1,)),
    "ceil": ("CEIL", (1,)),
    "floor": ("FLOOR", (1,)),
    "round": ("ROUND", (1, 2)),
    "mod": ("MOD", (2,)),
    "count": ("COUNT", (1,)),
    "sum": ("SUM", (1,)),
    "avg": ("AVG", (1,)),
    "min": ("MIN", (1,)),
    "max": ("MAX", (1,)),
}

# Host type name -> Databricks type used by CAST
CAST_TYPES: Dict[str, str] = {
    "tinyint": "TINYINT",
    "smallint": "SMALLINT",
    "int": "INT",
    "integer": "INT",
    "bigint": "BIGINT",
    "float": "FLOAT",
    "real": "FLOAT",
    "double": "DOUBLE",
    "decimal": "DECIMAL",
    "boolean": "BOOLEAN",
    "bit": "BOOLEAN",
    "varchar": "STRING",
    "char": "STRING",
    "string": "STRING",
    "date": "DATE",
    "datemilli": "TIMESTAMP",
    "timestamp": "TIMESTAMP",
    "timestampmillitz": "TIMESTAMP",
    "varbinary": "BINARY",
    "binary": "BINARY",
}

SUPPORTED_FUNCTIONS = frozenset(
    set(_BINARY_OPERATORS)
    | set(_ARITHMETIC_OPERATORS)
    | set(_SIMPLE_FUNCTIONS)
    | {
        "and", "or", "not", "negate",
        "is_null", "is_not_null", "isnull", "isnotnull",
        "regexp_like", "in", "not_in", "between", "not_between",
        "date_diff", "concat", "coalesce", "case", "array_constructor", "cast",
    }
)


def normalize_function_name(function_name: str) -> str:
    """
    Canonical lowercase name for a host function.

    >>> normalize_function_name("$LIKE_PATTERN")
    'like'
    """
    name = function_name.strip().lstrip("$").lower()
    return FUNCTION_ALIASES.get(name, name)


def _fallback(function_name: str, args: Sequence[str]) -> str:
    return f"{function_name.upper()}({', '.join(args)})"


def translate_case(args: Sequence[str]) -> str:
    """
    ``CASE WHEN a0 THEN a1 [WHEN a2 THEN a3 ...] [ELSE an] END``.

    Fewer than three arguments cannot form a useful CASE and yield ``NULL``.
    """
    if len(args) < 3:
        logger.warning("expression.invalid_case", argument_count=len(args))
        return NULL
    parts = ["CASE"]
    for i in range(0, len(args) - 1, 2):
        parts.append(f"WHEN {args[i]} THEN {args[i + 1]}")
    if len(args) % 2 == 1:
        parts.append(f"ELSE {args[-1]}")
    parts.append("END")
    return " ".join(parts)


def translate_function(function_name: str, args: Sequence[str]) -> str:
    """
    Render a function call over already-translated argument SQL.

    Args:
        function_name: Host function name (``$``-prefixed or plain, any case)
        args: SQL text for each argument

    Returns:
        Databricks SQL fragment; unknown names or unexpected arities fall
        back to ``NAME(args)``
    """
    name = normalize_function_name(function_name)
    args = list(args)
    n = len(args)

    if name in _BINARY_OPERATORS and n == 2:
        return f"{args[0]} {_BINARY_OPERATORS[name]} {args[1]}"
    if name in _ARITHMETIC_OPERATORS and n == 2:
        return f"({args[0]} {_ARITHMETIC_OPERATORS[name]} {args[1]})"
    if name in ("and", "or") and n >= 2:
        return "(" + f" {name.upper()} ".join(args) + ")"
    if name == "not" and n == 1:
        return f"NOT ({args[0]})"
    if name == "negate" and n == 1:
        return f"(-{args[0]})"
    if name == "is_null" and n == 1:
        return f"{args[0]} IS NULL"
    if name == "is_not_null" and n == 1:
        return f"{args[0]} IS NOT NULL"
    if name == "isnull" and n == 1:
        return f"({args[0]} IS NULL)"
    if name == "isnotnull" and n == 1:
        return f"({args[0]} IS NOT NULL)"
    if name == "regexp_like" and n == 2:
        return f"({args[0]} RLIKE {args[1]})"
    if name in ("in", "not_in") and n >= 2:
        keyword = "IN" if name == "in" else "NOT IN"
        return f"{args[0]} {keyword} ({', '.join(args[1:])})"
    if name in ("between", "not_between") and n == 3:
        keyword = "BETWEEN" if name == "between" else "NOT BETWEEN"
        return f"({args[0]} {keyword} {args[1]} AND {args[2]})"
    if name == "date_diff" and n == 2:
        return f"DATEDIFF({args[1]}, {args[0]})"
    if name == "concat" and n >= 2:
        return f"CONCAT({', '.join(args)})"
    if name == "coalesce" and n >= 1:
        return f"COALESCE({', '.join(args)})"
    if name == "array_constructor":
        return f"ARRAY({', '.join(args)})"
    if name == "cast" and n == 2:
        return f"CAST({args[0]} AS {args[1]})"
    if name == "case":
        return translate_case(args)

    simple = _SIMPLE_FUNCTIONS.get(name)
    if simple is not None and n in simple[1]:
        return f"{simple[0]}({', '.join(args)})"

    logger.debug("expression.fallback_function", function=name, argument_count=n)
    return _fallback(name, args)


def cast_for_type(value_sql: str, host_type: Optional[str]) -> str:
    """
    Wrap ``value_sql`` in a CAST to the Databricks type for ``host_type``.

    >>> cast_for_type("`c`", "VarChar")
    'CAST(`c` AS STRING)'
    """
    target = CAST_TYPES.get((host_type or "").strip().lower(), "STRING")
    return f"CAST({value_sql} AS {target})"


class ExpressionTranslator:
    """
    Translate expression trees and value sets to Databricks SQL.

    Function calls and literals are rendered by the dialect.

    Args:
        dialect: SQL dialect; defaults to ``DatabricksDialect``
        quote: Identifier quoting function; defaults to the dialect's ``quote``
    """

    def __init__(self, dialect: Any = None, quote: Optional[Callable[[str], str]] = None):
        if dialect is None:
            from .dialects.databricks import DatabricksDialect

            dialect = DatabricksDialect()
        self.dialect = dialect
        self.quote = quote or dialect.quote

    def translate(self, expression: Expression) -> str:
        """Translate an expression tree; never raises."""
        try:
            return self._translate(expression)
        except Exception as exc:
            logger.warning(
                "expression.translation_failed",
                expression_type=type(expression).__name__,
                error=str(exc),
            )
            return NULL

    def _translate(self, expression: Expression) -> str:
        if isinstance(expression, ConstantExpression):
            sql = self.dialect.format_literal(expression.value)
            if expression.type_name and expression.value is not None:
                return cast_for_type(sql, expression.type_name)
            return sql
        if isinstance(expression, VariableExpression):
            return self.quote(expression.column_name)
        if isinstance(expression, FunctionCallExpression):
            return self._translate_call(expression)
        raise TypeError(f"Unsupported expression node: {type(expression).__name__}")

    def _translate_call(self, call: FunctionCallExpression) -> str:
        name = normalize_function_name(call.function_name)
        if (
            name == "cast"
            and len(call.arguments) == 2
            and isinstance(call.arguments[1], ConstantExpression)
        ):
            return cast_for_type(self.translate(call.arguments[0]), str(call.arguments[1].value))
        args: List[str] = []
        for index, argument in enumerate(call.arguments):
            # IN lists arrive as a single multi-valued constant
            if (
                name in ("in", "not_in")
                and index > 0
                and isinstance(argument, ConstantExpression)
                and isinstance(argument.value, (list, tuple))
            ):
                args.extend(self.dialect.format_literal(v) for v in argument.value)
            else:
                args.append(self.translate(argument))
        return self.dialect.translate_function(name, args)

    def translate_value_set(self, column: str, value_set: ValueSet) -> Optional[str]:
        """
        Render a column's value set as a predicate.

        Returns None when the value set does not restrict the column.
        """
        col = self.quote(column)
        if isinstance(value_set, AllOrNoneValueSet):
            if value_set.all:
                return None if value_set.null_allowed else f"{col} IS NOT NULL"
            return f"{col} IS NULL" if value_set.null_allowed else "FALSE"
        if isinstance(value_set, EquatableValueSet):
            return self._equatable(col, value_set)
        if isinstance(value_set, SortedRangeSet):
            return self._ranges(col, value_set)
        logger.warning("expression.unknown_value_set", column=column)
        return None

    def _equatable(self, col: str, value_set: EquatableValueSet) -> Optional[str]:
        values = ", ".join(self.dialect.format_literal(v) for v in value_set.values)
        if value_set.white_list:
            disjuncts = [f"{col} IN ({values})"] if value_set.values else []
            if value_set.null_allowed:
                disjuncts.append(f"{col} IS NULL")
            if not disjuncts:
                return "FALSE"
            return _or(disjuncts)
        if not value_set.values:
            return None if value_set.null_allowed else f"{col} IS NOT NULL"
        predicate = f"{col} NOT IN ({values})"
        if value_set.null_allowed:
            return _or([predicate, f"{col} IS NULL"])
        return predicate

    def _ranges(self, col: str, value_set: SortedRangeSet) -> Optional[str]:
        if value_set.is_all:
            return None if value_set.null_allowed else f"{col} IS NOT NULL"
        if value_set.is_none:
            return f"{col} IS NULL" if value_set.null_allowed else "FALSE"

        disjuncts: List[str] = []
        singles: List[Any] = []
        for rng in value_set.ranges:
            if rng.is_single_value:
                singles.append(rng.low)
            else:
                disjuncts.append(self._range(col, rng))
        if len(singles) == 1:
            disjuncts.append(f"{col} = {self.dialect.format_literal(singles[0])}")
        elif singles:
            values = ", ".join(self.dialect.format_literal(v) for v in singles)
            disjuncts.append(f"{col} IN ({values})")
        if value_set.null_allowed:
            disjuncts.append(f"{col} IS NULL")
        return _or(disjuncts)

    def _range(self, col: str, rng: Range) -> str:
        bounds = []
        if not rng.is_low_unbounded:
            op = ">=" if rng.low_inclusive else ">"
            bounds.append(f"{col} {op} {self.dialect.format_literal(rng.low)}")
        if not rng.is_high_unbounded:
            op = "<=" if rng.high_inclusive else "<"
            bounds.append(f"{col} {op} {self.dialect.format_literal(rng.high)}")
        if len(bounds) == 1:
            return bounds[0]
        return "(" + " AND ".join(bounds) + ")"


def _or(disjuncts: List[str]) -> str:
    if len(disjuncts) == 1:
        return disjuncts[0]
    return "(" + " OR ".join(disjuncts) + ")"
