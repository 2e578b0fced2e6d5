"""Domain types shared by the SQL layer and the connectors."""

from .models import (
    BOOKKEEPING_KEYS,
    PARTITION_NAME_KEY,
    PASS_THROUGH_KEY,
    WILDCARD_PARTITION,
    Constraints,
    EncryptionKey,
    ListTablesResult,
    OrderByField,
    PartitionDescriptor,
    SortDirection,
    SpillLocation,
    Split,
    SplitsResult,
    TableReference,
    parse_hive_partition,
    partition_values_for_split,
)
from .predicates import (
    AllOrNoneValueSet,
    ConstantExpression,
    EquatableValueSet,
    Expression,
    FunctionCallExpression,
    Range,
    SortedRangeSet,
    ValueSet,
    VariableExpression,
    call,
    column,
    constant,
)

__all__ = [
    "BOOKKEEPING_KEYS",
    "PARTITION_NAME_KEY",
    "PASS_THROUGH_KEY",
    "WILDCARD_PARTITION",
    "AllOrNoneValueSet",
    "ConstantExpression",
    "Constraints",
    "EncryptionKey",
    "EquatableValueSet",
    "Expression",
    "FunctionCallExpression",
    "ListTablesResult",
    "OrderByField",
    "PartitionDescriptor",
    "Range",
    "SortDirection",
    "SortedRangeSet",
    "SpillLocation",
    "Split",
    "SplitsResult",
    "TableReference",
    "ValueSet",
    "VariableExpression",
    "call",
    "column",
    "constant",
    "parse_hive_partition",
    "partition_values_for_split",
]
