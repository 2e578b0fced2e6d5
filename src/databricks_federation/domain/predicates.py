"""
Predicate descriptors supplied by the federation host.

Two shapes of filter arrive with each request:

* value sets, a per-column summary (``column -> ValueSet``) that is ANDed
  across columns;
* expression trees built from constants, column references and canonical
  function calls, used for complex-expression pushdown.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union


@dataclass(frozen=True)
class AllOrNoneValueSet:
    """Either every value (``all=True``) or no value of the column."""

    all: bool
    null_allowed: bool = False


@dataclass(frozen=True)
class EquatableValueSet:
    """
    Discrete values. ``white_list=True`` means the column must be one of
    ``values``; ``False`` means it must be none of them.
    """

    values: Tuple[Any, ...]
    white_list: bool = True
    null_allowed: bool = False


@dataclass(frozen=True)
class Range:
    """
    Interval over a sortable column. ``None`` bounds are unbounded.
    """

    low: Any = None
    low_inclusive: bool = True
    high: Any = None
    high_inclusive: bool = True

    @property
    def is_low_unbounded(self) -> bool:
        return self.low is None

    @property
    def is_high_unbounded(self) -> bool:
        return self.high is None

    @property
    def is_single_value(self) -> bool:
        return (
            not self.is_low_unbounded
            and self.low_inclusive
            and self.high_inclusive
            and self.low == self.high
        )

    @classmethod
    def equal(cls, value: Any) -> "Range":
        return cls(low=value, high=value)

    @classmethod
    def greater_than(cls, value: Any) -> "Range":
        return cls(low=value, low_inclusive=False)

    @classmethod
    def greater_than_or_equal(cls, value: Any) -> "Range":
        return cls(low=value)

    @classmethod
    def less_than(cls, value: Any) -> "Range":
        return cls(high=value, high_inclusive=False)

    @classmethod
    def less_than_or_equal(cls, value: Any) -> "Range":
        return cls(high=value)


@dataclass(frozen=True)
class SortedRangeSet:
    """Union of ranges, optionally also matching NULL."""

    ranges: Tuple[Range, ...] = ()
    null_allowed: bool = False

    @property
    def is_none(self) -> bool:
        return not self.ranges

    @property
    def is_all(self) -> bool:
        return any(r.is_low_unbounded and r.is_high_unbounded for r in self.ranges)


ValueSet = Union[AllOrNoneValueSet, EquatableValueSet, SortedRangeSet]


@dataclass(frozen=True)
class ConstantExpression:
    """A literal value. Multi-valued constants (IN lists) use a list/tuple."""

    value: Any
    type_name: Optional[str] = None


@dataclass(frozen=True)
class VariableExpression:
    column_name: str


@dataclass(frozen=True)
class FunctionCallExpression:
    function_name: str
    arguments: Tuple["Expression", ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, function_name: str, *arguments: "Expression") -> "FunctionCallExpression":
        return cls(function_name, tuple(arguments))


Expression = Union[ConstantExpression, VariableExpression, FunctionCallExpression]


def column(name: str) -> VariableExpression:
    return VariableExpression(name)


def constant(value: Any, type_name: Optional[str] = None) -> ConstantExpression:
    return ConstantExpression(value, type_name)


def call(function_name: str, *arguments: Expression) -> FunctionCallExpression:
    return FunctionCallExpression(function_name, tuple(arguments))
