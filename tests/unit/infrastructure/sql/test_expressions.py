"""
Unit tests for expression translation.

Covers function rendering, CASE handling, the NAME(args) fallback and
value-set predicates.
"""

import datetime as dt

import pytest

from databricks_federation.domain.predicates import (
    AllOrNoneValueSet,
    EquatableValueSet,
    Range,
    SortedRangeSet,
    call,
    column,
    constant,
)
from databricks_federation.infrastructure.sql.expressions import (
    SUPPORTED_FUNCTIONS,
    ExpressionTranslator,
    cast_for_type,
    normalize_function_name,
    translate_case,
    translate_function,
)


@pytest.mark.unit
class TestTranslateFunction:
    """Tests for translate_function."""

    @pytest.mark.parametrize(
        "name,args,expected",
        [
            ("equal", ["`a`", "1"], "`a` = 1"),
            ("not_equal", ["`a`", "1"], "`a` != 1"),
            ("less_than", ["`a`", "1"], "`a` < 1"),
            ("less_than_or_equal", ["`a`", "1"], "`a` <= 1"),
            ("greater_than", ["`a`", "1"], "`a` > 1"),
            ("greater_than_or_equal", ["`a`", "1"], "`a` >= 1"),
            ("like", ["`a`", "'x%'"], "`a` LIKE 'x%'"),
            ("not_like", ["`a`", "'x%'"], "`a` NOT LIKE 'x%'"),
            ("is_null", ["`a`"], "`a` IS NULL"),
            ("is_not_null", ["`a`"], "`a` IS NOT NULL"),
            ("and", ["p", "q"], "(p AND q)"),
            ("or", ["p", "q"], "(p OR q)"),
            ("not", ["p"], "NOT (p)"),
            ("in", ["`a`", "1", "2"], "`a` IN (1, 2)"),
            ("not_in", ["`a`", "1"], "`a` NOT IN (1)"),
            ("date_diff", ["`a`", "`b`"], "DATEDIFF(`b`, `a`)"),
            ("regexp_like", ["`a`", "'^x'"], "(`a` RLIKE '^x')"),
            ("substring", ["`a`", "1"], "SUBSTRING(`a`, 1)"),
            ("substring", ["`a`", "1", "3"], "SUBSTRING(`a`, 1, 3)"),
            ("ceiling", ["`a`"], "CEIL(`a`)"),
            ("round", ["`a`", "2"], "ROUND(`a`, 2)"),
            ("mod", ["`a`", "3"], "MOD(`a`, 3)"),
            ("isnull", ["`a`"], "(`a` IS NULL)"),
            ("isnotnull", ["`a`"], "(`a` IS NOT NULL)"),
            ("concat", ["`a`", "`b`"], "CONCAT(`a`, `b`)"),
            ("coalesce", ["`a`", "0"], "COALESCE(`a`, 0)"),
            ("count", ["`a`"], "COUNT(`a`)"),
            ("between", ["`a`", "1", "5"], "(`a` BETWEEN 1 AND 5)"),
            ("add", ["`a`", "1"], "(`a` + 1)"),
        ],
    )
    def test_known_functions(self, name, args, expected):
        assert translate_function(name, args) == expected

    def test_host_prefix_and_alias_normalized(self):
        assert normalize_function_name("$LIKE_PATTERN") == "like"
        assert translate_function("$like_pattern", ["`a`", "'x'"]) == "`a` LIKE 'x'"

    def test_unknown_function_falls_back(self):
        assert translate_function("array_sort", ["`a`"]) == "ARRAY_SORT(`a`)"

    def test_wrong_arity_falls_back(self):
        assert translate_function("upper", ["`a`", "`b`"]) == "UPPER(`a`, `b`)"
        assert translate_function("concat", ["`a`"]) == "CONCAT(`a`)"

    def test_supported_functions_advertised(self):
        assert {"equal", "case", "date_diff", "regexp_like"} <= SUPPORTED_FUNCTIONS


@pytest.mark.unit
class TestCaseTranslation:
    """Tests for CASE rendering."""

    def test_pairs_with_else(self):
        result = translate_function("case", ["c1", "t1", "c2", "t2", "e"])
        assert result == "CASE WHEN c1 THEN t1 WHEN c2 THEN t2 ELSE e END"

    def test_pairs_without_else(self):
        assert translate_case(["c1", "t1", "c2", "t2"]) == (
            "CASE WHEN c1 THEN t1 WHEN c2 THEN t2 END"
        )

    def test_too_few_arguments(self):
        assert translate_case(["c1", "t1"]) == "NULL"


@pytest.mark.unit
class TestExpressionTranslator:
    """Tests for ExpressionTranslator.translate."""

    def test_nested_tree(self):
        expr = call(
            "and",
            call("greater_than", column("amount"), constant(100)),
            call("like", column("name"), constant("O'%")),
        )
        assert ExpressionTranslator().translate(expr) == (
            "(`amount` > 100 AND `name` LIKE 'O''%')"
        )

    def test_in_list_constant_expanded(self):
        expr = call("$in", column("region"), constant(["EU", "US"]))
        assert ExpressionTranslator().translate(expr) == "`region` IN ('EU', 'US')"

    def test_typed_constant_is_cast(self):
        expr = call("equal", column("d"), constant("2024-01-01", "date"))
        assert ExpressionTranslator().translate(expr) == (
            "`d` = CAST('2024-01-01' AS DATE)"
        )

    def test_cast_call(self):
        expr = call("cast", column("id"), constant("varchar"))
        assert ExpressionTranslator().translate(expr) == "CAST(`id` AS STRING)"

    def test_unsupported_node_does_not_raise(self):
        assert ExpressionTranslator().translate(object()) == "NULL"

    def test_uses_injected_quote(self):
        translator = ExpressionTranslator(quote=lambda name: f"[{name}]")
        assert translator.translate(column("a")) == "[a]"

    def test_cast_for_unknown_type(self):
        assert cast_for_type("`c`", "geometry") == "CAST(`c` AS STRING)"


@pytest.mark.unit
class TestValueSetTranslation:
    """Tests for translate_value_set."""

    def setup_method(self):
        self.translator = ExpressionTranslator()

    def test_all_without_nulls(self):
        assert self.translator.translate_value_set("a", AllOrNoneValueSet(True)) == (
            "`a` IS NOT NULL"
        )

    def test_all_with_nulls_is_unrestricted(self):
        assert self.translator.translate_value_set("a", AllOrNoneValueSet(True, True)) is None

    def test_none(self):
        assert self.translator.translate_value_set("a", AllOrNoneValueSet(False)) == "FALSE"
        assert self.translator.translate_value_set(
            "a", AllOrNoneValueSet(False, null_allowed=True)
        ) == "`a` IS NULL"

    def test_white_list(self):
        value_set = EquatableValueSet(("EU", "US"))
        assert self.translator.translate_value_set("r", value_set) == "`r` IN ('EU', 'US')"

    def test_white_list_with_nulls(self):
        value_set = EquatableValueSet((1,), null_allowed=True)
        assert self.translator.translate_value_set("r", value_set) == (
            "(`r` IN (1) OR `r` IS NULL)"
        )

    def test_black_list(self):
        value_set = EquatableValueSet((1, 2), white_list=False)
        assert self.translator.translate_value_set("r", value_set) == "`r` NOT IN (1, 2)"

    def test_bounded_range(self):
        value_set = SortedRangeSet((Range(low=1, high=10, high_inclusive=False),))
        assert self.translator.translate_value_set("x", value_set) == (
            "(`x` >= 1 AND `x` < 10)"
        )

    def test_single_values_collapse_to_in(self):
        value_set = SortedRangeSet((Range.equal(1), Range.equal(2), Range.greater_than(100)))
        assert self.translator.translate_value_set("x", value_set) == (
            "(`x` > 100 OR `x` IN (1, 2))"
        )

    def test_single_date_value(self):
        value_set = SortedRangeSet((Range.equal(dt.date(2024, 3, 1)),))
        assert self.translator.translate_value_set("d", value_set) == (
            "`d` = DATE '2024-03-01'"
        )

    def test_range_with_nulls(self):
        value_set = SortedRangeSet((Range.less_than(0),), null_allowed=True)
        assert self.translator.translate_value_set("x", value_set) == (
            "(`x` < 0 OR `x` IS NULL)"
        )

    def test_unbounded_range(self):
        value_set = SortedRangeSet((Range(),))
        assert self.translator.translate_value_set("x", value_set) == "`x` IS NOT NULL"
