"""
Unit tests for expressions/parser.py

Tests dependency extraction, time references, evaluation and syntax checks.
"""

import math

import pytest

from modelit.errors import FormulaError
from modelit.expressions import (
    ExpressionParser,
    TimeReference,
    extract_base_variable_name,
    get_default_parser,
    is_time_dependent_formula,
    parse_time_reference,
)


@pytest.fixture
def parser():
    return ExpressionParser()


class TestModuleHelpers:
    """Test time reference helpers."""

    def test_extract_base_name_from_lag(self):
        """Test VAR[t-1] resolves to VAR."""
        assert extract_base_variable_name("CASH[t-1]") == "CASH"
        assert extract_base_variable_name("FCF[t]") == "FCF"
        assert extract_base_variable_name("X[ t + 2 ]") == "X"

    def test_extract_base_name_plain(self):
        """Test plain names are returned unchanged."""
        assert extract_base_variable_name("REVENUE") == "REVENUE"

    def test_parse_time_reference(self):
        """Test parsing dependency entries into references."""
        ref = parse_time_reference("CASH[t-1]")
        assert ref == TimeReference(variable="CASH", offset=-1, original_text="CASH[t-1]")
        assert parse_time_reference("FCF[t]").offset == 0
        assert parse_time_reference("X[t+3]").offset == 3

    def test_parse_time_reference_plain_name(self):
        """Test plain names are not time references."""
        assert parse_time_reference("REVENUE") is None

    def test_is_time_dependent_formula(self):
        """Test time dependence detection."""
        assert is_time_dependent_formula("CASH[t-1] + FCF[t]")
        assert is_time_dependent_formula("X[T]")
        assert not is_time_dependent_formula("REVENUE * 0.3")
        assert not is_time_dependent_formula(None)
        assert not is_time_dependent_formula("")

    def test_default_parser_is_shared(self):
        """Test the module-level parser is created once."""
        assert get_default_parser() is get_default_parser()


class TestParseExpression:
    """Test dependency extraction."""

    def test_plain_dependencies(self, parser):
        """Test identifiers become dependencies."""
        parsed = parser.parse_expression("REVENUE - COGS - SGA")
        assert parsed.dependencies == ["COGS", "REVENUE", "SGA"]
        assert not parsed.is_time_dependent
        assert parsed.time_references == []

    def test_time_references(self, parser):
        """Test lagged references are kept verbatim."""
        parsed = parser.parse_expression("CASH[t-1] + FCF[t]")
        assert parsed.dependencies == ["CASH[t-1]", "FCF[t]"]
        assert parsed.is_time_dependent
        assert [(r.variable, r.offset) for r in parsed.time_references] == [
            ("CASH", -1),
            ("FCF", 0),
        ]

    def test_whitespace_in_time_reference(self, parser):
        """Test whitespace inside brackets is tolerated."""
        parsed = parser.parse_expression("X[ t + 2 ] * 2")
        assert parsed.time_references[0].offset == 2
        assert parsed.time_references[0].original_text == "X[ t + 2 ]"

    def test_mixed_plain_and_lagged(self, parser):
        """Test the same variable can appear plain and lagged."""
        parsed = parser.parse_expression("X[t-1] + X + Y")
        assert parsed.dependencies == ["X", "X[t-1]", "Y"]
        assert parsed.plain_dependencies == ["X", "Y"]

    def test_functions_and_constants_excluded(self, parser):
        """Test function and constant names are not dependencies."""
        parsed = parser.parse_expression("max(A, B) + sqrt(C) * pi")
        assert parsed.dependencies == ["A", "B", "C"]

    def test_function_names_case_insensitive(self, parser):
        """Test MAX and Max are recognized as functions."""
        parsed = parser.parse_expression("MAX(A, B) + Min(C, 1)")
        assert parsed.dependencies == ["A", "B", "C"]

    def test_numbers_with_exponent(self, parser):
        """Test scientific notation is not read as an identifier."""
        parsed = parser.parse_expression("A * 1e3 + 2.5e-3")
        assert parsed.dependencies == ["A"]

    def test_reserved_names(self):
        """Test configurable reserved identifiers."""
        parser = ExpressionParser(reserved_names=["RATE"])
        assert parser.parse_expression("RATE * A").dependencies == ["A"]

        parser.add_reserved_name("B")
        assert parser.parse_expression("A + b").dependencies == ["A"]

    def test_extra_functions(self):
        """Test extra functions are excluded from dependencies."""
        parser = ExpressionParser(extra_functions={"double": lambda x: 2 * x})
        assert parser.is_reserved("DOUBLE")
        assert parser.parse_expression("double(A)").dependencies == ["A"]

    def test_rejects_low_precision(self):
        """Test precision below double precision is rejected."""
        with pytest.raises(ValueError):
            ExpressionParser(precision=10)


class TestEvaluateExpression:
    """Test numeric evaluation."""

    def test_arithmetic(self, parser):
        """Test basic arithmetic."""
        assert parser.evaluate_expression("A * 0.3", {"A": 110}) == pytest.approx(33.0)
        assert parser.evaluate_expression("(A + B) / 2", {"A": 1, "B": 2}) == pytest.approx(1.5)

    def test_exponentiation(self, parser):
        """Test ^ and ** both mean power."""
        assert parser.evaluate_expression("2 ^ 3", {}) == 8.0
        assert parser.evaluate_expression("2 ** 3", {}) == 8.0

    def test_modulo(self, parser):
        """Test % operator."""
        assert parser.evaluate_expression("A % 3", {"A": 10}) == 1.0

    def test_time_reference_bindings(self, parser):
        """Test time references bind by their literal text."""
        value = parser.evaluate_expression(
            "CASH[t-1] + FCF[t]",
            {"CASH[t-1]": 100, "FCF[t]": 20},
        )
        assert value == 120.0

    def test_prefix_names_do_not_collide(self, parser):
        """Test REVENUE does not corrupt REVENUE_TOTAL."""
        value = parser.evaluate_expression(
            "REVENUE_TOTAL - REVENUE",
            {"REVENUE": 10, "REVENUE_TOTAL": 25},
        )
        assert value == 15.0

    def test_functions(self, parser):
        """Test built-in functions."""
        bindings = {"A": 4, "B": 9}
        assert parser.evaluate_expression("sqrt(A) + sqrt(B)", bindings) == pytest.approx(5.0)
        assert parser.evaluate_expression("max(A, B)", bindings) == 9.0
        assert parser.evaluate_expression("min(A, B)", bindings) == 4.0
        assert parser.evaluate_expression("abs(A - B)", bindings) == 5.0
        assert parser.evaluate_expression("mean(A, B, 2)", bindings) == pytest.approx(5.0)
        assert parser.evaluate_expression("sum(A, B)", bindings) == 13.0
        assert parser.evaluate_expression("log10(1000)", {}) == pytest.approx(3.0)
        assert parser.evaluate_expression("floor(2.7) + ceil(2.2)", {}) == 5.0

    def test_constants(self, parser):
        """Test pi and e."""
        assert parser.evaluate_expression("pi", {}) == pytest.approx(math.pi)
        assert parser.evaluate_expression("exp(1) - e", {}) == pytest.approx(0.0)

    def test_extra_function_is_callable(self):
        """Test registered functions are evaluated."""
        parser = ExpressionParser(extra_functions={"double": lambda x: 2 * x})
        assert parser.evaluate_expression("double(A) + 1", {"A": 3}) == 7.0

    def test_missing_binding(self, parser):
        """Test a missing binding is an error, never zero."""
        with pytest.raises(FormulaError) as exc_info:
            parser.evaluate_expression("A + B", {"A": 1})
        assert "'B'" in str(exc_info.value)

    def test_missing_time_reference_binding(self, parser):
        """Test an unbound time reference is an error."""
        with pytest.raises(FormulaError):
            parser.evaluate_expression("CASH[t-1] + 1", {"CASH": 1})

    def test_nan_binding(self, parser):
        """Test NaN bindings are rejected."""
        with pytest.raises(FormulaError):
            parser.evaluate_expression("A + 1", {"A": float("nan")})

    def test_division_by_zero(self, parser):
        """Test division by zero does not produce a number."""
        with pytest.raises(FormulaError):
            parser.evaluate_expression("A / B", {"A": 1, "B": 0})

    def test_complex_result(self, parser):
        """Test results outside the reals are rejected."""
        with pytest.raises(FormulaError):
            parser.evaluate_expression("sqrt(A)", {"A": -1})

    def test_syntax_error(self, parser):
        """Test malformed formulas raise FormulaError."""
        with pytest.raises(FormulaError) as exc_info:
            parser.evaluate_expression("(A + 1", {"A": 1}, variable_name="X")
        assert exc_info.value.variable_name == "X"
        assert exc_info.value.formula == "(A + 1"


class TestValidateExpression:
    """Test syntax validation."""

    def test_valid(self, parser):
        """Test well-formed formulas pass."""
        assert parser.validate_expression("REVENUE * 0.3").is_valid
        assert parser.validate_expression("CASH[t-1] + FCF[t]").is_valid
        assert parser.validate_expression("max(A, B) ^ 2").is_valid

    def test_empty(self, parser):
        """Test empty formulas are invalid."""
        result = parser.validate_expression("   ")
        assert not result.is_valid
        assert result.error == "Formula is empty"

    def test_unmatched_parentheses(self, parser):
        """Test unmatched parentheses are rejected."""
        assert not parser.validate_expression("(A + B").is_valid
        assert not parser.validate_expression("A + B)").is_valid

    def test_malformed_operators(self, parser):
        """Test malformed operator sequences are rejected."""
        result = parser.validate_expression("A * / B")
        assert not result.is_valid
        assert result.error
