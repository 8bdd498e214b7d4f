"""
Unit tests for errors/taxonomy.py and errors/aggregator.py

Tests error codes, messages, helpers and aggregation.
"""

import pytest

from modelit.errors import (
    CircularDependencyError,
    ErrorAggregator,
    ErrorCode,
    EvaluationError,
    FormulaError,
    ModelitError,
    TimeSeriesError,
    ValidationError,
    ValidationResult,
    VariableNotFoundError,
    create_error_response,
    format_error,
    get_error_details,
    is_modelit_error,
)


class TestErrorTaxonomy:
    """Test error classes."""

    def test_codes(self):
        """Test each error carries its code."""
        assert ValidationError("x").code == ErrorCode.VALIDATION
        assert EvaluationError("x").code == ErrorCode.EVALUATION
        assert CircularDependencyError(["A", "A"]).code == ErrorCode.CIRCULAR_DEPENDENCY
        assert VariableNotFoundError("A").code == ErrorCode.VARIABLE_NOT_FOUND
        assert FormulaError("A +", "bad").code == ErrorCode.FORMULA
        assert TimeSeriesError(2, "bad").code == ErrorCode.TIME_SERIES

    def test_every_code_has_an_error_class(self):
        """Test the code set matches the error classes plus UNKNOWN."""
        assert {code.value for code in ErrorCode} == {
            "UNKNOWN_ERROR",
            "VALIDATION_ERROR",
            "EVALUATION_ERROR",
            "CIRCULAR_DEPENDENCY",
            "VARIABLE_NOT_FOUND",
            "FORMULA_ERROR",
            "TIME_SERIES_ERROR",
        }

    def test_all_are_modelit_errors(self):
        """Test a single base class catches everything."""
        for error in (ValidationError("x"), VariableNotFoundError("A"), TimeSeriesError(0, "x")):
            assert isinstance(error, ModelitError)
            assert is_modelit_error(error)
        assert not is_modelit_error(ValueError("x"))

    def test_circular_message(self):
        """Test the cycle is listed in walk order."""
        error = CircularDependencyError(["A", "B", "A"])
        assert error.cycle == ["A", "B", "A"]
        assert str(error) == "Circular dependency detected: A -> B -> A"

    def test_variable_not_found_message(self):
        """Test the missing name is quoted."""
        error = VariableNotFoundError("PRICE")
        assert error.variable_name == "PRICE"
        assert str(error) == "Variable 'PRICE' not found"

    def test_formula_message(self):
        """Test formula errors name the variable when known."""
        assert str(FormulaError("A +", "bad syntax", "X")) == "Formula error in variable 'X': bad syntax"
        assert str(FormulaError("A +", "bad syntax")) == "Formula error: bad syntax"

    def test_time_series_message(self):
        """Test time series errors name the step."""
        error = TimeSeriesError(3, "failed", "CASH")
        assert error.time_step == 3
        assert str(error) == "Time series error at step 3 for variable 'CASH': failed"

    def test_to_dict(self):
        """Test structured form."""
        assert ValidationError("bad", details={"field": "name"}).to_dict() == {
            "type": "ValidationError",
            "code": "VALIDATION_ERROR",
            "message": "bad",
            "details": {"field": "name"},
        }


class TestErrorHelpers:
    """Test helper functions."""

    def test_get_error_details(self):
        """Test known and foreign exceptions are normalized."""
        assert get_error_details(VariableNotFoundError("A"))["code"] == "VARIABLE_NOT_FOUND"
        assert get_error_details(RuntimeError("boom")) == {
            "message": "boom",
            "code": "UNKNOWN_ERROR",
            "details": None,
        }

    def test_format_error(self):
        """Test one-line formatting."""
        assert format_error(ValidationError("bad")) == "[VALIDATION_ERROR] bad"

    def test_create_error_response(self):
        """Test API failure payloads."""
        response = create_error_response(VariableNotFoundError("A"), context="evaluate")
        assert response == {
            "success": False,
            "error": "evaluate: Variable 'A' not found",
            "code": "VARIABLE_NOT_FOUND",
            "details": None,
        }


class TestErrorAggregator:
    """Test ErrorAggregator."""

    def test_empty(self):
        """Test no errors means valid."""
        aggregator = ErrorAggregator()
        assert not aggregator.has_errors()
        assert aggregator.result() == ValidationResult(is_valid=True, errors=[])

    def test_collects_in_order(self):
        """Test messages keep discovery order."""
        aggregator = ErrorAggregator()
        aggregator.add("first", "A")
        aggregator.add_error(ValidationError("second"), "B")
        aggregator.add_all(["third", "fourth"], "A")

        result = aggregator.result()
        assert not result.is_valid
        assert result.errors == ["first", "B: second", "third", "fourth"]
        assert aggregator.get_by_subject("A") == ["first", "third", "fourth"]
        assert aggregator.get_by_subject("C") == []

    def test_cycles_deduplicated(self):
        """Test rotations of the same cycle are reported once."""
        aggregator = ErrorAggregator()
        aggregator.add_error(CircularDependencyError(["A", "B", "A"]), "A")
        aggregator.add_error(CircularDependencyError(["B", "A", "B"]), "B")
        aggregator.add_error(CircularDependencyError(["C", "C"]), "C")
        assert len(aggregator.result().errors) == 2

    def test_clear(self):
        """Test clearing resets everything."""
        aggregator = ErrorAggregator()
        aggregator.add_error(CircularDependencyError(["A", "B", "A"]))
        aggregator.clear()
        assert not aggregator.has_errors()
        aggregator.add_error(CircularDependencyError(["A", "B", "A"]))
        assert aggregator.has_errors()

    def test_result_to_dict(self):
        """Test the serialized validation result."""
        assert ValidationResult(is_valid=False, errors=["x"]).to_dict() == {
            "is_valid": False,
            "errors": ["x"],
        }
