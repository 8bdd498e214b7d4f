"""
Unit tests for models/variable.py

Tests construction checks, dependency derivation, values and serialization.
"""

import pytest

from modelit.errors import ValidationError
from modelit.models import Variable, VariableType


class TestVariableType:
    """Test VariableType enum."""

    def test_values(self):
        """Test enum values."""
        assert VariableType.SCALAR.value == "scalar"
        assert VariableType.SERIES.value == "series"
        assert VariableType.PARAMETER.value == "parameter"


class TestVariableConstruction:
    """Test constructor-time invariant checks."""

    def test_defaults(self):
        """Test a bare variable."""
        var = Variable("X")
        assert var.type == VariableType.SCALAR
        assert var.formula is None
        assert var.dependencies == []
        assert var.values is None

    def test_empty_name_rejected(self):
        """Test empty and blank names are rejected."""
        with pytest.raises(ValidationError):
            Variable("")
        with pytest.raises(ValidationError):
            Variable("   ")

    def test_type_coerced_from_string(self):
        """Test type strings are converted to the enum."""
        assert Variable("P", type="parameter").type == VariableType.PARAMETER

    def test_invalid_type_rejected(self):
        """Test unknown types are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            Variable("X", type="matrix")
        assert "matrix" in str(exc_info.value)

    def test_values_coerced_to_float(self):
        """Test integer values become floats."""
        assert Variable("X", values=[1, 2]).values == [1.0, 2.0]

    def test_non_finite_values_rejected(self):
        """Test NaN and infinity are rejected."""
        with pytest.raises(ValidationError):
            Variable("X", values=[1, float("nan")])
        with pytest.raises(ValidationError):
            Variable("X", values=[float("inf")])

    def test_non_numeric_values_rejected(self):
        """Test strings that are not numbers are rejected."""
        with pytest.raises(ValidationError):
            Variable("X", values=["abc"])

    def test_dependencies_derived_from_formula(self):
        """Test dependencies default to those found in the formula."""
        var = Variable("CASH", formula="CASH[t-1] + FCF[t]")
        assert var.dependencies == ["CASH[t-1]", "FCF[t]"]

    def test_explicit_dependencies_kept(self):
        """Test explicit dependencies are not re-derived."""
        var = Variable("Y", formula="double(X)", dependencies=["X"])
        assert var.dependencies == ["X"]


class TestVariableClassification:
    """Test classification helpers."""

    def test_computed_variable(self):
        """Test a formula variable is computed."""
        var = Variable("COGS", formula="REVENUE * 0.3")
        assert var.has_formula()
        assert var.is_computed()
        assert not var.is_parameter()
        assert not var.is_time_dependent()

    def test_parameter_with_formula_not_computed(self):
        """Test parameters are never computed."""
        var = Variable("P", formula="A + 1", type=VariableType.PARAMETER)
        assert var.is_parameter()
        assert not var.is_computed()

    def test_blank_formula(self):
        """Test whitespace-only formulas do not count."""
        var = Variable("X", formula="  ")
        assert not var.has_formula()
        assert var.dependencies == []

    def test_time_dependent(self):
        """Test lagged formulas are time dependent."""
        assert Variable("CASH", formula="CASH[t-1] + FCF[t]").is_time_dependent()

    def test_base_dependencies_drop_lagged_self(self):
        """Test a lagged self reference is not an upstream dependency."""
        var = Variable("CASH", formula="CASH[t-1] + FCF[t] + FCF")
        assert var.base_dependencies() == ["FCF"]

    def test_base_dependencies_keep_unlagged_self(self):
        """Test an unlagged self reference is kept so it surfaces as a cycle."""
        assert Variable("X", formula="X + 1").base_dependencies() == ["X"]
        assert Variable("X", formula="X[t] + 1").base_dependencies() == ["X"]

    def test_ordering_dependencies_skip_lags(self):
        """Test only same-step and lead references order evaluation."""
        var = Variable("A", formula="A[t-1] + B[t-1] + C + D[t] + E[t+1]")
        assert var.base_dependencies() == ["B", "C", "D", "E"]
        assert var.ordering_dependencies() == ["C", "D", "E"]


class TestVariableValues:
    """Test value access."""

    def test_get_value(self):
        """Test indexed and default access."""
        var = Variable("X", values=[1, 2, 3])
        assert var.has_values()
        assert var.get_value() == 1.0
        assert var.get_value(2) == 3.0
        assert var.get_value(5) is None

    def test_get_value_without_values(self):
        """Test access on an empty variable."""
        var = Variable("X")
        assert not var.has_values()
        assert var.get_value() is None

    def test_set_value_pads_with_zero(self):
        """Test setting beyond the end zero-pads."""
        var = Variable("X")
        var.set_value(5, 3)
        assert var.values == [0.0, 0.0, 0.0, 5.0]

    def test_set_value_default_step(self):
        """Test setting without a step writes index 0."""
        var = Variable("X", values=[1, 2])
        var.set_value(9)
        assert var.values == [9.0, 2.0]

    def test_set_value_negative_step(self):
        """Test negative steps are rejected."""
        with pytest.raises(ValidationError):
            Variable("X").set_value(1, -1)


class TestVariableSerialization:
    """Test to_dict/from_dict and clone."""

    def test_round_trip(self):
        """Test from_dict(to_dict()) reproduces the variable."""
        var = Variable(
            "CASH",
            formula="CASH[t-1] + FCF[t]",
            type=VariableType.SERIES,
            values=[100],
            metadata={"units": "USD", "tags": ["finance"]},
        )
        restored = Variable.from_dict(var.to_dict())
        assert restored == var

    def test_to_dict_uses_enum_value(self):
        """Test type is serialized as a string."""
        assert Variable("P", type=VariableType.PARAMETER).to_dict()["type"] == "parameter"

    def test_from_dict_rejects_bad_payload(self):
        """Test the payload schema is enforced."""
        with pytest.raises(ValidationError):
            Variable.from_dict({"name": ""})
        with pytest.raises(ValidationError):
            Variable.from_dict({"name": "X", "type": "matrix"})
        with pytest.raises(ValidationError):
            Variable.from_dict({"formula": "A + 1"})

    def test_from_dict_keeps_extra_metadata(self):
        """Test unknown metadata keys survive."""
        var = Variable.from_dict({"name": "X", "metadata": {"units": "kg", "owner": "ops"}})
        assert var.metadata == {"units": "kg", "owner": "ops"}

    def test_clone_is_independent(self):
        """Test clones do not share lists."""
        var = Variable("X", values=[1, 2])
        copy = var.clone()
        copy.set_value(7, 0)
        assert var.values == [1.0, 2.0]
        assert copy.values == [7.0, 2.0]
