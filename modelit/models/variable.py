"""
modelit Variable

A named computational unit: a formula over other variables, an externally
supplied parameter, or a plain data holder.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
import math

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from modelit.errors import ValidationError
from modelit.expressions import (
    get_default_parser,
    is_time_dependent_formula,
    parse_time_reference,
)


class VariableType(Enum):
    """Intent of a variable. Parameters are never computed."""
    SCALAR = "scalar"
    SERIES = "series"
    PARAMETER = "parameter"


# =============================================================================
# PAYLOAD SCHEMAS
# =============================================================================

class VariableMetadataSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    units: Optional[str] = None
    description: Optional[str] = None
    source: Optional[str] = None
    tags: Optional[List[str]] = None


class VariableSchema(BaseModel):
    """Validates serialized variable payloads."""

    name: str = Field(..., min_length=1)
    formula: Optional[str] = None
    dependencies: Optional[List[str]] = None
    type: VariableType = VariableType.SCALAR
    values: Optional[List[float]] = None
    metadata: Optional[VariableMetadataSchema] = None


# =============================================================================
# VARIABLE
# =============================================================================

@dataclass
class Variable:
    """
    A model variable.

    When `dependencies` is omitted and a formula is given, the dependency
    list is derived from the formula, time references included
    (e.g. ["CASH[t-1]", "FCF[t]"]).
    """

    name: str
    formula: Optional[str] = None
    dependencies: Optional[List[str]] = None
    type: VariableType = VariableType.SCALAR
    values: Optional[List[float]] = None
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Variable name must be a non-empty string")

        try:
            self.type = VariableType(self.type)
        except ValueError:
            allowed = ", ".join(t.value for t in VariableType)
            raise ValidationError(
                f"Variable '{self.name}' has invalid type '{self.type}' (expected one of: {allowed})"
            ) from None

        if self.formula is not None and not isinstance(self.formula, str):
            raise ValidationError(f"Variable '{self.name}' formula must be a string")

        if self.values is not None:
            self.values = self._coerce_values(self.values)

        if self.dependencies is None:
            if self.has_formula():
                parsed = get_default_parser().parse_expression(self.formula)
                self.dependencies = list(parsed.dependencies)
            else:
                self.dependencies = []
        else:
            self.dependencies = [str(dep) for dep in self.dependencies]

        if self.metadata is not None:
            self.metadata = dict(self.metadata)

    def _coerce_values(self, values: Any) -> List[float]:
        coerced = []
        for index, value in enumerate(values):
            try:
                number = float(value)
            except (TypeError, ValueError):
                raise ValidationError(
                    f"Variable '{self.name}' value at index {index} is not a number: {value!r}"
                ) from None
            if not math.isfinite(number):
                raise ValidationError(
                    f"Variable '{self.name}' value at index {index} is not finite: {value!r}"
                )
            coerced.append(number)
        return coerced

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def has_formula(self) -> bool:
        return self.formula is not None and self.formula.strip() != ""

    def has_values(self) -> bool:
        return bool(self.values)

    def is_time_dependent(self) -> bool:
        return is_time_dependent_formula(self.formula)

    def is_parameter(self) -> bool:
        return self.type == VariableType.PARAMETER

    def is_computed(self) -> bool:
        return self.has_formula() and not self.is_parameter()

    def base_dependencies(self) -> List[str]:
        """
        Distinct upstream variable names, in declaration order.

        `NAME[t+k]` entries resolve to NAME. Lagged self references are
        dropped; an unlagged self reference is kept so it shows up as a cycle.
        """
        names: List[str] = []
        for dep in self.dependencies:
            reference = parse_time_reference(dep)
            base = reference.variable if reference else dep.strip()
            if base == self.name and reference is not None and reference.offset != 0:
                continue
            if base not in names:
                names.append(base)
        return names

    def ordering_dependencies(self) -> List[str]:
        """
        Upstream names that must be computed earlier in the same step.

        Lagged references (`NAME[t-k]`) read an earlier step and impose no
        order, so `A = B[t-1]` and `B = A[t-1]` is not a cycle.
        """
        names: List[str] = []
        for dep in self.dependencies:
            reference = parse_time_reference(dep)
            if reference is not None and reference.offset < 0:
                continue
            base = reference.variable if reference else dep.strip()
            if base == self.name and reference is not None and reference.offset != 0:
                continue
            if base not in names:
                names.append(base)
        return names

    # -------------------------------------------------------------------------
    # Values
    # -------------------------------------------------------------------------

    def get_value(self, time_step: Optional[int] = None) -> Optional[float]:
        if not self.values:
            return None
        if time_step is None:
            return self.values[0]
        if 0 <= time_step < len(self.values):
            return self.values[time_step]
        return None

    def set_value(self, value: float, time_step: Optional[int] = None) -> None:
        """Set a value, zero-padding the series up to `time_step`."""
        number = self._coerce_values([value])[0]
        if self.values is None:
            self.values = []
        index = time_step or 0
        if index < 0:
            raise ValidationError(f"Variable '{self.name}': time step must be >= 0, got {index}")
        while len(self.values) <= index:
            self.values.append(0.0)
        self.values[index] = number

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def clone(self) -> "Variable":
        return Variable(
            name=self.name,
            formula=self.formula,
            dependencies=list(self.dependencies),
            type=self.type,
            values=list(self.values) if self.values is not None else None,
            metadata=dict(self.metadata) if self.metadata is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "formula": self.formula,
            "dependencies": list(self.dependencies),
            "type": self.type.value,
            "values": list(self.values) if self.values is not None else None,
            "metadata": dict(self.metadata) if self.metadata is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Variable":
        try:
            schema = VariableSchema.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Invalid variable data: {exc}", details=exc.errors()) from exc

        return cls(
            name=schema.name,
            formula=schema.formula,
            dependencies=schema.dependencies,
            type=schema.type,
            values=schema.values,
            metadata=schema.metadata.model_dump(exclude_none=True) if schema.metadata else None,
        )
