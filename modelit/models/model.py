"""
modelit Model

A named, mutable collection of variables and optional explicit edges.

Invariants enforced on mutation:
- every dependency resolves (after stripping `[t...]`) to a model variable
- a variable never depends on itself without a time lag
- a variable cannot be removed while another variable depends on it
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union
import json
import logging

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from modelit.errors import (
    CircularDependencyError,
    ErrorAggregator,
    ModelitError,
    ValidationError,
    ValidationResult,
    VariableNotFoundError,
)
from modelit.expressions import (
    ExpressionParser,
    extract_base_variable_name,
    get_default_parser,
    parse_time_reference,
)

from .edge import Edge
from .variable import Variable

logger = logging.getLogger(__name__)

VariableLike = Union[Variable, Mapping[str, Any]]
EdgeLike = Union[Edge, Mapping[str, Any]]

_VARIABLE_FIELDS = ("name", "formula", "dependencies", "type", "values", "metadata")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# PAYLOAD SCHEMAS
# =============================================================================

class ModelMetadataSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    created: Optional[datetime] = None
    updated: Optional[datetime] = None
    version: Optional[str] = None
    author: Optional[str] = None


class ModelSchema(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    variables: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Optional[ModelMetadataSchema] = None


# =============================================================================
# MODEL
# =============================================================================

class Model:
    """
    A named collection of variables.

    The constructor accepts definitions in any order and does not check
    dependencies; call validate_model() (the evaluation engine always does).
    add/update/remove validate eagerly.
    """

    def __init__(
        self,
        name: str,
        description: Optional[str] = None,
        variables: Optional[Iterable[VariableLike]] = None,
        edges: Optional[Iterable[EdgeLike]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ):
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Model name must be a non-empty string")

        self._name = name
        self.description = description
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self._variables: Dict[str, Variable] = {}
        self._edges: Dict[str, Edge] = {}

        for item in variables or ():
            variable = item if isinstance(item, Variable) else Variable.from_dict(item)
            if variable.name in self._variables:
                raise ValidationError(f"Duplicate variable name '{variable.name}' in model '{name}'")
            self._variables[variable.name] = variable

        for item in edges or ():
            edge = item if isinstance(item, Edge) else Edge.from_dict(item)
            if edge.id in self._edges:
                raise ValidationError(f"Duplicate edge id '{edge.id}' in model '{name}'")
            self._edges[edge.id] = edge

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        return len(self._variables)

    def __contains__(self, name: object) -> bool:
        return name in self._variables

    def __repr__(self) -> str:
        return f"Model(name={self._name!r}, variables={len(self._variables)}, edges={len(self._edges)})"

    # -------------------------------------------------------------------------
    # Variables
    # -------------------------------------------------------------------------

    def add_variable(self, variable: Variable) -> None:
        if variable.name in self._variables:
            raise ValidationError(f"Variable '{variable.name}' already exists in model '{self._name}'")
        self._validate_variable_dependencies(variable)
        self._variables[variable.name] = variable
        self._touch()

    def update_variable(self, name: str, **updates: Any) -> Variable:
        """
        Replace a variable with an updated copy.

        A new formula without explicit dependencies re-derives them.
        """
        existing = self._variables.get(name)
        if existing is None:
            raise VariableNotFoundError(name)

        unknown = set(updates) - set(_VARIABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown variable field(s): {', '.join(sorted(unknown))}")
        if updates.get("name", name) != name:
            raise ValidationError(f"Variable '{name}' cannot be renamed")

        data = existing.to_dict()
        data.update(updates)
        if "formula" in updates and "dependencies" not in updates:
            data["dependencies"] = None

        updated = Variable(**data)
        self._validate_variable_dependencies(updated)
        self._variables[name] = updated
        self._touch()
        return updated

    def remove_variable(self, name: str) -> bool:
        """Remove a variable and its edges. Returns False if it did not exist."""
        if name not in self._variables:
            return False

        dependents = self.get_dependents(name)
        if dependents:
            names = ", ".join(v.name for v in dependents)
            raise ValidationError(f"Cannot remove variable '{name}' - it is referenced by: {names}")

        del self._variables[name]
        for edge_id in [e.id for e in self._edges.values() if name in (e.source, e.target)]:
            del self._edges[edge_id]
        self._touch()
        return True

    def get_variable(self, name: str) -> Optional[Variable]:
        return self._variables.get(name)

    def has_variable(self, name: str) -> bool:
        return name in self._variables

    def list_variables(self) -> List[Variable]:
        return list(self._variables.values())

    def get_variable_names(self) -> List[str]:
        return list(self._variables.keys())

    # -------------------------------------------------------------------------
    # Edges
    # -------------------------------------------------------------------------

    def add_edge(self, edge: Edge) -> None:
        if edge.id in self._edges:
            raise ValidationError(f"Edge '{edge.id}' already exists in model '{self._name}'")
        for endpoint in (edge.source, edge.target):
            if endpoint not in self._variables:
                raise VariableNotFoundError(endpoint, details={"edge": edge.id})

        validation = edge.validate()
        if not validation.is_valid:
            raise ValidationError(
                f"Invalid edge '{edge.id}': {'; '.join(validation.errors)}",
                details=validation.errors,
            )

        self._edges[edge.id] = edge
        self._touch()

    def remove_edge(self, edge_id: str) -> bool:
        removed = self._edges.pop(edge_id, None)
        if removed is not None:
            self._touch()
        return removed is not None

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        return self._edges.get(edge_id)

    def list_edges(self) -> List[Edge]:
        return list(self._edges.values())

    # -------------------------------------------------------------------------
    # Dependency queries
    # -------------------------------------------------------------------------

    def get_dependents(self, name: str) -> List[Variable]:
        """Variables (other than `name`) listing `name` as a dependency."""
        return [
            variable for variable in self._variables.values()
            if variable.name != name and name in variable.base_dependencies()
        ]

    def get_dependencies(self, name: str) -> List[Variable]:
        variable = self._variables.get(name)
        if variable is None:
            return []
        return [
            self._variables[dep] for dep in variable.base_dependencies()
            if dep in self._variables
        ]

    def get_all_dependencies(self, name: str, include_lagged: bool = False) -> Set[str]:
        """
        Transitive upstream closure of `name` (base names).

        By default only same-step dependencies are walked, so a cycle closed
        through a lagged reference is legal. With `include_lagged` every
        referenced variable is collected and no cycle check is made.

        Raises:
            CircularDependencyError: if a name reappears on the current walk
        """
        variable = self._variables.get(name)
        if variable is None:
            return set()
        if include_lagged:
            return self._referenced_closure(variable)

        result: Set[str] = set()
        explored: Set[str] = set()
        path = [name]
        on_path = {name}
        stack = [iter(variable.ordering_dependencies())]

        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                stack.pop()
                finished = path.pop()
                on_path.discard(finished)
                explored.add(finished)
                continue

            if dep in on_path:
                raise CircularDependencyError(path[path.index(dep):] + [dep])

            result.add(dep)
            upstream = self._variables.get(dep)
            if dep in explored or upstream is None:
                continue

            path.append(dep)
            on_path.add(dep)
            stack.append(iter(upstream.ordering_dependencies()))

        return result

    def _referenced_closure(self, variable: Variable) -> Set[str]:
        result: Set[str] = set()
        pending = list(variable.base_dependencies())
        while pending:
            dep = pending.pop()
            if dep in result or dep == variable.name:
                continue
            result.add(dep)
            upstream = self._variables.get(dep)
            if upstream is not None:
                pending.extend(upstream.base_dependencies())
        return result

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_model(self, parser: Optional[ExpressionParser] = None) -> ValidationResult:
        """
        Check every variable and edge, reporting all problems found.

        Args:
            parser: Parser used for formula checks; pass the evaluating
                parser when it knows extra functions
        """
        aggregator = ErrorAggregator()
        parser = parser or get_default_parser()

        for variable in self._variables.values():
            subject = f"Variable '{variable.name}'"

            for error in self._check_variable_dependencies(variable):
                aggregator.add_error(error, subject)

            if variable.has_formula():
                syntax = parser.validate_expression(variable.formula)
                if not syntax.is_valid:
                    aggregator.add(
                        f"{subject}: Invalid formula '{variable.formula}': {syntax.error}",
                        subject,
                    )
                else:
                    declared = {extract_base_variable_name(d) for d in variable.dependencies}
                    parsed = parser.parse_expression(variable.formula)
                    for dep in parsed.dependencies:
                        reference = parse_time_reference(dep)
                        base = reference.variable if reference else dep.strip()
                        if base in declared:
                            continue
                        if base not in self._variables:
                            aggregator.add(
                                f"{subject}: Formula references unknown variable '{base}'",
                                subject,
                            )
                        elif not (base == variable.name and reference is not None and reference.offset < 0):
                            # Undeclared names get no graph edge and would be read before they are computed
                            aggregator.add(
                                f"{subject}: Formula references undeclared dependency '{base}'",
                                subject,
                            )

            try:
                self.get_all_dependencies(variable.name)
            except CircularDependencyError as exc:
                aggregator.add_error(exc, subject)

        for edge in self._edges.values():
            subject = f"Edge '{edge.id}'"
            for endpoint in (edge.source, edge.target):
                if endpoint not in self._variables:
                    aggregator.add(f"{subject}: Variable '{endpoint}' not found", subject)
            aggregator.add_all([f"{subject}: {msg}" for msg in edge.validate().errors], subject)

        result = aggregator.result()
        if not result.is_valid:
            logger.debug(f"Model '{self._name}' failed validation with {len(result.errors)} error(s)")
        return result

    def _check_variable_dependencies(self, variable: Variable) -> List[ModelitError]:
        errors: List[ModelitError] = []
        for dep in variable.dependencies:
            reference = parse_time_reference(dep)
            base = reference.variable if reference else dep.strip()

            if base == variable.name:
                if reference is None or reference.offset == 0:
                    errors.append(CircularDependencyError([variable.name, variable.name]))
                continue

            if base not in self._variables:
                errors.append(ValidationError(
                    f"Dependency '{base}' not found for variable '{variable.name}'"
                ))
        return errors

    def _validate_variable_dependencies(self, variable: Variable) -> None:
        errors = self._check_variable_dependencies(variable)
        if errors:
            raise errors[0]

    def _touch(self) -> None:
        self.metadata["updated"] = _utcnow()

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def clone(self) -> "Model":
        return Model(
            name=self._name,
            description=self.description,
            variables=[v.clone() for v in self._variables.values()],
            edges=[e.clone() for e in self._edges.values()],
            metadata=dict(self.metadata),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self._name,
            "description": self.description,
            "variables": [v.to_dict() for v in self._variables.values()],
            "edges": [e.to_dict() for e in self._edges.values()],
            "metadata": {
                key: value.isoformat() if isinstance(value, datetime) else value
                for key, value in self.metadata.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Model":
        try:
            schema = ModelSchema.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Invalid model data: {exc}", details=exc.errors()) from exc

        return cls(
            name=schema.name,
            description=schema.description,
            variables=schema.variables,
            edges=schema.edges,
            metadata=schema.metadata.model_dump(exclude_none=True) if schema.metadata else None,
        )

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> "Model":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Invalid model JSON: {exc}") from exc
        return cls.from_dict(data)
