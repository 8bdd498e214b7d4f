"""
modelit Edge

Explicit relationships between variables, used alongside the dependencies
implied by formulas when building the dependency graph.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional
import itertools
import uuid

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from modelit.errors import ValidationError, ValidationResult


class EdgeType(Enum):
    """Type of relationship."""
    DEPENDENCY = "dependency"      # Direct dependency
    TEMPORAL = "temporal"          # Lagged relationship
    CAUSAL = "causal"
    DERIVED = "derived"            # Derived calculation
    CONSTRAINT = "constraint"      # Mathematical constraint
    INHERITANCE = "inheritance"    # Inherited from a published model


# (source, target, edge_type) -> id
IdGenerator = Callable[[str, str, EdgeType], str]


def uuid_id_generator(source: str, target: str, edge_type: EdgeType) -> str:
    return f"{source}-{edge_type.value}-{target}-{uuid.uuid4().hex[:8]}"


class SequentialIdGenerator:
    """Deterministic ids: `<source>-<type>-<target>-<n>`."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def __call__(self, source: str, target: str, edge_type: EdgeType) -> str:
        return f"{source}-{edge_type.value}-{target}-{next(self._counter)}"


# =============================================================================
# PAYLOAD SCHEMAS
# =============================================================================

class EdgeMetadataSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    description: Optional[str] = None
    strength: Optional[float] = Field(None, ge=0.0, le=1.0)
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    lag: Optional[int] = None
    author: Optional[str] = None
    created: Optional[datetime] = None
    marketplace_id: Optional[str] = None
    derived_from: Optional[str] = None


class EdgeSchema(BaseModel):
    id: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    type: EdgeType
    metadata: Optional[EdgeMetadataSchema] = None


# =============================================================================
# EDGE
# =============================================================================

@dataclass
class Edge:
    """A directed relationship `source -> target` (target is downstream)."""

    id: str
    source: str
    target: str
    type: EdgeType = EdgeType.DEPENDENCY
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        for attr in ("id", "source", "target"):
            value = getattr(self, attr)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"Edge {attr} must be a non-empty string")

        try:
            self.type = EdgeType(self.type)
        except ValueError:
            raise ValidationError(f"Edge '{self.id}' has invalid type '{self.type}'") from None

        if self.metadata is not None:
            self.metadata = dict(self.metadata)
            errors = self._metadata_type_errors()
            if errors:
                raise ValidationError(f"Edge '{self.id}': {'; '.join(errors)}", details=errors)

    def _metadata_type_errors(self) -> List[str]:
        errors = []
        for key in ("strength", "confidence"):
            value = self._meta(key)
            if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
                errors.append(f"{key.capitalize()} must be a number, got {value!r}")
        lag = self._meta("lag")
        if lag is not None and (isinstance(lag, bool) or not isinstance(lag, int)):
            errors.append(f"Lag must be an integer, got {lag!r}")
        return errors

    def __hash__(self):
        return hash(self.id)

    def _meta(self, key: str) -> Any:
        return self.metadata.get(key) if self.metadata else None

    # Relationship properties

    def is_dependency(self) -> bool:
        return self.type == EdgeType.DEPENDENCY

    def is_temporal(self) -> bool:
        return self.type == EdgeType.TEMPORAL or self._meta("lag") is not None

    def is_from_marketplace(self) -> bool:
        return bool(self._meta("marketplace_id"))

    def get_strength(self) -> float:
        strength = self._meta("strength")
        return 1.0 if strength is None else strength

    def get_confidence(self) -> float:
        confidence = self._meta("confidence")
        return 1.0 if confidence is None else confidence

    def get_lag(self) -> int:
        lag = self._meta("lag")
        return 0 if lag is None else lag

    def get_marketplace_info(self) -> Dict[str, Optional[str]]:
        return {
            "id": self._meta("marketplace_id"),
            "author": self._meta("author"),
            "derived_from": self._meta("derived_from"),
        }

    def validate(self) -> ValidationResult:
        """Check temporal consistency and metadata ranges."""
        errors = []

        if self.type == EdgeType.TEMPORAL and self._meta("lag") is None:
            errors.append("Lag must be specified for temporal edges")

        # Metadata is a plain dict and may have been changed after construction
        type_errors = self._metadata_type_errors()
        if type_errors:
            errors.extend(type_errors)
            return ValidationResult(is_valid=False, errors=errors)

        strength = self._meta("strength")
        if strength is not None and not 0.0 <= strength <= 1.0:
            errors.append("Strength must be between 0 and 1")

        confidence = self._meta("confidence")
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            errors.append("Confidence must be between 0 and 1")

        return ValidationResult(is_valid=not errors, errors=errors)

    # Serialization

    def clone(self) -> "Edge":
        return Edge(
            id=self.id,
            source=self.source,
            target=self.target,
            type=self.type,
            metadata=dict(self.metadata) if self.metadata is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        metadata = None
        if self.metadata is not None:
            metadata = {
                key: value.isoformat() if isinstance(value, datetime) else value
                for key, value in self.metadata.items()
            }
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.type.value,
            "metadata": metadata,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Edge":
        try:
            schema = EdgeSchema.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Invalid edge data: {exc}", details=exc.errors()) from exc

        return cls(
            id=schema.id,
            source=schema.source,
            target=schema.target,
            type=schema.type,
            metadata=schema.metadata.model_dump(exclude_none=True) if schema.metadata else None,
        )

    # Factories

    @staticmethod
    def generate_id(
        source: str,
        target: str,
        edge_type: EdgeType,
        id_generator: Optional[IdGenerator] = None,
    ) -> str:
        return (id_generator or uuid_id_generator)(source, target, edge_type)

    @classmethod
    def create_dependency_edge(
        cls,
        source: str,
        target: str,
        metadata: Optional[Mapping[str, Any]] = None,
        id_generator: Optional[IdGenerator] = None,
    ) -> "Edge":
        meta = dict(metadata or {})
        meta.setdefault("created", datetime.now(timezone.utc))
        return cls(
            id=cls.generate_id(source, target, EdgeType.DEPENDENCY, id_generator),
            source=source,
            target=target,
            type=EdgeType.DEPENDENCY,
            metadata=meta,
        )

    @classmethod
    def create_temporal_edge(
        cls,
        source: str,
        target: str,
        lag: int,
        metadata: Optional[Mapping[str, Any]] = None,
        id_generator: Optional[IdGenerator] = None,
    ) -> "Edge":
        meta = dict(metadata or {})
        meta["lag"] = lag
        meta.setdefault("created", datetime.now(timezone.utc))
        return cls(
            id=cls.generate_id(source, target, EdgeType.TEMPORAL, id_generator),
            source=source,
            target=target,
            type=EdgeType.TEMPORAL,
            metadata=meta,
        )
