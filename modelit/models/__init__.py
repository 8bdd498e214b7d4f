"""
modelit Models

Provides:
- Variable: a named formula, parameter or data series
- Edge: an explicit relationship between two variables
- Model: a validated collection of variables and edges
"""

from .variable import Variable, VariableMetadataSchema, VariableSchema, VariableType
from .edge import (
    Edge,
    EdgeMetadataSchema,
    EdgeSchema,
    EdgeType,
    IdGenerator,
    SequentialIdGenerator,
    uuid_id_generator,
)
from .model import Model, ModelMetadataSchema, ModelSchema

__all__ = [
    "Variable",
    "VariableMetadataSchema",
    "VariableSchema",
    "VariableType",
    "Edge",
    "EdgeMetadataSchema",
    "EdgeSchema",
    "EdgeType",
    "IdGenerator",
    "SequentialIdGenerator",
    "uuid_id_generator",
    "Model",
    "ModelMetadataSchema",
    "ModelSchema",
]
