"""
modelit - time-stepped dependency-graph evaluation for formula models.

Variables carry formulas over other variables, optionally with time lags
(`CASH[t-1] + FCF[t]`); the engine orders them by dependency and evaluates
them over a number of discrete time steps.
"""

from modelit.errors import (
    CircularDependencyError,
    ErrorCode,
    EvaluationError,
    FormulaError,
    ModelitError,
    TimeSeriesError,
    ValidationError,
    ValidationResult,
    VariableNotFoundError,
)
from modelit.expressions import ExpressionParser, ParsedExpression, TimeReference
from modelit.models import Edge, EdgeType, Model, Variable, VariableType
from modelit.dependencies import DependencyGraph, GraphStats, TopologicalOrder
from modelit.engine import EngineConfig, EvaluationEngine, EvaluationResult, VariableResult

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "CircularDependencyError",
    "ErrorCode",
    "EvaluationError",
    "FormulaError",
    "ModelitError",
    "TimeSeriesError",
    "ValidationError",
    "ValidationResult",
    "VariableNotFoundError",
    "ExpressionParser",
    "ParsedExpression",
    "TimeReference",
    "Edge",
    "EdgeType",
    "Model",
    "Variable",
    "VariableType",
    "DependencyGraph",
    "GraphStats",
    "TopologicalOrder",
    "EngineConfig",
    "EvaluationEngine",
    "EvaluationResult",
    "VariableResult",
]
