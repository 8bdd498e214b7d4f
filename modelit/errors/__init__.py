"""
errors/ - Error taxonomy and aggregation

Every failure in the modelling core is a ModelitError subclass; the
aggregator gathers validation messages so all problems surface together.
"""

from .taxonomy import (
    ErrorCode,
    ModelitError,
    ValidationError,
    EvaluationError,
    CircularDependencyError,
    VariableNotFoundError,
    FormulaError,
    TimeSeriesError,
    is_modelit_error,
    get_error_details,
    format_error,
    create_error_response,
)

from .aggregator import (
    ValidationResult,
    ErrorAggregator,
)

__all__ = [
    # Taxonomy
    "ErrorCode",
    "ModelitError",
    "ValidationError",
    "EvaluationError",
    "CircularDependencyError",
    "VariableNotFoundError",
    "FormulaError",
    "TimeSeriesError",
    "is_modelit_error",
    "get_error_details",
    "format_error",
    "create_error_response",
    # Aggregator
    "ValidationResult",
    "ErrorAggregator",
]
