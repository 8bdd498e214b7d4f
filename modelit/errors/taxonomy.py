"""
errors/taxonomy.py - Error classification system

Every failure raised by the modelling core is a ModelitError subclass
carrying a stable ErrorCode, so callers can branch on the kind of failure
without parsing messages.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Stable error codes."""
    UNKNOWN = "UNKNOWN_ERROR"
    VALIDATION = "VALIDATION_ERROR"
    EVALUATION = "EVALUATION_ERROR"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    VARIABLE_NOT_FOUND = "VARIABLE_NOT_FOUND"
    FORMULA = "FORMULA_ERROR"
    TIME_SERIES = "TIME_SERIES_ERROR"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ModelitError(Exception):
    """Base class for all modelling errors."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ModelitError):
    """A model, variable or edge breaks a structural invariant."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, ErrorCode.VALIDATION, details)


class EvaluationError(ModelitError):
    """Evaluation failed for a reason not tied to a single formula."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, ErrorCode.EVALUATION, details)


class CircularDependencyError(ModelitError):
    """A dependency cycle was found. `cycle` lists the names in walk order."""

    def __init__(self, cycle: List[str], details: Any = None):
        self.cycle = list(cycle)
        super().__init__(
            f"Circular dependency detected: {' -> '.join(self.cycle)}",
            ErrorCode.CIRCULAR_DEPENDENCY,
            details,
        )


class VariableNotFoundError(ModelitError):
    """A referenced or requested variable does not exist."""

    def __init__(self, variable_name: str, details: Any = None):
        self.variable_name = variable_name
        super().__init__(
            f"Variable '{variable_name}' not found",
            ErrorCode.VARIABLE_NOT_FOUND,
            details,
        )


class FormulaError(ModelitError):
    """A formula failed to parse or evaluate."""

    def __init__(
        self,
        formula: str,
        message: str,
        variable_name: Optional[str] = None,
        details: Any = None,
    ):
        self.formula = formula
        self.variable_name = variable_name
        context = f" in variable '{variable_name}'" if variable_name else ""
        super().__init__(f"Formula error{context}: {message}", ErrorCode.FORMULA, details)


class TimeSeriesError(ModelitError):
    """A failure tied to one time step of one variable."""

    def __init__(
        self,
        time_step: int,
        message: str,
        variable_name: Optional[str] = None,
        details: Any = None,
    ):
        self.time_step = time_step
        self.variable_name = variable_name
        context = f" for variable '{variable_name}'" if variable_name else ""
        super().__init__(
            f"Time series error at step {time_step}{context}: {message}",
            ErrorCode.TIME_SERIES,
            details,
        )


# =============================================================================
# HELPERS
# =============================================================================

def is_modelit_error(error: BaseException) -> bool:
    return isinstance(error, ModelitError)


def get_error_details(error: BaseException) -> Dict[str, Any]:
    """Normalize any exception into a message/code/details dict."""
    if isinstance(error, ModelitError):
        return {
            "message": error.message,
            "code": error.code.value,
            "details": error.details,
        }
    return {
        "message": str(error),
        "code": ErrorCode.UNKNOWN.value,
        "details": None,
    }


def format_error(error: BaseException) -> str:
    details = get_error_details(error)
    return f"[{details['code']}] {details['message']}"


def create_error_response(error: BaseException, context: Optional[str] = None) -> Dict[str, Any]:
    """Build the failure payload returned by outer API layers."""
    details = get_error_details(error)
    prefix = f"{context}: " if context else ""
    return {
        "success": False,
        "error": f"{prefix}{details['message']}",
        "code": details["code"],
        "details": details["details"],
    }
