"""
modelit Expression Analyzer

Provides:
- ExpressionParser: dependency extraction, evaluation and syntax checks
- TimeReference / ParsedExpression: parse results
- Helpers for time-lag dependency strings (`CASH[t-1]` -> `CASH`)
"""

from .parser import (
    DEFAULT_CONSTANTS,
    DEFAULT_FUNCTIONS,
    DEFAULT_PRECISION,
    ExpressionParser,
    ExpressionValidation,
    ParsedExpression,
    TimeReference,
    extract_base_variable_name,
    get_default_parser,
    is_time_dependent_formula,
    parse_time_reference,
)

__all__ = [
    "DEFAULT_CONSTANTS",
    "DEFAULT_FUNCTIONS",
    "DEFAULT_PRECISION",
    "ExpressionParser",
    "ExpressionValidation",
    "ParsedExpression",
    "TimeReference",
    "extract_base_variable_name",
    "get_default_parser",
    "is_time_dependent_formula",
    "parse_time_reference",
]
