"""
modelit Expression Parser

Parses formula strings into dependency sets and time-lag references, and
evaluates formulas against numeric bindings.

Formulas use ordinary arithmetic (`+ - * / % ^ **`), function calls such as
`max(A, B)` or `sqrt(X)`, and time-lag references `NAME[t]`, `NAME[t-1]`,
`NAME[t+2]`. Numeric evaluation is delegated to sympy at a configurable
decimal precision; results are returned as Python floats.

Substitution is token based: every identifier and every time reference is
replaced as a whole token, so a binding for REVENUE can never corrupt
REVENUE_TOTAL.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
import logging
import math
import re

import sympy as sp

from modelit.errors import FormulaError

logger = logging.getLogger(__name__)


DEFAULT_PRECISION = 64

# NAME[t], NAME[t-1], NAME[ t + 2 ]
TIME_REFERENCE_PATTERN = re.compile(
    r"\b([A-Za-z_]\w*)\[\s*[tT]\s*([+-]\s*\d+)?\s*\]"
)

# Time references first so NAME[t-1] is consumed as one token.
TOKEN_PATTERN = re.compile(
    r"(?P<ref>\b[A-Za-z_]\w*\[\s*[tT]\s*(?:[+-]\s*\d+)?\s*\])"
    r"|(?P<name>\b[A-Za-z_]\w*)"
)

TIME_DEPENDENT_PATTERN = re.compile(
    r"\[\s*t\s*[-+]\s*\d+\s*\]|\[\s*t\s*\]", re.IGNORECASE
)

_DEPENDENCY_REFERENCE_PATTERN = re.compile(
    r"^\s*([A-Za-z_]\w*)\[\s*[tT]\s*([+-]\s*\d+)?\s*\]\s*$"
)


# =============================================================================
# FUNCTION TABLE
# =============================================================================

def _log10(value):
    return sp.log(value, 10)


def _log2(value):
    return sp.log(value, 2)


def _round(value, digits=0):
    return sp.N(value).round(int(digits))


def _sum(*values):
    return sp.Add(*values)


def _mean(*values):
    return sp.Add(*values) / len(values)


DEFAULT_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "abs": sp.Abs,
    "acos": sp.acos,
    "acosh": sp.acosh,
    "asin": sp.asin,
    "asinh": sp.asinh,
    "atan": sp.atan,
    "atan2": sp.atan2,
    "atanh": sp.atanh,
    "ceil": sp.ceiling,
    "cos": sp.cos,
    "cosh": sp.cosh,
    "exp": sp.exp,
    "floor": sp.floor,
    "log": sp.log,
    "log10": _log10,
    "log2": _log2,
    "max": sp.Max,
    "mean": _mean,
    "min": sp.Min,
    "mod": sp.Mod,
    "pow": sp.Pow,
    "round": _round,
    "sign": sp.sign,
    "sin": sp.sin,
    "sinh": sp.sinh,
    "sqrt": sp.sqrt,
    "sum": _sum,
    "tan": sp.tan,
    "tanh": sp.tanh,
}

DEFAULT_CONSTANTS: Dict[str, Any] = {
    "pi": sp.pi,
    "e": sp.E,
    "true": sp.Integer(1),
    "false": sp.Integer(0),
}

_EVALUATION_ERRORS = (
    sp.SympifyError,
    SyntaxError,
    TypeError,
    ValueError,
    ZeroDivisionError,
    AttributeError,
)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class TimeReference:
    """A `NAME[t+k]` occurrence inside a formula."""
    variable: str
    offset: int
    original_text: str


@dataclass
class ParsedExpression:
    """Result of parsing a formula."""
    formula: str
    dependencies: List[str] = field(default_factory=list)
    is_time_dependent: bool = False
    time_references: List[TimeReference] = field(default_factory=list)

    @property
    def plain_dependencies(self) -> List[str]:
        """Dependencies that are not time references."""
        lagged = {ref.original_text for ref in self.time_references}
        return [dep for dep in self.dependencies if dep not in lagged]


@dataclass
class ExpressionValidation:
    is_valid: bool
    error: Optional[str] = None


# =============================================================================
# MODULE HELPERS
# =============================================================================

def _parse_offset(text: Optional[str]) -> int:
    if not text:
        return 0
    return int(re.sub(r"\s", "", text))


def parse_time_reference(dependency: str) -> Optional[TimeReference]:
    """Parse a dependency entry such as `CASH[t-1]`; None for plain names."""
    match = _DEPENDENCY_REFERENCE_PATTERN.match(dependency)
    if not match:
        return None
    return TimeReference(
        variable=match.group(1),
        offset=_parse_offset(match.group(2)),
        original_text=dependency.strip(),
    )


def extract_base_variable_name(dependency: str) -> str:
    """VAR[t-1] -> VAR; plain names are returned unchanged."""
    reference = parse_time_reference(dependency)
    return reference.variable if reference else dependency.strip()


def is_time_dependent_formula(formula: Optional[str]) -> bool:
    if not formula:
        return False
    return TIME_DEPENDENT_PATTERN.search(formula) is not None


# =============================================================================
# EXPRESSION PARSER
# =============================================================================

class ExpressionParser:
    """
    Formula analysis and evaluation.

    Args:
        precision: Decimal digits used for intermediate arithmetic
        extra_functions: Additional callables available to formulas
        reserved_names: Extra identifiers never treated as variables
    """

    def __init__(
        self,
        precision: int = DEFAULT_PRECISION,
        extra_functions: Optional[Mapping[str, Callable[..., Any]]] = None,
        reserved_names: Optional[Iterable[str]] = None,
    ):
        if precision < 15:
            raise ValueError("precision must be at least 15 digits")
        self._precision = precision
        self._functions: Dict[str, Callable[..., Any]] = dict(DEFAULT_FUNCTIONS)
        self._constants: Dict[str, Any] = dict(DEFAULT_CONSTANTS)
        self._reserved: set = {name.lower() for name in (reserved_names or ())}

        for name, func in (extra_functions or {}).items():
            self.add_function(name, func)

    @property
    def precision(self) -> int:
        return self._precision

    def add_function(self, name: str, func: Callable[..., Any]) -> None:
        """Register a function callable from formulas."""
        self._functions[name.lower()] = func

    def add_reserved_name(self, name: str) -> None:
        """Exclude an identifier from dependency extraction."""
        self._reserved.add(name.lower())

    def is_reserved(self, name: str) -> bool:
        """True for function names, constants and reserved identifiers."""
        lowered = name.lower()
        return (
            lowered in self._functions
            or lowered in self._constants
            or lowered in self._reserved
        )

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    def extract_time_references(self, formula: str) -> List[TimeReference]:
        return [
            TimeReference(
                variable=match.group(1),
                offset=_parse_offset(match.group(2)),
                original_text=match.group(0),
            )
            for match in TIME_REFERENCE_PATTERN.finditer(formula)
        ]

    def parse_expression(self, formula: str) -> ParsedExpression:
        """Extract dependencies and time references from a formula."""
        clean = formula.strip()
        time_references = self.extract_time_references(clean)

        dependencies = {ref.original_text for ref in time_references}
        for match in TOKEN_PATTERN.finditer(clean):
            if match.group("ref") is not None:
                continue
            name = match.group("name")
            if self.is_reserved(name):
                continue
            # Subscripts that are not time references are not variables
            if clean[match.end():].lstrip().startswith("["):
                continue
            dependencies.add(name)

        return ParsedExpression(
            formula=clean,
            dependencies=sorted(dependencies),
            is_time_dependent=bool(time_references),
            time_references=time_references,
        )

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate_expression(
        self,
        formula: str,
        bindings: Mapping[str, float],
        variable_name: Optional[str] = None,
    ) -> float:
        """
        Evaluate a formula against name -> number bindings.

        Time references are looked up by their literal text (e.g. the key
        "CASH[t-1]"). Missing and non-finite bindings raise FormulaError.
        """
        for key, value in bindings.items():
            if value is None or not math.isfinite(value):
                raise FormulaError(
                    formula,
                    f"Variable '{key}' has invalid value: {value}",
                    variable_name,
                )

        namespace: Dict[str, Any] = {}

        def substitute(match: "re.Match[str]") -> str:
            text = match.group(0)
            if match.group("ref") is not None:
                if text not in bindings:
                    raise FormulaError(
                        formula,
                        f"No value bound for time reference '{text}'",
                        variable_name,
                    )
                return self._bind(namespace, bindings[text])

            if text in bindings:
                return self._bind(namespace, bindings[text])
            if self._bind_callable(namespace, text):
                return text
            raise FormulaError(
                formula,
                f"No value bound for variable '{text}'",
                variable_name,
            )

        processed = TOKEN_PATTERN.sub(substitute, formula.strip())

        try:
            expr = sp.sympify(processed, locals=namespace, rational=True)
        except _EVALUATION_ERRORS as exc:
            raise FormulaError(
                formula,
                f"Failed to evaluate expression '{formula}': {exc}",
                variable_name,
            ) from exc

        return self._to_float(expr, formula, variable_name)

    def validate_expression(self, formula: str) -> ExpressionValidation:
        """Syntax check; every identifier is bound to a dummy value."""
        if formula is None or not formula.strip():
            return ExpressionValidation(is_valid=False, error="Formula is empty")

        namespace: Dict[str, Any] = {}

        def substitute(match: "re.Match[str]") -> str:
            text = match.group(0)
            if match.group("ref") is None and self._bind_callable(namespace, text):
                return text
            return self._bind(namespace, 1.0)

        processed = TOKEN_PATTERN.sub(substitute, formula.strip())

        try:
            sp.sympify(processed, locals=namespace, rational=True)
        except _EVALUATION_ERRORS as exc:
            return ExpressionValidation(is_valid=False, error=str(exc))

        return ExpressionValidation(is_valid=True)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _bind(self, namespace: Dict[str, Any], value: float) -> str:
        placeholder = f"_x{len(namespace)}"
        # Shortest repr keeps 0.3 as 0.3 instead of its binary expansion
        namespace[placeholder] = sp.Float(repr(float(value)), self._precision)
        return placeholder

    def _bind_callable(self, namespace: Dict[str, Any], name: str) -> bool:
        lowered = name.lower()
        if lowered in self._constants:
            namespace[name] = self._constants[lowered]
            return True
        if lowered in self._functions:
            namespace[name] = self._functions[lowered]
            return True
        return False

    def _to_float(self, expr: Any, formula: str, variable_name: Optional[str]) -> float:
        if expr is sp.true:
            return 1.0
        if expr is sp.false:
            return 0.0

        try:
            value = float(expr.evalf(self._precision))
        except _EVALUATION_ERRORS as exc:
            raise FormulaError(
                formula,
                f"Expression '{formula}' did not evaluate to a real number",
                variable_name,
            ) from exc

        if not math.isfinite(value):
            raise FormulaError(
                formula,
                f"Expression '{formula}' evaluated to a non-finite value ({value})",
                variable_name,
            )
        return value


# =============================================================================
# MODULE-LEVEL INSTANCE
# =============================================================================

_default_parser: Optional[ExpressionParser] = None


def get_default_parser() -> ExpressionParser:
    """Get or create the shared parser used for dependency derivation."""
    global _default_parser
    if _default_parser is None:
        _default_parser = ExpressionParser()
    return _default_parser
