"""
errors/aggregator.py - Collect errors from a validation pass

Validation reports every independent problem at once instead of stopping
at the first one; the aggregator keeps them in discovery order.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .taxonomy import CircularDependencyError, ModelitError


@dataclass
class ValidationResult:
    """Outcome of a validation pass."""

    is_valid: bool = True
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
        }


class ErrorAggregator:
    """
    Aggregates error messages from multiple subjects.

    Circular dependency errors are de-duplicated by the set of names in
    the cycle, so A -> B -> A and B -> A -> B are reported once.
    """

    def __init__(self):
        self._errors: List[str] = []
        self._by_subject: Dict[str, List[str]] = {}
        self._seen_cycles: set = set()

    def add(self, message: str, subject: Optional[str] = None) -> None:
        """Add a message, optionally attributed to a subject."""
        self._errors.append(message)
        if subject is not None:
            self._by_subject.setdefault(subject, []).append(message)

    def add_error(self, error: ModelitError, subject: Optional[str] = None) -> None:
        """Add an exception, prefixing the subject for context."""
        if isinstance(error, CircularDependencyError):
            key = frozenset(error.cycle)
            if key in self._seen_cycles:
                return
            self._seen_cycles.add(key)

        message = f"{subject}: {error.message}" if subject else error.message
        self.add(message, subject)

    def add_all(self, messages: List[str], subject: Optional[str] = None) -> None:
        for message in messages:
            self.add(message, subject)

    def get_by_subject(self, subject: str) -> List[str]:
        return list(self._by_subject.get(subject, []))

    def has_errors(self) -> bool:
        return bool(self._errors)

    def result(self) -> ValidationResult:
        return ValidationResult(is_valid=not self._errors, errors=list(self._errors))

    def clear(self) -> None:
        self._errors.clear()
        self._by_subject.clear()
        self._seen_cycles.clear()
