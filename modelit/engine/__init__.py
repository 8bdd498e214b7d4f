"""
modelit Engine

Provides:
- EvaluationEngine: two-pass, time-stepped model evaluation
- EngineConfig: engine settings, loadable from MODELIT_* environment variables
"""

from .config import EngineConfig
from .evaluation import (
    EvaluationContext,
    EvaluationEngine,
    EvaluationResult,
    VariableResult,
    get_default_engine,
)

__all__ = [
    "EngineConfig",
    "EvaluationContext",
    "EvaluationEngine",
    "EvaluationResult",
    "VariableResult",
    "get_default_engine",
]
