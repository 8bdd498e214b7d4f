"""
modelit/engine/config.py - Evaluation engine configuration

Defaults suit interactive use; every field can be overridden from the
environment with EngineConfig.from_env().
"""

from __future__ import annotations
from dataclasses import dataclass
import os

from modelit.dependencies.graph import DEFAULT_MAX_PATH_LENGTH
from modelit.expressions import DEFAULT_PRECISION


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EngineConfig:
    """Evaluation engine settings."""

    # Arithmetic
    precision: int = DEFAULT_PRECISION   # Decimal digits for formula evaluation

    # Time horizon
    default_time_steps: int = 1
    max_time_steps: int = 10_000

    # Scenario simulation
    parallel_scenarios: bool = False
    max_workers: int = 4

    # Graph queries
    max_path_length: int = DEFAULT_MAX_PATH_LENGTH   # Cutoff for DependencyGraph.find_all_paths

    def __post_init__(self):
        """Validate configuration."""
        if self.precision < 15:
            raise ValueError("precision must be at least 15 digits")
        if self.default_time_steps < 1:
            raise ValueError("default_time_steps must be positive")
        if self.max_time_steps < self.default_time_steps:
            raise ValueError("max_time_steps must be >= default_time_steps")
        if self.max_workers < 1:
            raise ValueError("max_workers must be positive")
        if self.max_path_length < 1:
            raise ValueError("max_path_length must be positive")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create configuration from MODELIT_* environment variables."""
        return cls(
            precision=int(os.getenv("MODELIT_PRECISION", str(DEFAULT_PRECISION))),
            default_time_steps=int(os.getenv("MODELIT_DEFAULT_TIME_STEPS", "1")),
            max_time_steps=int(os.getenv("MODELIT_MAX_TIME_STEPS", "10000")),
            parallel_scenarios=_env_flag("MODELIT_PARALLEL_SCENARIOS", "false"),
            max_workers=int(os.getenv("MODELIT_MAX_WORKERS", "4")),
            max_path_length=int(os.getenv("MODELIT_MAX_PATH_LENGTH", str(DEFAULT_MAX_PATH_LENGTH))),
        )

    def to_dict(self) -> dict:
        return {
            "precision": self.precision,
            "default_time_steps": self.default_time_steps,
            "max_time_steps": self.max_time_steps,
            "parallel_scenarios": self.parallel_scenarios,
            "max_workers": self.max_workers,
            "max_path_length": self.max_path_length,
        }
