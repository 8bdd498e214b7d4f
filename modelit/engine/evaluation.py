"""
modelit Evaluation Engine

Evaluates every variable of a Model over T discrete time steps.

Evaluation runs in two passes over the topological order:
- Pass A: time-independent formulas that do not sit downstream of any
  time-dependent formula, computed per step from same-step values.
- Pass B: time-dependent formulas (those referencing NAME[t+k]) plus the
  time-independent formulas downstream of them, stepped chronologically so
  lagged references always read already-computed values.

Lag boundary policy for NAME[t+k]:
- t+k < 0   -> the variable's stored initial value (values[0], or 0.0)
- t+k >= T  -> the last step's current value
- otherwise -> the working value at t+k

Public entry points never raise for model problems; failures come back as
results with success=False and the full error list.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple
import logging
import time

from modelit.dependencies import DependencyGraph
from modelit.errors import (
    EvaluationError,
    ModelitError,
    TimeSeriesError,
    VariableNotFoundError,
)
from modelit.expressions import ExpressionParser, ParsedExpression
from modelit.models import Model, Variable

from .config import EngineConfig

logger = logging.getLogger(__name__)

# scenario name -> {variable name -> override values}
Scenarios = Mapping[str, Mapping[str, Sequence[float]]]


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class EvaluationResult:
    """
    Outcome of evaluating a model. `execution_time` is in milliseconds.

    `parameters` holds the step-0 value of every parameter with stored
    values; `warnings` holds non-fatal notes such as ignored scenario
    overrides. Neither is part of the serialized result.
    """
    success: bool
    time_steps: int
    values: Dict[str, List[float]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    execution_time: float = 0.0
    parameters: Dict[str, float] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "time_steps": self.time_steps,
            "values": {name: list(series) for name, series in self.values.items()},
            "errors": list(self.errors),
            "execution_time": self.execution_time,
        }


@dataclass
class VariableResult:
    """Outcome of evaluating a single variable."""
    name: str
    values: List[float] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "success": self.success,
            "values": list(self.values),
            "errors": list(self.errors),
        }


@dataclass
class EvaluationContext:
    """Working state of one evaluation."""
    time_steps: int
    variables: Dict[str, List[float]] = field(default_factory=dict)
    parameters: Dict[str, float] = field(default_factory=dict)


# =============================================================================
# EVALUATION ENGINE
# =============================================================================

class EvaluationEngine:
    """
    Time-stepped model evaluation.

    The engine keeps no state between calls except the graph of the most
    recent evaluate_model() call, kept for introspection.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        parser: Optional[ExpressionParser] = None,
    ):
        self._config = config or EngineConfig()
        self._parser = parser or ExpressionParser(precision=self._config.precision)
        self._last_graph: Optional[DependencyGraph] = None

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def parser(self) -> ExpressionParser:
        return self._parser

    @property
    def last_graph(self) -> Optional[DependencyGraph]:
        return self._last_graph

    def get_last_evaluation_graph(self) -> Optional[DependencyGraph]:
        return self._last_graph

    def build_graph(self, model: Model) -> DependencyGraph:
        """Build the dependency graph for `model` and keep it as the last graph."""
        self._last_graph = DependencyGraph(model, max_path_length=self._config.max_path_length)
        return self._last_graph

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def evaluate_model(self, model: Model, time_steps: Optional[int] = None) -> EvaluationResult:
        """Evaluate every variable of `model` over `time_steps` steps."""
        result, graph = self._evaluate(model, time_steps)
        if graph is not None:
            self._last_graph = graph
        return result

    def evaluate_variable(
        self,
        model: Model,
        name: str,
        time_steps: Optional[int] = None,
    ) -> VariableResult:
        """
        Evaluate one variable on a sub-model holding it and everything
        upstream of it, including variables it only reads through lags.
        """
        variable = model.get_variable(name)
        if variable is None:
            return VariableResult(name=name, errors=[VariableNotFoundError(name).message])

        try:
            # Same-step cycles fail early with the offending path
            model.get_all_dependencies(name)
            upstream = model.get_all_dependencies(name, include_lagged=True)
        except ModelitError as exc:
            return VariableResult(name=name, errors=[exc.message])

        keep = upstream | {name}
        subset = Model(
            name=f"{model.name}_subset",
            variables=[v.clone() for v in model.list_variables() if v.name in keep],
            edges=[
                e.clone() for e in model.list_edges()
                if e.source in keep and e.target in keep
            ],
        )

        result = self.evaluate_model(subset, time_steps)
        if not result.success:
            return VariableResult(name=name, errors=list(result.errors))
        return VariableResult(name=name, values=list(result.values.get(name, [])))

    def simulate_scenarios(
        self,
        model: Model,
        scenarios: Scenarios,
        time_steps: Optional[int] = None,
    ) -> Dict[str, EvaluationResult]:
        """
        Evaluate a clone of `model` per scenario with overridden values.

        A failing scenario never affects the others. Overrides naming a
        variable the model lacks are skipped and noted in `warnings`.
        Results keep the scenario order of the input mapping.
        """
        if not scenarios:
            return {}

        if self._config.parallel_scenarios and len(scenarios) > 1:
            results = self._simulate_parallel(model, scenarios, time_steps)
        else:
            results = {
                scenario: self._run_scenario(model, scenario, overrides, time_steps)
                for scenario, overrides in scenarios.items()
            }

        failed = [name for name, result in results.items() if not result.success]
        logger.info(
            f"Simulated {len(results)} scenario(s) for model '{model.name}', "
            f"{len(failed)} failed"
        )
        return {scenario: results[scenario] for scenario in scenarios}

    # -------------------------------------------------------------------------
    # Scenarios
    # -------------------------------------------------------------------------

    def _simulate_parallel(
        self,
        model: Model,
        scenarios: Scenarios,
        time_steps: Optional[int],
    ) -> Dict[str, EvaluationResult]:
        results: Dict[str, EvaluationResult] = {}

        with ThreadPoolExecutor(max_workers=self._config.max_workers) as executor:
            futures = {
                executor.submit(self._run_scenario, model, scenario, overrides, time_steps): scenario
                for scenario, overrides in scenarios.items()
            }

            for future in as_completed(futures):
                scenario = futures[future]
                try:
                    results[scenario] = future.result()
                except Exception as e:
                    logger.error(f"Scenario '{scenario}' crashed: {e}")
                    results[scenario] = EvaluationResult(
                        success=False,
                        time_steps=time_steps or self._config.default_time_steps,
                        errors=[f"Scenario '{scenario}': {e}"],
                    )

        return results

    def _run_scenario(
        self,
        model: Model,
        scenario: str,
        overrides: Mapping[str, Sequence[float]],
        time_steps: Optional[int],
    ) -> EvaluationResult:
        skipped: List[str] = []
        try:
            scenario_model = model.clone()
            for name, values in overrides.items():
                if not scenario_model.has_variable(name):
                    skipped.append(name)
                    continue
                scenario_model.update_variable(name, values=list(values))
        except ModelitError as exc:
            logger.warning(f"Scenario '{scenario}' rejected: {exc.message}")
            return EvaluationResult(
                success=False,
                time_steps=time_steps or self._config.default_time_steps,
                errors=[f"Scenario '{scenario}': {exc.message}"],
            )

        # The cached graph belongs to evaluate_model() callers only
        result, _ = self._evaluate(scenario_model, time_steps)
        for name in skipped:
            note = f"Scenario '{scenario}': override for unknown variable '{name}' ignored"
            logger.warning(note)
            result.warnings.append(note)
        return result

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def _evaluate(
        self,
        model: Model,
        time_steps: Optional[int],
    ) -> Tuple[EvaluationResult, Optional[DependencyGraph]]:
        started = time.perf_counter()
        steps = self._config.default_time_steps if time_steps is None else time_steps

        if isinstance(steps, bool) or not isinstance(steps, int) or steps < 1:
            return self._failure(steps, [f"Time steps must be a positive integer, got {steps!r}"], started), None
        if steps > self._config.max_time_steps:
            message = f"Time steps {steps} exceeds the configured maximum of {self._config.max_time_steps}"
            return self._failure(steps, [message], started), None

        graph: Optional[DependencyGraph] = None
        try:
            graph = DependencyGraph(model, max_path_length=self._config.max_path_length)

            validation = model.validate_model(self._parser)
            if not validation.is_valid:
                logger.warning(
                    f"Model '{model.name}' failed validation: {len(validation.errors)} error(s)"
                )
                return self._failure(steps, validation.errors, started), graph

            order = graph.get_topological_order()
            if not order.can_evaluate:
                cycles = graph.find_cycles()
                listed = ", ".join(" -> ".join(cycle) for cycle in cycles) or "evaluation order is undefined"
                message = f"Circular dependencies detected: {listed}"
                logger.warning(f"Model '{model.name}' cannot be ordered: {message}")
                return self._failure(steps, [message], started), graph

            context = self._initialize_context(model, steps)
            self._perform_evaluation(model, graph, context)
        except ModelitError as exc:
            logger.warning(f"Evaluation of model '{model.name}' failed: {exc.message}")
            return self._failure(steps, [exc.message], started), graph
        except Exception as e:
            logger.error(f"Unexpected error evaluating model '{model.name}': {e}")
            return self._failure(steps, [EvaluationError(str(e)).message], started), graph

        result = EvaluationResult(
            success=True,
            time_steps=steps,
            values=context.variables,
            execution_time=self._elapsed_ms(started),
            parameters=dict(context.parameters),
        )
        logger.info(
            f"Evaluated model '{model.name}': {len(context.variables)} variables "
            f"x {steps} steps in {result.execution_time:.1f}ms"
        )
        return result, graph

    def _initialize_context(self, model: Model, steps: int) -> EvaluationContext:
        context = EvaluationContext(time_steps=steps)

        for variable in model.list_variables():
            series = [0.0] * steps
            stored = variable.values or []
            for t in range(min(len(stored), steps)):
                series[t] = stored[t]
            context.variables[variable.name] = series

            if variable.is_parameter() and variable.has_values():
                context.parameters[variable.name] = variable.values[0]

        return context

    def _partition(self, model: Model, graph: DependencyGraph) -> Tuple[List[str], List[str]]:
        """Split computed variables into (pass A, pass B), both in topological order."""
        pass_a: List[str] = []
        pass_b: List[str] = []
        stepped: Set[str] = set()

        for name in graph.evaluation_order():
            variable = model.get_variable(name)
            if variable is None:
                raise EvaluationError(f"Variable '{name}' not found in model during evaluation setup")
            if not variable.is_computed():
                continue

            downstream = any(dep in stepped for dep in graph.get_dependencies(name))
            if variable.is_time_dependent() or downstream:
                stepped.add(name)
                pass_b.append(name)
            else:
                pass_a.append(name)

        return pass_a, pass_b

    def _perform_evaluation(self, model: Model, graph: DependencyGraph, context: EvaluationContext) -> None:
        pass_a, pass_b = self._partition(model, graph)
        logger.debug(f"Pass A: {pass_a}; pass B: {pass_b}")

        parsed = {
            name: self._parser.parse_expression(model.get_variable(name).formula)
            for name in pass_a + pass_b
        }

        for names in (pass_a, pass_b):
            for t in range(context.time_steps):
                for name in names:
                    variable = model.get_variable(name)
                    context.variables[name][t] = self._evaluate_formula(
                        model, variable, parsed[name], context, t
                    )

    def _evaluate_formula(
        self,
        model: Model,
        variable: Variable,
        parsed: ParsedExpression,
        context: EvaluationContext,
        t: int,
    ) -> float:
        bindings: Dict[str, float] = {}

        for reference in parsed.time_references:
            value = self._resolve_reference(model, context, reference.variable, t + reference.offset)
            if value is not None:
                bindings[reference.original_text] = value

        for dep in parsed.plain_dependencies:
            series = context.variables.get(dep)
            if series is not None:
                bindings[dep] = series[t]

        try:
            return self._parser.evaluate_expression(variable.formula, bindings, variable.name)
        except ModelitError as exc:
            raise TimeSeriesError(
                t,
                f"formula '{variable.formula}' failed: {exc.message}",
                variable.name,
                details={"formula": variable.formula},
            ) from exc

    @staticmethod
    def _resolve_reference(model: Model, context: EvaluationContext, name: str, index: int) -> Optional[float]:
        if index < 0:
            variable = model.get_variable(name)
            if variable is not None and variable.has_values():
                return variable.values[0]
            return 0.0

        series = context.variables.get(name)
        if series is None:
            return None
        if index >= context.time_steps:
            return series[context.time_steps - 1]
        return series[index]

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000.0

    def _failure(self, steps: Any, errors: List[str], started: float) -> EvaluationResult:
        return EvaluationResult(
            success=False,
            time_steps=steps if isinstance(steps, int) else 0,
            errors=list(errors),
            execution_time=self._elapsed_ms(started),
        )


# =============================================================================
# MODULE-LEVEL INSTANCE
# =============================================================================

_default_engine: Optional[EvaluationEngine] = None


def get_default_engine() -> EvaluationEngine:
    """Get or create an engine configured from the environment."""
    global _default_engine
    if _default_engine is None:
        _default_engine = EvaluationEngine(EngineConfig.from_env())
    return _default_engine
