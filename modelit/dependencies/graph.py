"""
modelit Dependency Graph

Directed graph over variable names. An edge `A -> B` means B is computed
from A (A is upstream). Built from a Model's explicit edges and from each
variable's dependency list; time-lag syntax is stripped to the base name.
Lagged references (`B[t-1]`) and lagged edges read an earlier step, so
they add no edge: topological order is over same-step dependencies.

The graph is permissive: references to names that are not model variables
are skipped. Whether a model may be evaluated is decided by
Model.validate_model(), not by the graph.

Traversals are iterative so deep models cannot hit the recursion limit.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple
import logging

import networkx as nx

from modelit.expressions import parse_time_reference
from modelit.models import EdgeType, Model, Variable

logger = logging.getLogger(__name__)

DEFAULT_MAX_PATH_LENGTH = 10


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class TopologicalOrder:
    """Kahn's algorithm output, grouped into dependency levels."""
    levels: List[List[str]] = field(default_factory=list)
    total_levels: int = 0
    can_evaluate: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "levels": [list(level) for level in self.levels],
            "total_levels": self.total_levels,
            "can_evaluate": self.can_evaluate,
        }


@dataclass
class GraphStats:
    node_count: int = 0
    edge_count: int = 0
    max_level: int = 0
    cycle_count: int = 0
    strongly_connected_components: int = 0
    time_dependent_nodes: int = 0
    isolated_nodes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "max_level": self.max_level,
            "cycle_count": self.cycle_count,
            "strongly_connected_components": self.strongly_connected_components,
            "time_dependent_nodes": self.time_dependent_nodes,
            "isolated_nodes": self.isolated_nodes,
        }


@dataclass
class GraphNode:
    """A variable as seen by the graph."""
    name: str
    variable: Variable
    depends_on: List[str] = field(default_factory=list)
    depended_by: List[str] = field(default_factory=list)
    level: int = -1

    def __hash__(self):
        return hash(self.name)


# =============================================================================
# DEPENDENCY GRAPH
# =============================================================================

class DependencyGraph:
    """
    Dependency analysis over a Model.

    The graph is a snapshot. Call refresh() after mutating the model.
    """

    def __init__(self, model: Model, max_path_length: int = DEFAULT_MAX_PATH_LENGTH):
        self._model = model
        self._max_path_length = max_path_length
        self._graph = nx.DiGraph()
        self._build_timestamp: Optional[datetime] = None
        self._build()

    @property
    def model(self) -> Model:
        return self._model

    @property
    def graph(self) -> nx.DiGraph:
        return self._graph

    def __len__(self) -> int:
        return self._graph.number_of_nodes()

    def __contains__(self, name: object) -> bool:
        return name in self._graph

    def refresh(self) -> None:
        """Rebuild from the current state of the model."""
        self._build()

    def _build(self) -> None:
        graph = nx.DiGraph()

        for variable in self._model.list_variables():
            graph.add_node(
                variable.name,
                variable=variable,
                time_dependent=variable.is_time_dependent(),
            )

        for edge in self._model.list_edges():
            if edge.source not in graph or edge.target not in graph:
                continue
            # A lagged relationship reads an earlier step and orders nothing
            if edge.get_lag() != 0:
                continue
            self._link(graph, edge.source, edge.target, edge.type.value)

        for variable in self._model.list_variables():
            for dep in variable.dependencies:
                reference = parse_time_reference(dep)
                base = reference.variable if reference else dep.strip()
                if base not in graph:
                    continue
                if reference is not None and reference.offset < 0:
                    continue
                if base == variable.name and reference is not None and reference.offset != 0:
                    continue
                kind = EdgeType.TEMPORAL.value if reference and reference.offset else EdgeType.DEPENDENCY.value
                self._link(graph, base, variable.name, kind)

        self._graph = graph
        self._build_timestamp = datetime.now(timezone.utc)

        logger.info(
            f"Dependency graph built for model '{self._model.name}': "
            f"{graph.number_of_nodes()} variables, {graph.number_of_edges()} edges"
        )

    @staticmethod
    def _link(graph: nx.DiGraph, source: str, target: str, kind: str) -> None:
        if graph.has_edge(source, target):
            kinds = graph[source][target]["kinds"]
            if kind not in kinds:
                kinds.append(kind)
        else:
            graph.add_edge(source, target, kinds=[kind])

    def _successors(self, name: str) -> Iterator[str]:
        return iter(self._graph.successors(name))

    # -------------------------------------------------------------------------
    # Cycles and ordering
    # -------------------------------------------------------------------------

    def find_cycles(self) -> List[List[str]]:
        """
        One representative cycle per DFS root, e.g. [["A", "B", "A"]].

        The walk from a root stops at the first back edge it closes; this
        reports that cycles exist, it does not enumerate all of them.
        """
        cycles: List[List[str]] = []
        visited: Set[str] = set()

        for root in self._graph.nodes:
            if root in visited:
                continue

            path = [root]
            on_stack = {root}
            visited.add(root)
            stack = [self._successors(root)]

            while stack:
                neighbor = next(stack[-1], None)
                if neighbor is None:
                    stack.pop()
                    on_stack.discard(path.pop())
                    continue

                if neighbor in on_stack:
                    cycles.append(path[path.index(neighbor):] + [neighbor])
                    break
                if neighbor in visited:
                    continue

                visited.add(neighbor)
                on_stack.add(neighbor)
                path.append(neighbor)
                stack.append(self._successors(neighbor))

        return cycles

    def has_cycles(self) -> bool:
        return not self.get_topological_order().can_evaluate

    def get_topological_order(self) -> TopologicalOrder:
        """Kahn's algorithm; each BFS wave is one level."""
        in_degree = {name: self._graph.in_degree(name) for name in self._graph.nodes}
        queue = deque([name for name, degree in in_degree.items() if degree == 0])
        levels: List[List[str]] = []
        processed = 0

        while queue:
            level = []
            for _ in range(len(queue)):
                name = queue.popleft()
                level.append(name)
                processed += 1

                for dependent in self._graph.successors(name):
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        queue.append(dependent)

            levels.append(level)

        return TopologicalOrder(
            levels=levels,
            total_levels=len(levels),
            can_evaluate=processed == self._graph.number_of_nodes(),
        )

    def evaluation_order(self) -> List[str]:
        """Variables flattened in topological order (dependencies first)."""
        return [name for level in self.get_topological_order().levels for name in level]

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    def find_strongly_connected_components(self) -> List[List[str]]:
        """Kosaraju: finish order on the graph, then collect on the reverse."""
        finish_order: List[str] = []
        visited: Set[str] = set()

        for root in self._graph.nodes:
            if root in visited:
                continue
            visited.add(root)
            stack: List[Tuple[str, Iterator[str]]] = [(root, self._successors(root))]

            while stack:
                node, neighbors = stack[-1]
                neighbor = next(neighbors, None)
                if neighbor is None:
                    stack.pop()
                    finish_order.append(node)
                elif neighbor not in visited:
                    visited.add(neighbor)
                    stack.append((neighbor, self._successors(neighbor)))

        components: List[List[str]] = []
        visited.clear()

        for root in reversed(finish_order):
            if root in visited:
                continue
            visited.add(root)
            component = [root]
            stack_rev = [iter(self._graph.predecessors(root))]

            while stack_rev:
                neighbor = next(stack_rev[-1], None)
                if neighbor is None:
                    stack_rev.pop()
                elif neighbor not in visited:
                    visited.add(neighbor)
                    component.append(neighbor)
                    stack_rev.append(iter(self._graph.predecessors(neighbor)))

            components.append(component)

        return components

    def get_connected_components(self) -> List[List[str]]:
        """Weakly connected groups of variables, in model order."""
        order = {name: index for index, name in enumerate(self._graph.nodes)}
        components = [
            sorted(component, key=order.__getitem__)
            for component in nx.weakly_connected_components(self._graph)
        ]
        return sorted(components, key=lambda c: order[c[0]])

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def find_shortest_path(self, source: str, target: str) -> Optional[List[str]]:
        """Fewest-hops path from source to target, or None."""
        try:
            return nx.shortest_path(self._graph, source, target)
        except (nx.NetworkXNoPath, nx.NodeNotFound):
            return None

    def find_all_paths(self, source: str, target: str, max_length: Optional[int] = None) -> List[List[str]]:
        """Simple paths of at most `max_length` edges (default: the graph's max_path_length)."""
        cutoff = self._max_path_length if max_length is None else max_length
        if source not in self._graph or target not in self._graph:
            return []
        if source == target:
            return [[source]]
        return [
            list(path)
            for path in nx.all_simple_paths(self._graph, source, target, cutoff=cutoff)
        ]

    # -------------------------------------------------------------------------
    # Dependency queries
    # -------------------------------------------------------------------------

    def get_dependencies(self, name: str) -> List[str]:
        """Variables `name` is computed from directly."""
        if name not in self._graph:
            return []
        return list(self._graph.predecessors(name))

    def get_dependents(self, name: str) -> List[str]:
        """Variables computed directly from `name`."""
        if name not in self._graph:
            return []
        return list(self._graph.successors(name))

    def get_all_dependencies(self, name: str) -> Set[str]:
        """All upstream variables (transitive closure)."""
        if name not in self._graph:
            return set()
        return set(nx.ancestors(self._graph, name))

    def get_all_dependents(self, name: str) -> Set[str]:
        """All downstream variables (transitive closure)."""
        if name not in self._graph:
            return set()
        return set(nx.descendants(self._graph, name))

    def get_node(self, name: str) -> Optional[GraphNode]:
        if name not in self._graph:
            return None

        level = -1
        for index, names in enumerate(self.get_topological_order().levels):
            if name in names:
                level = index
                break

        return GraphNode(
            name=name,
            variable=self._graph.nodes[name]["variable"],
            depends_on=self.get_dependencies(name),
            depended_by=self.get_dependents(name),
            level=level,
        )

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def get_statistics(self) -> GraphStats:
        order = self.get_topological_order()
        return GraphStats(
            node_count=self._graph.number_of_nodes(),
            edge_count=self._graph.number_of_edges(),
            max_level=order.total_levels,
            cycle_count=len(self.find_cycles()),
            strongly_connected_components=len(self.find_strongly_connected_components()),
            time_dependent_nodes=sum(
                1 for _, data in self._graph.nodes(data=True) if data["time_dependent"]
            ),
            isolated_nodes=sum(1 for _ in nx.isolates(self._graph)),
        )

    def get_node_importance(self, name: str) -> float:
        """Degree of `name` relative to the largest possible degree, in [0, 1]."""
        if name not in self._graph:
            return 0.0
        degree = self._graph.in_degree(name) + self._graph.out_degree(name)
        return degree / (self._graph.number_of_nodes() * 2)

    def get_graph_density(self) -> float:
        return nx.density(self._graph)

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def extract_subgraph(self, names: List[str]) -> Model:
        """A new Model holding the named variables and the edges among them."""
        selected = [name for name in names if self._model.has_variable(name)]
        keep = set(selected)

        metadata = dict(self._model.metadata)
        metadata["derived_from"] = self._model.metadata.get("marketplace_id", self._model.name)
        metadata["created"] = datetime.now(timezone.utc)

        return Model(
            name=f"{self._model.name}_subgraph",
            description=f"Subgraph of {self._model.name}",
            variables=[self._model.get_variable(name).clone() for name in selected],
            edges=[
                edge.clone() for edge in self._model.list_edges()
                if edge.source in keep and edge.target in keep
            ],
            metadata=metadata,
        )

    def to_dot(self) -> str:
        """GraphViz source; time-dependent variables are shaded blue."""
        lines = [
            "digraph ModelGraph {",
            "  rankdir=LR;",
            "  node [shape=box];",
            "",
        ]

        for name, data in self._graph.nodes(data=True):
            variable = data["variable"]
            color = "lightblue" if data["time_dependent"] else "lightgray"
            lines.append(
                f'  "{name}" [label="{name}\\n{variable.type.value}", fillcolor="{color}", style=filled];'
            )

        lines.append("")

        for source, target, data in self._graph.edges(data=True):
            temporal = EdgeType.TEMPORAL.value in data["kinds"]
            style = "dashed" if temporal else "solid"
            color = "blue" if EdgeType.DEPENDENCY.value in data["kinds"] else "black"
            lines.append(f'  "{source}" -> "{target}" [style="{style}", color="{color}"];')

        lines.append("}")
        return "\n".join(lines) + "\n"

    def describe(self) -> Dict[str, Any]:
        """Introspection summary for a "show graph" style report."""
        order = self.get_topological_order()
        return {
            "model": self._model.name,
            "can_evaluate": order.can_evaluate,
            "evaluation_order": [name for level in order.levels for name in level],
            "levels": [list(level) for level in order.levels],
            "nodes": {
                name: {
                    "type": data["variable"].type.value,
                    "time_dependent": data["time_dependent"],
                    "dependencies": self.get_dependencies(name),
                    "dependents": self.get_dependents(name),
                }
                for name, data in self._graph.nodes(data=True)
            },
            "cycles": self.find_cycles(),
            "statistics": self.get_statistics().to_dict(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": list(self._graph.nodes),
            "edges": [
                {"source": source, "target": target, "kinds": list(data["kinds"])}
                for source, target, data in self._graph.edges(data=True)
            ],
            "build_timestamp": self._build_timestamp.isoformat() if self._build_timestamp else None,
        }
