"""
modelit Dependencies

Graph analysis over a model's variables: cycle detection, topological
levels, components, paths and introspection.
"""

from .graph import DependencyGraph, GraphNode, GraphStats, TopologicalOrder

__all__ = [
    "DependencyGraph",
    "GraphNode",
    "GraphStats",
    "TopologicalOrder",
]
