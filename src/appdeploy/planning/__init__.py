"""Dependency graph, install ordering and sync policy."""

from .graph import DependencyGraph, DependencyGraphBuilder
from .planner import DeploymentPlanner, stable_topological_sort
from .sync import SyncPolicyResolver

__all__ = [
    "DependencyGraph",
    "DependencyGraphBuilder",
    "DeploymentPlanner",
    "SyncPolicyResolver",
    "stable_topological_sort",
]
