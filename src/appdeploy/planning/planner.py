"""Deterministic install ordering."""

import heapq
from typing import Callable, Dict, Hashable, Iterable, List, Sequence, TypeVar

import structlog

from appdeploy.core.exceptions import CycleError
from appdeploy.core.models import DeploymentPlan
from appdeploy.planning.graph import DependencyGraph

logger = structlog.get_logger()

T = TypeVar("T")


def stable_topological_sort(
    nodes: Sequence[T],
    prerequisites: Callable[[T], Iterable[T]],
    key: Callable[[T], Hashable] = lambda n: n,
    label: Callable[[T], str] = str,
) -> List[T]:
    """Kahn's algorithm that always emits the earliest-input ready node.

    Args:
        nodes: Nodes in input order
        prerequisites: Nodes that must come before a given node; entries
            outside `nodes` are ignored
        key: Hashable identity of a node
        label: Name reported for a node left in a cycle

    Raises:
        CycleError: If the nodes cannot be fully ordered
    """
    position: Dict[Hashable, int] = {key(n): i for i, n in enumerate(nodes)}
    remaining: Dict[int, int] = {i: 0 for i in range(len(nodes))}
    followers: Dict[int, List[int]] = {i: [] for i in range(len(nodes))}

    for i, node in enumerate(nodes):
        seen = set()
        for prerequisite in prerequisites(node):
            j = position.get(key(prerequisite))
            if j is None or j in seen:
                continue
            seen.add(j)
            remaining[i] += 1
            followers[j].append(i)

    ready = [i for i, count in remaining.items() if count == 0]
    heapq.heapify(ready)
    order: List[T] = []
    while ready:
        i = heapq.heappop(ready)
        order.append(nodes[i])
        for follower in followers[i]:
            remaining[follower] -= 1
            if remaining[follower] == 0:
                heapq.heappush(ready, follower)

    if len(order) != len(nodes):
        emitted = {key(n) for n in order}
        raise CycleError([[label(n) for n in nodes if key(n) not in emitted]])
    return order


class DeploymentPlanner:
    """Turns a dependency graph into a dependency-safe install order."""

    def plan(self, graph: DependencyGraph) -> DeploymentPlan:
        """Dependencies first; independent packages keep their input order."""
        order = stable_topological_sort(
            graph.nodes, graph.requires, key=lambda ref: ref.key, label=lambda ref: ref.identity.name
        )
        logger.info("Deployment plan computed", order=[str(ref.identity) for ref in order])
        return tuple(order)
