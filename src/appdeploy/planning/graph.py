"""Dependency graph over a batch of candidate packages."""

from typing import Dict, Iterable, List, Sequence, Set, Tuple

import structlog

from appdeploy.core.exceptions import (
    CycleError,
    DuplicatePackageError,
    UnresolvedInternalDependencyError,
)
from appdeploy.core.models import PackageRef

logger = structlog.get_logger()

Key = Tuple[str, str]


class DependencyGraph:
    """Directed "requires" graph whose nodes are the batch packages.

    Dependencies satisfied outside the batch are not represented.
    """

    def __init__(self, nodes: Sequence[PackageRef], edges: Dict[Key, List[Key]]):
        self._nodes: Tuple[PackageRef, ...] = tuple(nodes)
        self._by_key: Dict[Key, PackageRef] = {n.key: n for n in self._nodes}
        self._edges: Dict[Key, Tuple[Key, ...]] = {
            n.key: tuple(edges.get(n.key, ())) for n in self._nodes
        }

    @property
    def nodes(self) -> Tuple[PackageRef, ...]:
        """Nodes in input order."""
        return self._nodes

    def requires(self, package: PackageRef) -> List[PackageRef]:
        """Batch packages that `package` depends on."""
        return [self._by_key[k] for k in self._edges[package.key]]

    def required_by(self, package: PackageRef) -> List[PackageRef]:
        """Batch packages that depend on `package`."""
        return [n for n in self._nodes if package.key in self._edges[n.key]]

    def edges(self) -> List[Tuple[PackageRef, PackageRef]]:
        """(dependent, dependency) pairs."""
        return [(n, self._by_key[k]) for n in self._nodes for k in self._edges[n.key]]

    def __contains__(self, package: object) -> bool:
        return isinstance(package, PackageRef) and package.key in self._by_key

    def __len__(self) -> int:
        return len(self._nodes)


class DependencyGraphBuilder:
    """Builds a DependencyGraph and rejects batches that cannot be ordered."""

    def build(self, candidates: Iterable[PackageRef]) -> DependencyGraph:
        """Build the graph for a candidate batch.

        Raises:
            DuplicatePackageError: If a package appears twice in the batch
            UnresolvedInternalDependencyError: If a batch dependency is older than required
            CycleError: If the batch contains a dependency cycle
        """
        nodes = list(candidates)
        by_key: Dict[Key, PackageRef] = {}
        for node in nodes:
            existing = by_key.get(node.key)
            if existing is not None:
                raise DuplicatePackageError(node.identity.name, node.identity.publisher, [existing.file_path, node.file_path])
            by_key[node.key] = node

        edges: Dict[Key, List[Key]] = {}
        for node in nodes:
            targets: List[Key] = []
            for dep in node.dependencies:
                target = by_key.get(dep.key)
                if target is None:
                    continue
                if not dep.satisfied_by(target.identity.version):
                    raise UnresolvedInternalDependencyError(
                        str(node.identity), f"{dep.publisher}/{dep.name}", dep.min_version, target.identity.version
                    )
                if dep.key not in targets:
                    targets.append(dep.key)
            edges[node.key] = targets

        cycles = _find_cycles(nodes, edges)
        if cycles:
            error = CycleError([[by_key[k].identity.name for k in cycle] for cycle in cycles])
            logger.error("Dependency cycle detected", members=error.members, cycles=len(cycles))
            raise error

        graph = DependencyGraph(nodes, edges)
        logger.debug("Dependency graph built", nodes=len(nodes), edges=sum(len(v) for v in edges.values()))
        return graph


def _find_cycles(nodes: Sequence[PackageRef], edges: Dict[Key, List[Key]]) -> List[List[Key]]:
    """Return every cycle (strongly connected component that loops) in input order."""
    position = {n.key: i for i, n in enumerate(nodes)}
    index: Dict[Key, int] = {}
    lowlink: Dict[Key, int] = {}
    stack: List[Key] = []
    on_stack: Set[Key] = set()
    components: List[List[Key]] = []

    def strongconnect(key: Key) -> None:
        index[key] = lowlink[key] = len(index)
        stack.append(key)
        on_stack.add(key)
        for target in edges.get(key, ()):
            if target not in index:
                strongconnect(target)
                lowlink[key] = min(lowlink[key], lowlink[target])
            elif target in on_stack:
                lowlink[key] = min(lowlink[key], index[target])
        if lowlink[key] == index[key]:
            component: List[Key] = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == key:
                    break
            components.append(component)

    for node in nodes:
        if node.key not in index:
            strongconnect(node.key)

    cycles = [
        sorted(c, key=position.__getitem__)
        for c in components
        if len(c) > 1 or c[0] in edges.get(c[0], ())
    ]
    cycles.sort(key=lambda c: position[c[0]])
    return cycles
