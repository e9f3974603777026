"""Sync policy resolution: which installed packages a run removes."""

from typing import Dict, List

import structlog

from appdeploy.core.config import SyncMode
from appdeploy.core.models import (
    DeploymentPlan,
    InstalledPackage,
    InstalledSet,
    PackageRef,
    SyncDecision,
)
from appdeploy.planning.planner import stable_topological_sort

logger = structlog.get_logger()


class SyncPolicyResolver:
    """Computes the SyncDecision for a plan under a sync mode.

    Works on immutable snapshots only and never touches the environment.
    """

    def resolve(self, mode: SyncMode, installed: InstalledSet, plan: DeploymentPlan) -> SyncDecision:
        removals = self._select(SyncMode(mode), installed, plan)
        ordered = self._uninstall_order(removals)
        decision = SyncDecision(to_uninstall=tuple(p.identity for p in ordered), to_install=tuple(plan))
        logger.info(
            "Sync policy resolved",
            sync_mode=SyncMode(mode).value,
            to_uninstall=[str(i) for i in decision.to_uninstall],
            to_install=len(decision.to_install),
        )
        return decision

    def _select(self, mode: SyncMode, installed: InstalledSet, plan: DeploymentPlan) -> List[InstalledPackage]:
        if mode in (SyncMode.NONE, SyncMode.ADD):
            return []

        by_name: Dict[str, List[PackageRef]] = {}
        for ref in plan:
            by_name.setdefault(ref.identity.name, []).append(ref)

        if mode == SyncMode.CLEAN:
            return [p for p in installed if p.identity.name not in by_name]
        if mode == SyncMode.FORCE_SYNC:
            return [p for p in installed if p.identity.name in by_name]
        if mode == SyncMode.DEVELOPMENT:
            return [p for p in installed if p.identity.name in by_name and self._version_changed(p, by_name)]
        raise ValueError(f"Unsupported sync mode: {mode}")

    @staticmethod
    def _version_changed(package: InstalledPackage, by_name: Dict[str, List[PackageRef]]) -> bool:
        candidates = by_name[package.identity.name]
        exact = [ref for ref in candidates if ref.key == package.identity.key]
        return not any(package.identity.same_version(ref.identity) for ref in (exact or candidates))

    @staticmethod
    def _uninstall_order(removals: List[InstalledPackage]) -> List[InstalledPackage]:
        """Dependents before their dependencies."""
        removals = sorted(removals, key=lambda p: (p.identity.name.lower(), p.identity.publisher.lower()))

        def dependents(package: InstalledPackage) -> List[InstalledPackage]:
            return [
                other for other in removals
                if any(dep.matches(package.identity) for dep in other.dependencies)
            ]

        return stable_topological_sort(
            removals, dependents, key=lambda p: p.identity.key, label=lambda p: p.identity.name
        )
