"""Sequential deployment executor."""

from __future__ import annotations

from typing import List, Optional, Tuple

import structlog

from appdeploy.core.exceptions import InstallError, UninstallError
from appdeploy.core.models import (
    Action,
    DeploymentOutcome,
    InstalledPackage,
    InstalledSet,
    OutcomeStatus,
    PackageIdentity,
    PackageRef,
    SyncDecision,
)
from appdeploy.deploy.environment import Environment

logger = structlog.get_logger()

ALREADY_INSTALLED = "already installed at target version"
NOT_INSTALLED = "not installed"


class DeploymentExecutor:
    """Runs a SyncDecision against an environment, one operation at a time.

    Uninstalls run first, then installs. The installed-package snapshot is
    threaded from step to step and never re-queried mid-run. The first
    failed operation halts the run.
    """

    def execute(
        self,
        environment: Environment,
        decision: SyncDecision,
        dry_run: bool = False,
        installed: Optional[InstalledSet] = None,
    ) -> List[DeploymentOutcome]:
        outcomes, _ = self.execute_with_state(environment, decision, dry_run=dry_run, installed=installed)
        return outcomes

    def execute_with_state(
        self,
        environment: Environment,
        decision: SyncDecision,
        dry_run: bool = False,
        installed: Optional[InstalledSet] = None,
    ) -> Tuple[List[DeploymentOutcome], InstalledSet]:
        """Execute the decision and return the outcomes plus the final snapshot.

        Args:
            environment: Target environment
            decision: Removals and installs to perform
            dry_run: Simulate every step without mutating calls
            installed: Snapshot to start from; queried from the environment if omitted

        Returns:
            Outcomes for every attempted step, and the resulting snapshot
        """
        if installed is None:
            installed = environment.list_installed()

        outcomes: List[DeploymentOutcome] = []
        logger.info(
            "Executing deployment",
            uninstalls=len(decision.to_uninstall),
            installs=len(decision.to_install),
            dry_run=dry_run,
        )

        for identity in decision.to_uninstall:
            outcome, installed = self._uninstall(environment, identity, installed, dry_run)
            outcomes.append(outcome)
            if outcome.status == OutcomeStatus.FAILED:
                return outcomes, installed

        for package in decision.to_install:
            outcome, installed = self._install(environment, package, installed, dry_run)
            outcomes.append(outcome)
            if outcome.status == OutcomeStatus.FAILED:
                return outcomes, installed

        logger.info("Deployment steps finished", steps=len(outcomes), dry_run=dry_run)
        return outcomes, installed

    def _uninstall(
        self,
        environment: Environment,
        identity: PackageIdentity,
        installed: InstalledSet,
        dry_run: bool,
    ) -> Tuple[DeploymentOutcome, InstalledSet]:
        current = installed.get(identity)
        if current is None:
            logger.info("Skipping uninstall", package=str(identity), reason=NOT_INSTALLED)
            return DeploymentOutcome.skipped(identity, Action.UNINSTALL, NOT_INSTALLED, dry_run=dry_run), installed

        if not dry_run:
            logger.info("Uninstalling package", package=str(current.identity))
            try:
                environment.uninstall(current.identity)
            except UninstallError as e:
                logger.error("Uninstall failed", package=str(current.identity), error=str(e))
                return DeploymentOutcome.failed(current.identity, Action.UNINSTALL, str(e)), installed
        else:
            logger.info("Would uninstall package", package=str(current.identity))

        return DeploymentOutcome.uninstalled(current.identity, dry_run=dry_run), installed.without(identity)

    def _install(
        self,
        environment: Environment,
        package: PackageRef,
        installed: InstalledSet,
        dry_run: bool,
    ) -> Tuple[DeploymentOutcome, InstalledSet]:
        target = package.identity
        current = installed.get(target)
        if current is not None:
            if current.identity.same_version(target):
                logger.info("Skipping install", package=str(target), reason=ALREADY_INSTALLED)
                return DeploymentOutcome.skipped(target, Action.INSTALL, ALREADY_INSTALLED, dry_run=dry_run), installed
            if current.identity.parsed_version > target.parsed_version:
                reason = f"newer version {current.identity.version} already installed"
                logger.info("Skipping install", package=str(target), reason=reason)
                return DeploymentOutcome.skipped(target, Action.INSTALL, reason, dry_run=dry_run), installed

        new_identity = target
        if not dry_run:
            logger.info(
                "Installing package",
                package=str(target),
                upgrade_from=current.identity.version if current else None,
            )
            try:
                new_identity = environment.install(package)
            except InstallError as e:
                logger.error("Install failed", package=str(target), error=str(e))
                return DeploymentOutcome.failed(target, Action.INSTALL, str(e)), installed
        else:
            logger.info("Would install package", package=str(target))

        updated = installed.with_package(InstalledPackage(identity=new_identity, dependencies=package.dependencies))
        return DeploymentOutcome.installed(new_identity, dry_run=dry_run), updated
