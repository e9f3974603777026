"""Deployment run: planning, sync resolution, execution."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import structlog

from appdeploy.core.config import RunConfig
from appdeploy.core.exceptions import EnvironmentQueryError, PackageError, PlanningError
from appdeploy.core.models import (
    Action,
    DeploymentOutcome,
    OutcomeStatus,
    RunReport,
    RunState,
    SyncDecision,
)
from appdeploy.deploy.environment import Environment
from appdeploy.deploy.executor import DeploymentExecutor
from appdeploy.packages.inspector import PackageInspector
from appdeploy.planning.graph import DependencyGraphBuilder
from appdeploy.planning.planner import DeploymentPlanner
from appdeploy.planning.sync import SyncPolicyResolver
from appdeploy.utils.logging import bind_run_context

logger = structlog.get_logger()


class DeploymentOrchestrator:
    """Drives one deployment run through its states.

    planning -> sync_resolved -> executing -> completed | aborted

    Errors before execution abort with no environment mutation. Errors during
    execution abort with the outcomes recorded so far.
    """

    def __init__(
        self,
        environment: Environment,
        inspector: Optional[PackageInspector] = None,
        builder: Optional[DependencyGraphBuilder] = None,
        planner: Optional[DeploymentPlanner] = None,
        resolver: Optional[SyncPolicyResolver] = None,
        executor: Optional[DeploymentExecutor] = None,
    ):
        self.environment = environment
        self.inspector = inspector or PackageInspector()
        self.builder = builder or DependencyGraphBuilder()
        self.planner = planner or DeploymentPlanner()
        self.resolver = resolver or SyncPolicyResolver()
        self.executor = executor or DeploymentExecutor()

    def run(self, config: RunConfig, run_id: Optional[str] = None) -> RunReport:
        run_id = run_id or uuid.uuid4().hex
        started_at = datetime.now(timezone.utc)
        bind_run_context(run_id, config.sync_mode.value)

        state = self._transition(None, RunState.PLANNING)
        candidates = []
        try:
            candidates = self.inspector.inspect_all(config.candidate_paths)
            plan = self.planner.plan(self.builder.build(candidates))
            installed = self.environment.list_installed()
            decision = self.resolver.resolve(config.sync_mode, installed, plan)
        except (PackageError, PlanningError, EnvironmentQueryError) as e:
            logger.error("Run aborted before execution", error=str(e), error_type=type(e).__name__)
            self._transition(state, RunState.ABORTED)
            pending = [DeploymentOutcome.not_attempted(c.identity, Action.INSTALL, config.dry_run) for c in candidates]
            return self._report(run_id, config, started_at, RunState.ABORTED, pending, error=str(e))
        state = self._transition(state, RunState.SYNC_RESOLVED)

        state = self._transition(state, RunState.EXECUTING)
        outcomes = self.executor.execute(self.environment, decision, dry_run=config.dry_run, installed=installed)

        entries = list(outcomes) + self._not_attempted(decision, len(outcomes), config.dry_run)
        failure = next((o for o in outcomes if o.status == OutcomeStatus.FAILED), None)
        if failure is not None:
            self._transition(state, RunState.ABORTED)
            return self._report(run_id, config, started_at, RunState.ABORTED, entries, error=failure.error)

        self._transition(state, RunState.COMPLETED)
        return self._report(run_id, config, started_at, RunState.COMPLETED, entries)

    @staticmethod
    def _not_attempted(decision: SyncDecision, executed: int, dry_run: bool) -> List[DeploymentOutcome]:
        steps = [(i, Action.UNINSTALL) for i in decision.to_uninstall]
        steps += [(ref.identity, Action.INSTALL) for ref in decision.to_install]
        return [DeploymentOutcome.not_attempted(identity, action, dry_run) for identity, action in steps[executed:]]

    @staticmethod
    def _transition(current: Optional[RunState], new: RunState) -> RunState:
        logger.info("Run state changed", from_state=current.value if current else None, to_state=new.value)
        return new

    @staticmethod
    def _report(
        run_id: str,
        config: RunConfig,
        started_at: datetime,
        state: RunState,
        entries: Sequence[DeploymentOutcome],
        error: Optional[str] = None,
    ) -> RunReport:
        report = RunReport(
            run_id=run_id,
            sync_mode=config.sync_mode,
            dry_run=config.dry_run,
            state=state,
            entries=tuple(entries),
            error=error,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Run finished",
            state=state.value,
            attempted=len(report.attempted),
            not_attempted=len(report.not_attempted),
            failed=report.failed,
        )
        return report
