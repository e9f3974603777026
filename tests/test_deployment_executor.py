"""Tests for the sequential deployment executor."""

from unittest.mock import MagicMock

import pytest

from appdeploy.core.config import SyncMode
from appdeploy.core.models import (
    Action,
    InstalledSet,
    OutcomeStatus,
    PackageIdentity,
    SyncDecision,
)
from appdeploy.deploy.environment import InMemoryEnvironment
from appdeploy.deploy.executor import ALREADY_INSTALLED, DeploymentExecutor
from appdeploy.planning.sync import SyncPolicyResolver


def _summary(outcomes):
    return [(o.identity.name, o.action.value, o.status.value) for o in outcomes]


def test_installs_in_plan_order_and_threads_state(make_ref):
    env = InMemoryEnvironment()
    plan = (make_ref("A"), make_ref("B", deps=["A"]), make_ref("C", deps=["B"]))

    outcomes, final = DeploymentExecutor().execute_with_state(env, SyncDecision(to_install=plan))

    assert _summary(outcomes) == [
        ("A", "install", "installed"),
        ("B", "install", "installed"),
        ("C", "install", "installed"),
    ]
    assert env.history == [("install", "Contoso/A@1.0.0"), ("install", "Contoso/B@1.0.0"), ("install", "Contoso/C@1.0.0")]
    assert final == env.list_installed()


def test_uninstalls_run_before_installs(make_ref, make_installed):
    env = InMemoryEnvironment([make_installed("Old"), make_installed("X")])
    decision = SyncDecision(
        to_uninstall=(make_installed("Old").identity,),
        to_install=(make_ref("X", "2.0.0"),),
    )

    outcomes = DeploymentExecutor().execute(env, decision)

    assert _summary(outcomes) == [("Old", "uninstall", "uninstalled"), ("X", "install", "installed")]
    assert env.history[0] == ("uninstall", "Contoso/Old@1.0.0")
    assert env.list_installed().to_dict() == {"Contoso/X": "2.0.0"}


def test_failure_halts_run(make_ref, flaky_environment):
    env = flaky_environment(fail_install={"B"})
    plan = (make_ref("A"), make_ref("B"), make_ref("C"))

    outcomes = DeploymentExecutor().execute(env, SyncDecision(to_install=plan))

    assert _summary(outcomes) == [("A", "install", "installed"), ("B", "install", "failed")]
    assert "rejected" in outcomes[1].error
    assert ("install", "Contoso/C@1.0.0") not in env.history
    assert env.list_installed().to_dict() == {"Contoso/A": "1.0.0"}


def test_uninstall_failure_halts_before_installs(make_ref, make_installed, flaky_environment):
    env = flaky_environment([make_installed("Old")], fail_uninstall={"Old"})
    decision = SyncDecision(to_uninstall=(make_installed("Old").identity,), to_install=(make_ref("New"),))

    outcomes = DeploymentExecutor().execute(env, decision)

    assert _summary(outcomes) == [("Old", "uninstall", "failed")]
    assert env.history == []


def test_second_run_skips_everything(make_ref):
    env = InMemoryEnvironment()
    decision = SyncDecision(to_install=(make_ref("A"), make_ref("B", deps=["A"])))
    executor = DeploymentExecutor()

    executor.execute(env, decision)
    second = executor.execute(env, decision)

    assert [o.status for o in second] == [OutcomeStatus.SKIPPED, OutcomeStatus.SKIPPED]
    assert all(o.reason == ALREADY_INSTALLED for o in second)
    assert len(env.history) == 2


def test_upgrade_replaces_installed_version(make_ref, make_installed):
    env = InMemoryEnvironment([make_installed("A", "1.0.0")])
    outcomes, final = DeploymentExecutor().execute_with_state(env, SyncDecision(to_install=(make_ref("A", "1.2.0"),)))
    assert _summary(outcomes) == [("A", "install", "installed")]
    assert final.to_dict() == {"Contoso/A": "1.2.0"}


def test_newer_installed_version_is_skipped(make_ref, make_installed):
    env = InMemoryEnvironment([make_installed("A", "3.0.0")])
    outcomes = DeploymentExecutor().execute(env, SyncDecision(to_install=(make_ref("A", "2.0.0"),)))
    assert outcomes[0].status == OutcomeStatus.SKIPPED
    assert outcomes[0].reason == "newer version 3.0.0 already installed"
    assert env.history == []


def test_uninstall_of_missing_package_is_skipped(make_installed):
    env = InMemoryEnvironment()
    outcomes = DeploymentExecutor().execute(env, SyncDecision(to_uninstall=(make_installed("Gone").identity,)))
    assert _summary(outcomes) == [("Gone", "uninstall", "skipped")]
    assert outcomes[0].reason == "not installed"


def test_snapshot_is_not_requeried_mid_run(make_ref):
    env = MagicMock()
    env.list_installed.return_value = InstalledSet()
    env.install.side_effect = lambda ref: ref.identity
    plan = (make_ref("A"), make_ref("A2"))

    DeploymentExecutor().execute(env, SyncDecision(to_install=plan))

    env.list_installed.assert_called_once()
    assert env.install.call_count == 2


def test_given_snapshot_is_used_without_querying(make_ref, make_installed):
    env = MagicMock()
    snapshot = InstalledSet([make_installed("A")])

    outcomes = DeploymentExecutor().execute(env, SyncDecision(to_install=(make_ref("A"),)), installed=snapshot)

    env.list_installed.assert_not_called()
    env.install.assert_not_called()
    assert outcomes[0].status == OutcomeStatus.SKIPPED


def test_installed_identity_comes_from_environment(make_ref):
    env = MagicMock()
    env.list_installed.return_value = InstalledSet()
    env.install.return_value = PackageIdentity(name="A", publisher="Contoso", version="1.0.0.5")

    outcomes, final = DeploymentExecutor().execute_with_state(env, SyncDecision(to_install=(make_ref("A"),)))

    assert outcomes[0].identity.version == "1.0.0.5"
    assert final.to_dict() == {"Contoso/A": "1.0.0.5"}


def test_dry_run_issues_no_mutations(make_ref, make_installed):
    env = MagicMock()
    snapshot = InstalledSet([make_installed("Old"), make_installed("A")])
    env.list_installed.return_value = snapshot
    decision = SyncDecision(
        to_uninstall=(make_installed("Old").identity,),
        to_install=(make_ref("A"), make_ref("B")),
    )

    outcomes, final = DeploymentExecutor().execute_with_state(env, decision, dry_run=True)

    env.install.assert_not_called()
    env.uninstall.assert_not_called()
    assert all(o.dry_run for o in outcomes)
    assert _summary(outcomes) == [
        ("Old", "uninstall", "uninstalled"),
        ("A", "install", "skipped"),
        ("B", "install", "installed"),
    ]
    # The caller's snapshot is untouched
    assert snapshot.to_dict() == {"Contoso/Old": "1.0.0", "Contoso/A": "1.0.0"}
    assert final.to_dict() == {"Contoso/A": "1.0.0", "Contoso/B": "1.0.0"}


@pytest.mark.parametrize("mode", list(SyncMode))
def test_dry_run_matches_real_run(mode, make_ref, make_installed):
    installed = [
        make_installed("Base", "1.0.0"),
        make_installed("Sales", "1.0.0", deps=["Base"]),
        make_installed("Legacy", "1.0.0", deps=["Base"]),
    ]
    plan = (make_ref("Base", "1.0.0"), make_ref("Sales", "1.1.0", deps=["Base"]), make_ref("New", deps=["Sales"]))
    executor = DeploymentExecutor()

    dry_env = InMemoryEnvironment(installed)
    dry_decision = SyncPolicyResolver().resolve(mode, dry_env.list_installed(), plan)
    simulated = executor.execute(dry_env, dry_decision, dry_run=True)
    assert dry_env.history == []

    real_env = InMemoryEnvironment(installed)
    real_decision = SyncPolicyResolver().resolve(mode, real_env.list_installed(), plan)
    actual = executor.execute(real_env, real_decision)

    assert _summary(simulated) == _summary(actual)


def test_force_sync_reinstalls_matching_version(make_ref, make_installed):
    env = InMemoryEnvironment([make_installed("X", "1.0")])
    plan = (make_ref("X", "1.0"),)
    decision = SyncPolicyResolver().resolve(SyncMode.FORCE_SYNC, env.list_installed(), plan)

    outcomes = DeploymentExecutor().execute(env, decision)

    assert _summary(outcomes) == [("X", "uninstall", "uninstalled"), ("X", "install", "installed")]
    assert [o.action for o in outcomes] == [Action.UNINSTALL, Action.INSTALL]
