"""Tests for stable topological ordering."""

import random

import pytest

from appdeploy.core.exceptions import CycleError
from appdeploy.planning.graph import DependencyGraphBuilder
from appdeploy.planning.planner import DeploymentPlanner, stable_topological_sort


def _plan(refs):
    return DeploymentPlanner().plan(DependencyGraphBuilder().build(refs))


def _names(plan):
    return [ref.identity.name for ref in plan]


def _assert_topological(plan):
    position = {ref.key: i for i, ref in enumerate(plan)}
    for ref in plan:
        for dep in ref.dependencies:
            if dep.key in position:
                assert position[dep.key] < position[ref.key], f"{dep.name} must precede {ref.identity.name}"


def test_dependencies_precede_dependents(make_ref):
    refs = [
        make_ref("App", deps=["Sales", "Base"]),
        make_ref("Sales", deps=["Base"]),
        make_ref("Base"),
    ]
    plan = _plan(refs)
    assert _names(plan) == ["Base", "Sales", "App"]
    _assert_topological(plan)


def test_independent_packages_keep_input_order(make_ref):
    refs = [make_ref("Zeta"), make_ref("Alpha"), make_ref("Mid")]
    assert _names(_plan(refs)) == ["Zeta", "Alpha", "Mid"]


def test_earliest_ready_package_is_chosen(make_ref):
    refs = [
        make_ref("C", deps=["B"]),
        make_ref("D"),
        make_ref("B"),
        make_ref("A", deps=["D"]),
    ]
    # D is ready before B in input order; C becomes ready once B is placed.
    assert _names(_plan(refs)) == ["D", "B", "C", "A"]


def test_plan_is_deterministic(make_ref):
    refs = [
        make_ref("App", deps=["Sales", "Purch"]),
        make_ref("Sales", deps=["Base"]),
        make_ref("Purch", deps=["Base"]),
        make_ref("Base"),
        make_ref("Tools"),
    ]
    first = _plan(refs)
    for _ in range(5):
        assert _plan(refs) == first


def test_random_acyclic_batches_are_valid_orders(make_ref):
    rng = random.Random(1234)
    for _ in range(25):
        count = rng.randint(1, 12)
        names = [f"P{i}" for i in range(count)]
        refs = []
        for i, name in enumerate(names):
            # Only depend on lower-numbered packages to stay acyclic
            deps = [n for n in names[:i] if rng.random() < 0.3]
            refs.append(make_ref(name, deps=deps))
        rng.shuffle(refs)
        plan = _plan(refs)
        assert sorted(_names(plan)) == sorted(names)
        _assert_topological(plan)
        assert _plan(refs) == plan


def test_cycle_produces_no_plan(make_ref):
    with pytest.raises(CycleError):
        _plan([make_ref("A", deps=["B"]), make_ref("B", deps=["A"])])


def test_stable_topological_sort_ignores_outside_prerequisites():
    prerequisites = {"b": ["a", "outside"], "a": [], "c": ["b", "b"]}
    order = stable_topological_sort(["c", "b", "a"], lambda n: prerequisites[n])
    assert order == ["a", "b", "c"]


def test_stable_topological_sort_raises_on_cycle():
    prerequisites = {"a": ["b"], "b": ["a"], "c": []}
    with pytest.raises(CycleError) as exc_info:
        stable_topological_sort(["a", "b", "c"], lambda n: prerequisites[n])
    assert exc_info.value.members == ["a", "b"]
