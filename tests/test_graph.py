"""Tests for dependency graph construction and ordering."""

import pytest
from conftest import descriptor

from stratum.core.errors import ConfigurationError, CycleError
from stratum.planning.graph import build_plan, find_cycle, topological_order


def scenario():
    return [
        descriptor("service", "AIService", deps=["database", "cluster"]),
        descriptor("cluster", "ComputeCluster", deps=["network"]),
        descriptor("database", "Database", deps=["network"]),
        descriptor("network", "Network"),
    ]


class TestBuildPlan:
    """Tests for build_plan ordering."""

    def test_dependencies_precede_dependents(self):
        plan = build_plan(scenario())
        order = plan.ids

        for d in plan:
            for dep in d.depends_on:
                assert order.index(dep) < order.index(d.id)

    def test_scenario_order(self):
        """Network first, service last, ties broken by identifier."""
        plan = build_plan(scenario())
        assert plan.ids == ["network", "cluster", "database", "service"]

    def test_order_is_deterministic_regardless_of_input_order(self):
        forward = build_plan(scenario()).ids
        backward = build_plan(list(reversed(scenario()))).ids
        assert forward == backward

    def test_independent_resources_sorted_by_id(self):
        plan = build_plan([descriptor("c"), descriptor("a"), descriptor("b")])
        assert plan.ids == ["a", "b", "c"]

    def test_empty_plan(self):
        plan = build_plan([])
        assert len(plan) == 0
        assert plan.ids == []

    def test_dependents_and_dependencies(self):
        plan = build_plan(scenario())
        assert plan.dependencies("service") == ("cluster", "database")
        assert plan.dependents("network") == ("cluster", "database")
        assert plan.dependents("service") == ()
        assert plan.reversed_ids()[0] == "service"
        assert "network" in plan
        assert "missing" not in plan

    def test_self_dependency_is_a_cycle_naming_the_resource(self):
        with pytest.raises(CycleError) as exc_info:
            build_plan([descriptor("db", "Database", deps=["db"])])

        assert exc_info.value.cycle == ["db"]
        assert "db" in str(exc_info.value)

    def test_cycle_reported_deterministically(self):
        descriptors = [
            descriptor("a", deps=["c"]),
            descriptor("b", deps=["a"]),
            descriptor("c", deps=["b"]),
            descriptor("d"),
        ]
        first = pytest.raises(CycleError, build_plan, descriptors).value
        second = pytest.raises(CycleError, build_plan, list(reversed(descriptors))).value

        assert first.cycle == second.cycle
        assert first.cycle[0] == "a"
        assert set(first.cycle) == {"a", "b", "c"}
        assert "Dependency cycle detected: a -> " in first.message

    def test_cycle_error_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            build_plan([descriptor("x", deps=["y"]), descriptor("y", deps=["x"])])

    def test_unknown_dependency_rejected(self):
        with pytest.raises(ConfigurationError, match="unknown resources: ghost"):
            build_plan([descriptor("a", deps=["ghost"])])

    def test_duplicate_id_rejected(self):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            build_plan([descriptor("a"), descriptor("a", "Database")])


class TestTopologicalOrder:
    """Tests for the raw ordering helper used by teardown."""

    def test_ignore_missing_drops_dangling_edges(self):
        order = topological_order({"b": ["a", "gone"], "a": []}, ignore_missing=True)
        assert order == ["a", "b"]

    def test_missing_raises_by_default(self):
        with pytest.raises(ConfigurationError):
            topological_order({"b": ["gone"]})

    def test_find_cycle_rotates_to_smallest(self):
        remaining = {"z": {"y"}, "y": {"x"}, "x": {"z"}}
        assert find_cycle(remaining) == ["x", "z", "y"]
