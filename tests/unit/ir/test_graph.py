"""Unit tests for the service dependency graph."""

from __future__ import annotations

import logging

import pytest

from compose2kube.ir.graph import DependencyGraph, build_dependency_graph, find_cycles
from compose2kube.ir.models import ComposeModel, ImageRef, ServiceSpec


def model_with(edges: dict[str, list[str]]) -> ComposeModel:
    return ComposeModel(
        services={
            sid: ServiceSpec(id=sid, image=ImageRef.parse("busybox:1"), depends_on=deps)
            for sid, deps in edges.items()
        }
    )


class TestBuildDependencyGraph:
    def test_edges_and_reverse_edges(self) -> None:
        graph = build_dependency_graph(
            model_with({"web": ["api"], "api": ["db", "cache"], "db": [], "cache": []})
        )
        assert graph.nodes == ["api", "cache", "db", "web"]
        assert graph.dependencies_of("api") == ["db", "cache"]
        assert graph.dependents_of("db") == ["api"]
        assert graph.dependents_of("web") == []
        assert not graph.has_cycles

    def test_deployment_order_is_dependency_first(self) -> None:
        graph = build_dependency_graph(
            model_with({"web": ["api"], "api": ["db"], "db": [], "worker": ["db"]})
        )
        order = graph.deployment_order()
        assert order.index("db") < order.index("api") < order.index("web")
        assert order.index("db") < order.index("worker")
        assert sorted(order) == graph.nodes

    def test_mutual_cycle_is_recorded_not_raised(self) -> None:
        graph = build_dependency_graph(model_with({"a": ["b"], "b": ["a"]}))
        assert graph.has_cycles
        assert graph.cycles == [["a", "b"]]
        # a cyclic graph still yields a complete ordering hint
        assert sorted(graph.deployment_order()) == ["a", "b"]

    def test_debug_summary_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger="compose2kube.ir.graph")
        build_dependency_graph(model_with({"a": [], "b": ["a"]}))
        assert any("2 nodes, 1 edges, 0 cycles" in r.message for r in caplog.records)

    def test_graph_is_frozen(self) -> None:
        graph = DependencyGraph(nodes=["a"])
        with pytest.raises(Exception):
            graph.nodes = []  # type: ignore[misc]


class TestFindCycles:
    def test_three_node_cycle_starts_at_smallest_id(self) -> None:
        cycles = find_cycles(["a", "b", "c"], {"b": ["c"], "c": ["a"], "a": ["b"]})
        assert cycles == [["a", "b", "c"]]

    def test_independent_cycles(self) -> None:
        cycles = find_cycles(
            ["a", "b", "x", "y"], {"a": ["b"], "b": ["a"], "x": ["y"], "y": ["x"]}
        )
        assert cycles == [["a", "b"], ["x", "y"]]

    def test_acyclic(self) -> None:
        assert find_cycles(["a", "b"], {"a": ["b"], "b": []}) == []

    def test_same_result_regardless_of_edge_declaration_order(self) -> None:
        first = find_cycles(["a", "b", "c"], {"a": ["c", "b"], "b": ["a"], "c": ["a"]})
        second = find_cycles(["a", "b", "c"], {"a": ["b", "c"], "b": ["a"], "c": ["a"]})
        assert first == second == [["a", "b"], ["a", "c"]]
