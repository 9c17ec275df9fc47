"""
Service dependency graph derived from ``depends_on`` links.

Edges point from a service to each service it depends on. Cycles are
detected with an iterative depth-first search and reported, never
repaired in the IR; ordering hints simply skip back edges.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from compose2kube.ir.models import ComposeModel

logger = logging.getLogger(__name__)

_WHITE, _GREY, _BLACK = 0, 1, 2


class DependencyGraph(BaseModel):
    """Read-only relationship graph between services."""

    nodes: List[str] = Field(
        default_factory=list, description="Service ids, sorted."
    )
    edges: Dict[str, List[str]] = Field(
        default_factory=dict, description="service ➜ services it depends on."
    )
    cycles: List[List[str]] = Field(
        default_factory=list,
        description="Each detected cycle as the list of services on it.",
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)

    def dependencies_of(self, service_id: str) -> List[str]:
        return list(self.edges.get(service_id, []))

    def dependents_of(self, service_id: str) -> List[str]:
        """Services that declare a dependency on ``service_id`` (reversed edges)."""
        return sorted(n for n in self.nodes if service_id in self.edges.get(n, []))

    def deployment_order(self) -> List[str]:
        """
        Dependency-first ordering hint.

        Deterministic: roots are visited in sorted order and back edges
        (cycle members) are ignored, so a cyclic graph still yields an order.
        """
        order: list[str] = []
        state = {n: _WHITE for n in self.nodes}

        def visit(node: str) -> None:
            state[node] = _GREY
            for dep in sorted(self.edges.get(node, [])):
                if state[dep] == _WHITE:
                    visit(dep)
            state[node] = _BLACK
            order.append(node)

        for node in self.nodes:
            if state[node] == _WHITE:
                visit(node)
        return order


def find_cycles(nodes: List[str], edges: Dict[str, List[str]]) -> List[List[str]]:
    """
    Find elementary cycles reachable by DFS back edges.

    Each cycle is rotated so it starts at its smallest id, and duplicates
    are dropped, which keeps the result independent of traversal order.
    """
    state = {n: _WHITE for n in nodes}
    found: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()

    for root in nodes:
        if state[root] != _WHITE:
            continue
        path: list[str] = [root]
        stack = [iter(sorted(edges.get(root, [])))]
        state[root] = _GREY
        while stack:
            child = next(stack[-1], None)
            if child is None:
                stack.pop()
                state[path.pop()] = _BLACK
                continue
            if state[child] == _GREY:
                cycle = path[path.index(child) :]
                pivot = cycle.index(min(cycle))
                canonical = tuple(cycle[pivot:] + cycle[:pivot])
                if canonical not in seen:
                    seen.add(canonical)
                    found.append(list(canonical))
            elif state[child] == _WHITE:
                state[child] = _GREY
                path.append(child)
                stack.append(iter(sorted(edges.get(child, []))))
    return found


def build_dependency_graph(model: ComposeModel) -> DependencyGraph:
    """
    Derive the dependency graph from the IR.

    Args:
        model: Normalized compose model

    Returns:
        DependencyGraph with cycles recorded (not raised)
    """
    nodes = model.service_ids
    edges = {sid: list(model.services[sid].depends_on) for sid in nodes}
    cycles = find_cycles(nodes, edges)

    logger.debug(
        "Dependency graph: %d nodes, %d edges, %d cycles",
        len(nodes),
        sum(len(v) for v in edges.values()),
        len(cycles),
    )
    return DependencyGraph(nodes=nodes, edges=edges, cycles=cycles)


__all__ = ["DependencyGraph", "build_dependency_graph", "find_cycles"]
