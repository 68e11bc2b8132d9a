"""Orchestration layer — Dependency graph.

Builds a NetworkX DiGraph from resolved task dependencies and partitions
it into execution levels.

A "level" is a batch of tasks whose dependencies all live in strictly
earlier levels.  Each task is placed in the lowest level its longest
dependency chain allows, so a task waits only as long as its slowest
ancestor requires.  Keys within a level are sorted, which makes the
partition deterministic for a given task set.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass

import networkx as nx

from fleetform.exceptions import DependencyCycleError, DependencyNotFoundError
from fleetform.logging import get_logger
from fleetform.orchestration.dependencies import find_task_dependencies
from fleetform.tasks.base import Task, TaskSet

log = get_logger(__name__)


@dataclass(frozen=True)
class ExecutionLevel:
    """A batch of task keys that can run concurrently."""

    index: int
    keys: tuple[str, ...]

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys)

    def __len__(self) -> int:
        return len(self.keys)


class DependencyGraph:
    """Validated dependency graph over task keys.

    Usage::

        graph = DependencyGraph.from_tasks(tasks)
        for level in graph.levels:
            # every key in `level` may run concurrently
    """

    def __init__(self, edges: Mapping[str, Iterable[str]]) -> None:
        self._graph = self._build_graph(edges)
        self._level_of = self._assign_levels(self._graph)
        self._levels = self._group_levels(self._level_of)
        log.debug(
            "dependency_graph_built",
            task_count=self._graph.number_of_nodes(),
            edge_count=self._graph.number_of_edges(),
            level_count=len(self._levels),
        )

    @classmethod
    def from_tasks(cls, tasks: TaskSet | Mapping[str, Task] | Iterable[Task]) -> DependencyGraph:
        return cls(find_task_dependencies(TaskSet.coerce(tasks)))

    @staticmethod
    def _build_graph(edges: Mapping[str, Iterable[str]]) -> nx.DiGraph:
        # Edges point from dependency to dependent.
        graph: nx.DiGraph = nx.DiGraph()
        for key in sorted(edges):
            graph.add_node(key)
        for key in sorted(edges):
            for dep in edges[key]:
                if dep not in edges:
                    raise DependencyNotFoundError(key, f"'{dep}'")
                graph.add_edge(dep, key)

        if not nx.is_directed_acyclic_graph(graph):
            raise DependencyCycleError(_find_cycle(graph))

        return graph

    @staticmethod
    def _assign_levels(graph: nx.DiGraph) -> dict[str, int]:
        level_of: dict[str, int] = {}
        for key in nx.lexicographical_topological_sort(graph):
            level_of[key] = 1 + max(
                (level_of[dep] for dep in graph.predecessors(key)), default=-1
            )
        return level_of

    @staticmethod
    def _group_levels(level_of: Mapping[str, int]) -> list[ExecutionLevel]:
        buckets: dict[int, list[str]] = {}
        for key, level in level_of.items():
            buckets.setdefault(level, []).append(key)
        return [
            ExecutionLevel(index=i, keys=tuple(sorted(buckets[i])))
            for i in range(len(buckets))
        ]

    @property
    def levels(self) -> list[ExecutionLevel]:
        return list(self._levels)

    def level_of(self, key: str) -> int:
        return self._level_of[key]

    def keys(self) -> list[str]:
        return sorted(self._graph.nodes)

    def __contains__(self, key: object) -> bool:
        return key in self._graph

    def __len__(self) -> int:
        return self._graph.number_of_nodes()

    def topological_order(self) -> list[str]:
        """Return all keys level by level."""
        return [key for level in self._levels for key in level.keys]

    def edges(self) -> dict[str, list[str]]:
        """Return each key's direct dependencies."""
        return {key: self.dependencies(key) for key in self.keys()}

    def dependencies(self, key: str) -> list[str]:
        """Return keys that *key* directly depends on."""
        return sorted(self._graph.predecessors(key))

    def dependents(self, key: str) -> list[str]:
        """Return keys that depend directly on *key*."""
        return sorted(self._graph.successors(key))

    def ancestors(self, key: str) -> set[str]:
        """Return all transitive dependencies of *key*."""
        return nx.ancestors(self._graph, key)

    def descendants(self, key: str) -> set[str]:
        """Return all transitive dependents of *key*."""
        return nx.descendants(self._graph, key)

    def is_independent(self, a: str, b: str) -> bool:
        """Return True if neither task transitively depends on the other."""
        return a not in self.ancestors(b) and b not in self.ancestors(a)


def build_graph(tasks: TaskSet | Mapping[str, Task] | Iterable[Task]) -> DependencyGraph:
    """Resolve dependencies for *tasks* and return the validated graph."""
    return DependencyGraph.from_tasks(tasks)


def _find_cycle(graph: nx.DiGraph) -> list[str]:
    """Return one cycle as an ordered key list, each key depending on the next."""
    cycle = nx.find_cycle(graph.reverse(copy=False))
    return [edge[0] for edge in cycle]
