"""Unit tests — DependencyGraph."""

from __future__ import annotations

import random

import pytest
from sample_tasks import Instance, LaunchTemplate, Network, Step, Subnet

from fleetform.exceptions import DependencyCycleError, DependencyNotFoundError
from fleetform.orchestration.graph import DependencyGraph, ExecutionLevel, build_graph
from fleetform.tasks.base import TaskSet


def _graph(edges: dict[str, list[str]]) -> DependencyGraph:
    return DependencyGraph(edges)


def _levels(graph: DependencyGraph) -> list[list[str]]:
    return [list(level.keys) for level in graph.levels]


@pytest.mark.unit
class TestLevels:
    def test_single_task(self) -> None:
        graph = _graph({"a": []})
        assert graph.levels == [ExecutionLevel(index=0, keys=("a",))]

    def test_independent_tasks_share_level_zero(self) -> None:
        assert _levels(_graph({"c": [], "a": [], "b": []})) == [["a", "b", "c"]]

    def test_diamond(self) -> None:
        graph = _graph({"A": [], "B": ["A"], "C": ["A"], "D": ["B", "C"]})
        assert _levels(graph) == [["A"], ["B", "C"], ["D"]]

    def test_level_follows_longest_chain(self) -> None:
        # d depends on a directly and on c through a -> b -> c.
        graph = _graph({"a": [], "b": ["a"], "c": ["b"], "d": ["a", "c"], "e": []})
        assert graph.level_of("d") == 3
        assert graph.level_of("e") == 0
        assert _levels(graph) == [["a", "e"], ["b"], ["c"], ["d"]]

    def test_every_task_is_above_its_dependencies(self) -> None:
        rng = random.Random(7)
        keys = [f"t{i:02d}" for i in range(40)]
        edges = {
            key: rng.sample(keys[:i], k=min(i, rng.randint(0, 3)))
            for i, key in enumerate(keys)
        }
        graph = _graph(edges)
        assert sorted(graph.topological_order()) == sorted(keys)
        for key, deps in edges.items():
            for dep in deps:
                assert graph.level_of(dep) < graph.level_of(key)

    def test_no_intra_level_dependencies(self) -> None:
        graph = _graph({"a": [], "b": ["a"], "c": ["a"], "d": ["b"], "e": ["c", "a"]})
        for level in graph.levels:
            for key in level.keys:
                assert not set(graph.dependencies(key)) & set(level.keys)

    def test_rebuilding_is_deterministic(self, chain: TaskSet) -> None:
        first = DependencyGraph.from_tasks(chain)
        second = DependencyGraph.from_tasks(chain)
        assert first.levels == second.levels

    def test_insertion_order_does_not_matter(self) -> None:
        edges = {"a": [], "b": ["a"], "c": ["a"], "d": ["b", "c"]}
        reversed_edges = dict(reversed(list(edges.items())))
        assert _graph(edges).levels == _graph(reversed_edges).levels


@pytest.mark.unit
class TestFromTasks:
    def test_network_subnet_instance(self, chain: TaskSet) -> None:
        graph = build_graph(chain)
        assert _levels(graph) == [["net"], ["sub"], ["vm"]]
        assert graph.edges() == {"net": [], "sub": ["net"], "vm": ["sub"]}

    def test_from_iterable_of_tasks(self) -> None:
        net = Network(name="net")
        sub = Subnet(name="sub", network=net)
        graph = build_graph([sub, net])
        assert _levels(graph) == [["Network/net"], ["Subnet/sub"]]

    def test_mixed_explicit_and_inferred(self) -> None:
        net = Network(name="net")
        lt = LaunchTemplate(name="lt", depends_on=["Network/net"])
        vm = Instance(name="vm")
        graph = build_graph([net, lt, vm])
        assert _levels(graph) == [["Instance/vm", "Network/net"], ["LaunchTemplate/lt"]]


@pytest.mark.unit
class TestCycleDetection:
    def test_two_node_cycle(self) -> None:
        with pytest.raises(DependencyCycleError) as exc:
            _graph({"A": ["B"], "B": ["A"]})
        assert set(exc.value.cycle) == {"A", "B"}
        assert len(exc.value.cycle) == 2

    def test_cycle_path_is_reported_in_dependency_order(self) -> None:
        with pytest.raises(DependencyCycleError) as exc:
            _graph({"a": ["b"], "b": ["c"], "c": ["a"], "root": [], "x": ["root"]})
        cycle = exc.value.cycle
        assert set(cycle) == {"a", "b", "c"}
        # each key depends on the next one
        edges = {"a": "b", "b": "c", "c": "a"}
        for i, key in enumerate(cycle):
            assert edges[key] == cycle[(i + 1) % len(cycle)]
        assert " -> " in exc.value.message

    def test_cycle_excludes_nodes_outside_the_loop(self) -> None:
        with pytest.raises(DependencyCycleError) as exc:
            _graph({"entry": [], "a": ["entry", "b"], "b": ["a"]})
        assert set(exc.value.cycle) == {"a", "b"}

    def test_self_dependency(self) -> None:
        with pytest.raises(DependencyCycleError) as exc:
            _graph({"a": ["a"]})
        assert exc.value.cycle == ["a"]

    def test_cycle_between_tasks(self) -> None:
        a = Step(name="a")
        b = Step(name="b", deps=[a])
        a.deps.append(b)
        with pytest.raises(DependencyCycleError) as exc:
            build_graph([a, b])
        assert set(exc.value.cycle) == {"Step/a", "Step/b"}


@pytest.mark.unit
class TestValidation:
    def test_dangling_dependency_key(self) -> None:
        with pytest.raises(DependencyNotFoundError) as exc:
            _graph({"a": ["missing"]})
        assert exc.value.task_key == "a"


@pytest.mark.unit
class TestGraphQueries:
    @pytest.fixture
    def graph(self) -> DependencyGraph:
        return _graph({"root": [], "mid": ["root"], "leaf": ["mid"], "side": ["root"], "lone": []})

    def test_dependencies_and_dependents(self, graph: DependencyGraph) -> None:
        assert graph.dependencies("leaf") == ["mid"]
        assert graph.dependents("root") == ["mid", "side"]

    def test_ancestors_and_descendants(self, graph: DependencyGraph) -> None:
        assert graph.ancestors("leaf") == {"root", "mid"}
        assert graph.descendants("root") == {"mid", "leaf", "side"}

    def test_is_independent(self, graph: DependencyGraph) -> None:
        assert graph.is_independent("side", "leaf")
        assert not graph.is_independent("root", "leaf")

    def test_membership(self, graph: DependencyGraph) -> None:
        assert "lone" in graph
        assert "ghost" not in graph
        assert len(graph) == 5
        assert graph.keys() == ["leaf", "lone", "mid", "root", "side"]
