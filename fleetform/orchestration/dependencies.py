"""Orchestration layer — Dependency resolver.

Most tasks never declare their dependencies.  Instead the resolver walks
each task's fields and classifies every reachable value:

    None / scalars / strings        no dependency, not descended into
    list, tuple, set, mapping       transparent, elements are walked
    HasDependencies                 asked for its dependencies, not walked
    Task                            is a dependency, not walked
    Resource                        ignored (data produced by some task)
    anything else                   UnclassifiableValueError

``HasDependencies`` is checked before ``Task``: a task that also declares
explicit dependencies contributes those and never itself.

Tasks that implement ``HasDependencies`` at the top level skip the walk
entirely and their answer is used verbatim.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from datetime import date, time, timedelta
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from typing import Any

from fleetform.exceptions import DependencyNotFoundError, UnclassifiableValueError
from fleetform.logging import get_logger
from fleetform.tasks.base import HasDependencies, Resource, Task, TaskSet

log = get_logger(__name__)

# date covers datetime.
_SCALAR_TYPES: tuple[type, ...] = (
    str,
    bytes,
    bytearray,
    bool,
    int,
    float,
    complex,
    Decimal,
    Enum,
    PurePath,
    date,
    time,
    timedelta,
)

_SEQUENCE_TYPES: tuple[type, ...] = (list, tuple, set, frozenset)


def find_task_dependencies(tasks: TaskSet | Mapping[str, Task]) -> dict[str, list[str]]:
    """Return a map from each task's key to the keys of its dependencies.

    Raises:
        DependencyNotFoundError: A dependency is not a member of *tasks*.
        UnclassifiableValueError: A task field holds a value of unknown kind.
    """
    task_set = TaskSet.coerce(tasks)
    edges: dict[str, list[str]] = {}

    for key, task in task_set.items():
        if isinstance(task, HasDependencies):
            dependencies = list(task.get_dependencies(task_set))
        else:
            dependencies = _DependencyWalker(task_set, key).walk_root(task)

        dependency_keys: list[str] = []
        for dep in dependencies:
            dep_key = task_set.key_of(dep)
            if dep_key is None:
                raise DependencyNotFoundError(key, _describe(dep))
            if dep_key not in dependency_keys:
                dependency_keys.append(dep_key)
        edges[key] = dependency_keys

    for key in sorted(edges):
        log.debug("task_dependencies", key=key, depends_on=edges[key])

    return edges


def find_dependencies(tasks: TaskSet | Mapping[str, Task], obj: Any) -> list[Task]:
    """Infer the dependencies of an arbitrary object (task or not)."""
    task_set = TaskSet.coerce(tasks)
    if isinstance(obj, HasDependencies):
        return list(obj.get_dependencies(task_set))
    return _DependencyWalker(task_set, _describe(obj)).walk_root(obj)


class _DependencyWalker:
    """Collects the dependencies reachable from one root object."""

    def __init__(self, tasks: TaskSet, owner: str) -> None:
        self._tasks = tasks
        self._owner = owner
        self._found: list[Task] = []
        self._found_ids: set[int] = set()
        self._visiting: set[int] = set()

    def walk_root(self, root: Any) -> list[Task]:
        # The root is never its own dependency, so it is only unpacked.
        name = type(root).__name__
        for field_name, value in _exposed_fields(root, self._owner):
            self._visit(value, f"{name}.{field_name}")
        return self._found

    def _visit(self, value: Any, path: str) -> None:
        if value is None or isinstance(value, _SCALAR_TYPES):
            return

        if isinstance(value, HasDependencies):
            self._add(value.get_dependencies(self._tasks))
            return
        if isinstance(value, Task):
            self._add([value])
            return
        if isinstance(value, Resource):
            return

        if isinstance(value, Mapping):
            with self._container(value) as fresh:
                if fresh:
                    for k, item in value.items():
                        self._visit(item, f"{path}[{k!r}]")
            return
        if isinstance(value, _SEQUENCE_TYPES):
            with self._container(value) as fresh:
                if fresh:
                    for i, item in enumerate(value):
                        self._visit(item, f"{path}[{i}]")
            return

        raise UnclassifiableValueError(self._owner, path, type(value).__name__)

    def _add(self, deps: list[Task]) -> None:
        for dep in deps:
            if id(dep) not in self._found_ids:
                self._found_ids.add(id(dep))
                self._found.append(dep)

    def _container(self, value: Any) -> _Visiting:
        return _Visiting(self._visiting, id(value))


class _Visiting:
    """Guards against containers that (indirectly) contain themselves."""

    def __init__(self, visiting: set[int], ident: int) -> None:
        self._visiting = visiting
        self._ident = ident
        self._fresh = False

    def __enter__(self) -> bool:
        self._fresh = self._ident not in self._visiting
        self._visiting.add(self._ident)
        return self._fresh

    def __exit__(self, *exc: object) -> None:
        if self._fresh:
            self._visiting.discard(self._ident)


def _exposed_fields(obj: Any, owner: str) -> list[tuple[str, Any]]:
    """Public fields of a dataclass, or public instance attributes of a plain object."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        names = [f.name for f in dataclasses.fields(obj)]
    elif hasattr(obj, "__dict__"):
        names = list(vars(obj))
    else:
        raise UnclassifiableValueError(owner, type(obj).__name__, type(obj).__name__)
    return [(n, getattr(obj, n)) for n in names if not n.startswith("_")]


def _describe(obj: Any) -> str:
    if isinstance(obj, Task):
        return f"task '{obj.key}'"
    return f"{type(obj).__name__} object"
