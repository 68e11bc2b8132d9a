"""Task layer — capability contract.

Every provisionable operation subclasses :class:`Task`.  Concrete tasks are
plain dataclasses declared with ``eq=False`` so that identity, not field
equality, decides which task a reference points at::

    @dataclass(eq=False)
    class Subnet(Task):
        name: str
        network: Network
        cidr: str
        lifecycle: Lifecycle = Lifecycle.SYNC

        async def render(self, context: RenderContext) -> None:
            ...

Capabilities are closed and nominal: a value is a task, declares explicit
dependencies, or is a resource only if it subclasses the matching ABC.
"""

from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from fleetform.exceptions import DuplicateTaskError

if TYPE_CHECKING:
    from fleetform.targets.base import Target


class Lifecycle(str, Enum):
    """How a task treats drift between desired and actual state."""

    SYNC = "Sync"
    IGNORE = "Ignore"
    WARN_IF_INSUFFICIENT_ACCESS = "WarnIfInsufficientAccess"
    EXISTS_AND_VALIDATES = "ExistsAndValidates"
    EXISTS_AND_WARN_IF_CHANGES = "ExistsAndWarnIfChanges"

    # Alias of SYNC.
    NORMAL = "Sync"


class Task(ABC):
    """A uniquely identified unit of infrastructure intent.

    Subclasses provide a ``name`` attribute (used to derive :attr:`key`) and
    may set ``lifecycle``; the class-level default is :attr:`Lifecycle.SYNC`.
    """

    name: str
    lifecycle: Lifecycle = Lifecycle.SYNC

    @property
    def key(self) -> str:
        return f"{type(self).__name__}/{self.name}"

    def get_lifecycle(self) -> Lifecycle:
        return self.lifecycle

    def set_lifecycle(self, lifecycle: Lifecycle) -> None:
        self.lifecycle = lifecycle

    @abstractmethod
    async def render(self, context: RenderContext) -> None:
        """Apply or diff this task's desired state against ``context.target``."""

    def __str__(self) -> str:
        return task_as_string(self)


class HasDependencies(ABC):
    """Explicit dependency declaration.

    Values implementing this are asked for their dependencies instead of
    being inspected structurally.
    """

    @abstractmethod
    def get_dependencies(self, tasks: TaskSet) -> list[Task]:
        ...


class NotADependency(HasDependencies):
    """Marker base for value types that never contribute a dependency."""

    def get_dependencies(self, tasks: TaskSet) -> list[Task]:
        return []


class Resource(ABC):
    """Data produced as a side effect of rendering some task.

    Resources are not ordering dependencies unless they also implement
    :class:`HasDependencies`.
    """

    @abstractmethod
    def open(self) -> bytes:
        ...

    def as_string(self) -> str:
        return self.open().decode("utf-8")


class TaskSet(Mapping[str, Task]):
    """Immutable mapping of task key to task, built once per run."""

    def __init__(self, tasks: Mapping[str, Task] | Iterable[Task] = ()) -> None:
        self._tasks: dict[str, Task] = {}
        if isinstance(tasks, Mapping):
            items: Iterable[tuple[str, Task]] = tasks.items()
        else:
            items = ((task.key, task) for task in tasks)
        for key, task in items:
            if key in self._tasks:
                raise DuplicateTaskError(key)
            self._tasks[key] = task
        self._keys_by_id: dict[int, str] = {id(t): k for k, t in self._tasks.items()}

    @classmethod
    def coerce(cls, tasks: TaskSet | Mapping[str, Task] | Iterable[Task]) -> TaskSet:
        if isinstance(tasks, TaskSet):
            return tasks
        return cls(tasks)

    def __getitem__(self, key: str) -> Task:
        return self._tasks[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def __repr__(self) -> str:
        return f"TaskSet({sorted(self._tasks)})"

    def key_of(self, task: object) -> str | None:
        """Return the key under which *task* (by identity) is registered."""
        return self._keys_by_id.get(id(task))


@dataclass
class RenderContext:
    """Contextual information passed to every ``Task.render`` call.

    One context is created per task per run, so ``warnings`` only ever
    holds the messages of the task being rendered.
    """

    target: Target
    tasks: TaskSet
    run_id: str
    task_key: str
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        self.warnings.append(message)


def task_as_string(task: Task) -> str:
    """Readable one-line rendering: ``Type/name {field: value, ...}``.

    Referenced tasks are shown by key rather than expanded.
    """
    parts: list[str] = []
    if dataclasses.is_dataclass(task):
        for f in dataclasses.fields(task):
            if f.name.startswith("_") or f.name in ("name", "lifecycle"):
                continue
            parts.append(f"{f.name}: {_short(getattr(task, f.name))}")
    return f"{task.key} {{{', '.join(parts)}}}"


def _short(value: Any) -> str:
    if isinstance(value, Task):
        return value.key
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_short(v) for v in value) + "]"
    if isinstance(value, Mapping):
        return "{" + ", ".join(f"{k}: {_short(v)}" for k, v in value.items()) + "}"
    if isinstance(value, Resource):
        return f"<{type(value).__name__}>"
    return repr(value)
