"""Task layer — Resource implementations.

Resources carry data a task renders (credentials, user-data, certificates).
They are never treated as ordering dependencies on their own; wrap one in
:class:`TaskDependentResource` when its content only exists after another
task has run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from fleetform.tasks.base import HasDependencies, Resource, Task, TaskSet


@dataclass(eq=False)
class StringResource(Resource):
    value: str

    def open(self) -> bytes:
        return self.value.encode("utf-8")

    def as_string(self) -> str:
        return self.value


@dataclass(eq=False)
class BytesResource(Resource):
    value: bytes

    def open(self) -> bytes:
        return self.value


@dataclass(eq=False)
class FileResource(Resource):
    """Content read lazily from a local file."""

    path: Path

    def open(self) -> bytes:
        return Path(self.path).read_bytes()


@dataclass(eq=False)
class TaskDependentResource(Resource, HasDependencies):
    """A resource whose content is produced by *task*.

    The owning task stores the rendered content with :meth:`set_content`.
    Reading before that happens raises ``RuntimeError``.
    """

    task: Task
    _content: bytes | None = field(default=None, repr=False)

    def get_dependencies(self, tasks: TaskSet) -> list[Task]:
        return [self.task]

    def set_content(self, content: bytes | str) -> None:
        self._content = content.encode("utf-8") if isinstance(content, str) else content

    def open(self) -> bytes:
        if self._content is None:
            raise RuntimeError(f"resource content from '{self.task.key}' is not available yet")
        return self._content
