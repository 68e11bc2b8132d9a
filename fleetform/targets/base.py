"""Target layer — backend interface.

A Target performs (or records) the provisioning action for a rendered task.
The executor calls tasks concurrently within a level, so implementations
must tolerate concurrent calls for distinct tasks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fleetform.tasks.base import Task, TaskSet


class Target(ABC):
    """Abstract backend every task renders against."""

    @abstractmethod
    async def find(self, task: Task) -> dict[str, Any] | None:
        """Return the actual state of *task*'s resource, or None if it does not exist."""

    @abstractmethod
    async def apply(
        self, task: Task, actual: dict[str, Any] | None, changes: dict[str, Any]
    ) -> None:
        """Create (``actual is None``) or update the resource with *changes*."""

    async def finish(self, tasks: TaskSet) -> None:
        """Called once after every level has run.  No-op by default."""
