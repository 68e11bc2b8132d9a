"""Target layer — dry-run backend.

Records the changes a run would make instead of making them.  Actual state
is read from an optional backing target; without one every resource is
treated as missing, so every task plans a create.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from fleetform.logging import get_logger
from fleetform.targets.base import Target

if TYPE_CHECKING:
    from fleetform.tasks.base import Task, TaskSet

log = get_logger(__name__)


@dataclass
class PlannedChange:
    """One intended create or modify."""

    key: str
    kind: str
    action: Literal["create", "modify"]
    changes: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind,
            "action": self.action,
            "changes": self.changes,
        }


class DryRunTarget(Target):
    """Target that never mutates anything.

    Usage::

        target = DryRunTarget(backing=cloud_target)
        await TaskExecutor(target).run(tasks)
        render_plan(target.changes)
    """

    def __init__(self, backing: Target | None = None) -> None:
        self._backing = backing
        self._planned: dict[str, PlannedChange] = {}

    async def find(self, task: Task) -> dict[str, Any] | None:
        if self._backing is None:
            return None
        return await self._backing.find(task)

    async def apply(
        self, task: Task, actual: dict[str, Any] | None, changes: dict[str, Any]
    ) -> None:
        self._planned[task.key] = PlannedChange(
            key=task.key,
            kind=type(task).__name__,
            action="create" if actual is None else "modify",
            changes=dict(changes),
        )

    async def finish(self, tasks: TaskSet) -> None:
        changes = self.changes
        log.info(
            "dry_run_complete",
            creates=sum(1 for c in changes if c.action == "create"),
            modifies=sum(1 for c in changes if c.action == "modify"),
            task_count=len(tasks),
        )

    @property
    def changes(self) -> list[PlannedChange]:
        """Planned changes ordered by task key."""
        return [self._planned[k] for k in sorted(self._planned)]

    def has_changes(self) -> bool:
        return bool(self._planned)
