"""Orchestration layer — Execution state machine.

Tracks the live status of every task in a run.  State is in-memory only;
levels and results are derived per run and never persisted.

State transitions:
    Run:   pending -> running -> succeeded | failed | cancelled
    Task:  pending -> ready -> running -> succeeded | failed
           pending | ready -> skipped   (an ancestor failed)
           pending | ready -> failed    (run cancelled before dispatch)

Each task's state is written only by the worker rendering that task (or by
the level barrier before/after dispatch), never by two workers at once.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from fleetform.exceptions import InvalidTransitionError, RunFailedError

if TYPE_CHECKING:
    from fleetform.orchestration.graph import DependencyGraph
    from fleetform.tasks.base import TaskSet


class TaskStatus(str, Enum):
    """Lifecycle status of a single task within a run."""

    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(str, Enum):
    """Overall status of a run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL = frozenset({TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.SKIPPED})

_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.READY, TaskStatus.SKIPPED, TaskStatus.FAILED}),
    TaskStatus.READY: frozenset({TaskStatus.RUNNING, TaskStatus.SKIPPED, TaskStatus.FAILED}),
    TaskStatus.RUNNING: frozenset({TaskStatus.SUCCEEDED, TaskStatus.FAILED}),
    TaskStatus.SUCCEEDED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.SKIPPED: frozenset(),
}


@dataclass
class TaskState:
    key: str
    kind: str = ""
    level: int = 0
    status: TaskStatus = TaskStatus.PENDING
    error: str | None = None
    error_type: str | None = None
    blocked_by: list[str] = field(default_factory=list)  # failed ancestors, for skips
    warnings: list[str] = field(default_factory=list)
    started_at: float | None = None
    finished_at: float | None = None
    attempts: int = 0

    def transition(self, status: TaskStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.key, self.status.value, status.value)
        self.status = status

    def start(self) -> None:
        self.transition(TaskStatus.RUNNING)
        self.attempts += 1
        self.started_at = time.time()

    def succeed(self, warnings: list[str] | None = None) -> None:
        self.transition(TaskStatus.SUCCEEDED)
        self.warnings = list(warnings or [])
        self.finished_at = time.time()

    def fail(self, error: BaseException, warnings: list[str] | None = None) -> None:
        self.transition(TaskStatus.FAILED)
        self.error = str(error) or type(error).__name__
        self.error_type = type(error).__name__
        self.warnings = list(warnings or [])
        self.finished_at = time.time()

    def skip(self, blocked_by: list[str]) -> None:
        self.transition(TaskStatus.SKIPPED)
        self.blocked_by = sorted(blocked_by)
        self.finished_at = time.time()

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind,
            "level": self.level,
            "status": self.status.value,
            "error": self.error,
            "error_type": self.error_type,
            "blocked_by": self.blocked_by,
            "warnings": self.warnings,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "attempts": self.attempts,
        }


@dataclass
class ExecutionResult:
    """Per-task outcome of a whole run."""

    run_id: str
    levels: list[list[str]] = field(default_factory=list)
    tasks: dict[str, TaskState] = field(default_factory=dict)
    status: RunStatus = RunStatus.PENDING
    started_at: float | None = None
    finished_at: float | None = None

    @classmethod
    def from_graph(
        cls, run_id: str, graph: DependencyGraph, tasks: TaskSet
    ) -> ExecutionResult:
        result = cls(run_id=run_id, levels=[list(level.keys) for level in graph.levels])
        for level in graph.levels:
            for key in level.keys:
                result.tasks[key] = TaskState(
                    key=key, kind=type(tasks[key]).__name__, level=level.index
                )
        return result

    def get(self, key: str) -> TaskState:
        return self.tasks[key]

    def finish(self, cancelled: bool = False) -> None:
        if cancelled:
            self.status = RunStatus.CANCELLED
        elif self.failed():
            self.status = RunStatus.FAILED
        else:
            self.status = RunStatus.SUCCEEDED
        self.finished_at = time.time()

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    def _with_status(self, status: TaskStatus) -> list[str]:
        return sorted(k for k, t in self.tasks.items() if t.status == status)

    def succeeded(self) -> list[str]:
        return self._with_status(TaskStatus.SUCCEEDED)

    def failed(self) -> list[str]:
        return self._with_status(TaskStatus.FAILED)

    def skipped(self) -> list[str]:
        return self._with_status(TaskStatus.SKIPPED)

    def pending(self) -> list[str]:
        return sorted(k for k, t in self.tasks.items() if not t.is_terminal)

    def failures(self) -> dict[str, str]:
        return {k: self.tasks[k].error or "" for k in self.failed()}

    def warnings(self) -> dict[str, list[str]]:
        return {k: list(t.warnings) for k, t in sorted(self.tasks.items()) if t.warnings}

    def raise_for_failures(self) -> None:
        failures = self.failures()
        if failures:
            raise RunFailedError(self.run_id, failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "levels": self.levels,
            "tasks": {key: state.to_dict() for key, state in self.tasks.items()},
        }
