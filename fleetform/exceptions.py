"""Fleetform — Exception hierarchy.

All exceptions raised by the engine inherit from FleetformError so that
callers can catch the full family with a single except clause when needed.

Hierarchy:
    FleetformError
    ├── ConstructionError
    │   ├── DuplicateTaskError
    │   ├── DependencyNotFoundError
    │   ├── UnclassifiableValueError
    │   └── DependencyCycleError
    ├── ExecutionError
    │   ├── InvalidTransitionError
    │   ├── TaskCancelledError
    │   └── RunFailedError
    └── RenderError
        ├── AccessDeniedError
        ├── ResourceNotFoundError
        └── ValidationDriftError

Construction errors abort a run before anything is dispatched.  Render
errors are recorded against the task that raised them.
"""

from __future__ import annotations

from typing import Any


class FleetformError(Exception):
    """Base exception for all Fleetform errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Construction — raised while resolving dependencies / building the graph
# ---------------------------------------------------------------------------


class ConstructionError(FleetformError):
    """Base for errors that prevent a run from starting."""


class DuplicateTaskError(ConstructionError):
    """Two tasks in the same task set share a key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Duplicate task key: '{key}'", context={"key": key})
        self.key = key


class DependencyNotFoundError(ConstructionError):
    """A task references a dependency that is not part of the task set."""

    def __init__(self, task_key: str, dependency: str) -> None:
        super().__init__(
            f"Task '{task_key}' depends on {dependency}, which is not in the task set",
            context={"task_key": task_key, "dependency": dependency},
        )
        self.task_key = task_key
        self.dependency = dependency


class UnclassifiableValueError(ConstructionError):
    """A value reachable from a task's fields has no known dependency meaning."""

    def __init__(self, task_key: str, path: str, type_name: str) -> None:
        super().__init__(
            f"Unhandled type for '{path}' in task '{task_key}': {type_name}",
            context={"task_key": task_key, "path": path, "type": type_name},
        )
        self.task_key = task_key
        self.path = path
        self.type_name = type_name


class DependencyCycleError(ConstructionError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        path = cycle + cycle[:1] if cycle else []
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(path)}",
            context={"cycle": cycle},
        )
        self.cycle = cycle


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ExecutionError(FleetformError):
    """Base for errors produced by the executor itself."""


class InvalidTransitionError(ExecutionError):
    """A task state change that the state machine does not allow."""

    def __init__(self, task_key: str, current: str, requested: str) -> None:
        super().__init__(
            f"Task '{task_key}' cannot move from {current} to {requested}",
            context={"task_key": task_key, "current": current, "requested": requested},
        )
        self.task_key = task_key
        self.current = current
        self.requested = requested


class TaskCancelledError(ExecutionError):
    """The run was cancelled before this task could finish."""

    def __init__(self, task_key: str) -> None:
        super().__init__("cancelled", context={"task_key": task_key})
        self.task_key = task_key


class RunFailedError(ExecutionError):
    """One or more tasks failed.  Raised by ``ExecutionResult.raise_for_failures``."""

    def __init__(self, run_id: str, failures: dict[str, str]) -> None:
        listing = "; ".join(f"{key}: {error}" for key, error in sorted(failures.items()))
        super().__init__(
            f"Run '{run_id}' failed with {len(failures)} task error(s): {listing}",
            context={"run_id": run_id, "failures": failures},
        )
        self.run_id = run_id
        self.failures = failures


# ---------------------------------------------------------------------------
# Render — raised by tasks and targets while converging a single task
# ---------------------------------------------------------------------------


class RenderError(FleetformError):
    """Base for errors raised while rendering a task against a target."""


class AccessDeniedError(RenderError):
    """The target refused the operation for lack of permissions."""

    def __init__(self, task_key: str, operation: str = "apply") -> None:
        super().__init__(
            f"Access denied: cannot {operation} '{task_key}'",
            context={"task_key": task_key, "operation": operation},
        )
        self.task_key = task_key
        self.operation = operation


class ResourceNotFoundError(RenderError):
    """A lifecycle requiring an existing resource found nothing."""

    def __init__(self, task_key: str, lifecycle: str) -> None:
        super().__init__(
            f"Lifecycle set to {lifecycle} and resource '{task_key}' not found",
            context={"task_key": task_key, "lifecycle": lifecycle},
        )
        self.task_key = task_key
        self.lifecycle = lifecycle


class ValidationDriftError(RenderError):
    """An existing resource does not match its desired state."""

    def __init__(self, task_key: str, changes: dict[str, Any]) -> None:
        fields = ", ".join(sorted(changes))
        super().__init__(
            f"Resource '{task_key}' does not match desired state (fields: {fields})",
            context={"task_key": task_key, "changes": changes},
        )
        self.task_key = task_key
        self.changes = changes
