"""Task layer — desired/actual convergence.

:class:`DeltaTask` is the default base for tasks whose whole job is "make
the resource look like my fields".  Its ``render`` delegates to
:func:`converge`, which is where the lifecycle policy is evaluated:

    Sync / Normal               apply any difference
    Ignore                      do nothing, not even a lookup
    ExistsAndWarnIfChanges      must exist; differences are warnings
    ExistsAndValidates          must exist and match exactly
    WarnIfInsufficientAccess    apply, but access denial is a warning

The executor never interprets the lifecycle itself; it only records the
outcome ``converge`` reports.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from enum import Enum
from typing import Any

from fleetform.exceptions import (
    AccessDeniedError,
    ResourceNotFoundError,
    ValidationDriftError,
)
from fleetform.logging import get_logger
from fleetform.tasks.base import Lifecycle, RenderContext, Resource, Task

log = get_logger(__name__)

# Fields that describe the task itself rather than the resource.
_META_FIELDS = frozenset({"name", "lifecycle"})


class DeltaTask(Task):
    """Task rendered by diffing :meth:`desired_state` against the target."""

    def desired_state(self) -> dict[str, Any]:
        """Return the resource fields this task wants, as plain data."""
        if not dataclasses.is_dataclass(self):
            raise TypeError(f"{type(self).__name__} must be a dataclass or override desired_state()")
        return {
            f.name: _plain(getattr(self, f.name))
            for f in dataclasses.fields(self)
            if not f.name.startswith("_") and f.name not in _META_FIELDS
        }

    def check_changes(self, actual: dict[str, Any] | None, changes: dict[str, Any]) -> None:
        """Hook to reject changes the backend cannot make (e.g. immutable fields)."""

    async def render(self, context: RenderContext) -> None:
        await converge(self, context)


def compute_changes(
    actual: dict[str, Any] | None, desired: dict[str, Any]
) -> dict[str, Any]:
    """Return the desired values of every field that differs from *actual*."""
    if actual is None:
        return dict(desired)
    return {k: v for k, v in desired.items() if actual.get(k) != v}


async def converge(task: DeltaTask, context: RenderContext) -> None:
    """Bring *task*'s resource in line with its desired state, honouring its lifecycle."""
    lifecycle = task.get_lifecycle()
    key = context.task_key

    if lifecycle == Lifecycle.IGNORE:
        log.debug("lifecycle_ignore", key=key)
        return

    try:
        actual = await context.target.find(task)
    except AccessDeniedError as exc:
        if lifecycle == Lifecycle.WARN_IF_INSUFFICIENT_ACCESS:
            _warn(context, f"cannot read '{key}': {exc.message}")
            return
        raise

    changes = compute_changes(actual, task.desired_state())

    if lifecycle in (Lifecycle.EXISTS_AND_VALIDATES, Lifecycle.EXISTS_AND_WARN_IF_CHANGES):
        if actual is None:
            raise ResourceNotFoundError(key, lifecycle.value)
        if not changes:
            return
        if lifecycle == Lifecycle.EXISTS_AND_VALIDATES:
            raise ValidationDriftError(key, changes)
        _warn(context, f"'{key}' differs from desired state: {', '.join(sorted(changes))}")
        return

    if actual is not None and not changes:
        log.debug("no_changes", key=key)
        return

    task.check_changes(actual, changes)

    try:
        await context.target.apply(task, actual, changes)
    except AccessDeniedError as exc:
        if lifecycle == Lifecycle.WARN_IF_INSUFFICIENT_ACCESS:
            _warn(context, exc.message)
            return
        raise


def _warn(context: RenderContext, message: str) -> None:
    context.warn(message)
    log.warning("task_warning", key=context.task_key, message=message)


def _plain(value: Any) -> Any:
    if isinstance(value, Task):
        return value.key
    if isinstance(value, Resource):
        return value.as_string()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_plain(v) for v in value)
    return value
