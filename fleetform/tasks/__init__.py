"""Task layer — capability contract, resources and convergence helpers."""

from fleetform.tasks.base import (
    HasDependencies,
    Lifecycle,
    NotADependency,
    RenderContext,
    Resource,
    Task,
    TaskSet,
    task_as_string,
)
from fleetform.tasks.delta import DeltaTask, compute_changes, converge
from fleetform.tasks.resources import (
    BytesResource,
    FileResource,
    StringResource,
    TaskDependentResource,
)

__all__ = [
    "HasDependencies",
    "Lifecycle",
    "NotADependency",
    "RenderContext",
    "Resource",
    "Task",
    "TaskSet",
    "task_as_string",
    "DeltaTask",
    "compute_changes",
    "converge",
    "BytesResource",
    "FileResource",
    "StringResource",
    "TaskDependentResource",
]
