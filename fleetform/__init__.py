"""Fleetform — dependency-ordered, level-parallel infrastructure convergence."""

__version__ = "0.1.0"

from fleetform.orchestration import (
    DependencyGraph,
    ExecutionResult,
    TaskExecutor,
    TaskStatus,
    build_graph,
    run_tasks,
)
from fleetform.tasks import (
    DeltaTask,
    HasDependencies,
    Lifecycle,
    NotADependency,
    RenderContext,
    Resource,
    Task,
    TaskSet,
)

__all__ = [
    "__version__",
    "DependencyGraph",
    "ExecutionResult",
    "TaskExecutor",
    "TaskStatus",
    "build_graph",
    "run_tasks",
    "DeltaTask",
    "HasDependencies",
    "Lifecycle",
    "NotADependency",
    "RenderContext",
    "Resource",
    "Task",
    "TaskSet",
]
