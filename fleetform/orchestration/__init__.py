"""Orchestration layer — dependency resolver, graph builder, state machine, executor."""

from fleetform.orchestration.dependencies import find_dependencies, find_task_dependencies
from fleetform.orchestration.executor import TaskExecutor, run_tasks
from fleetform.orchestration.graph import DependencyGraph, ExecutionLevel, build_graph
from fleetform.orchestration.limiter import ConcurrencyLimiter
from fleetform.orchestration.state import ExecutionResult, RunStatus, TaskState, TaskStatus

__all__ = [
    "find_dependencies",
    "find_task_dependencies",
    "TaskExecutor",
    "run_tasks",
    "DependencyGraph",
    "ExecutionLevel",
    "build_graph",
    "ConcurrencyLimiter",
    "ExecutionResult",
    "RunStatus",
    "TaskState",
    "TaskStatus",
]
