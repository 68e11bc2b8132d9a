"""Run reporting.

Renders the outcome of every task in a run, so operators see each
independent failure (and what it blocked) in one pass.
"""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from fleetform.orchestration.state import ExecutionResult, RunStatus, TaskState, TaskStatus
from fleetform.targets.dryrun import PlannedChange

_STATUS_STYLE: dict[TaskStatus, str] = {
    TaskStatus.SUCCEEDED: "green",
    TaskStatus.FAILED: "red",
    TaskStatus.SKIPPED: "yellow",
}

_RUN_STYLE: dict[RunStatus, str] = {
    RunStatus.SUCCEEDED: "green",
    RunStatus.FAILED: "red",
    RunStatus.CANCELLED: "yellow",
}


def describe(state: TaskState) -> str:
    """One-line explanation of a task's terminal state."""
    if state.status == TaskStatus.FAILED:
        return f"{state.error_type}: {state.error}"
    if state.status == TaskStatus.SKIPPED:
        return f"dependency failed: {', '.join(state.blocked_by)}"
    if state.warnings:
        return "; ".join(state.warnings)
    return ""


def summarize(result: ExecutionResult) -> list[str]:
    """Plain-text report, one line per task in level order, then a totals line."""
    lines: list[str] = []
    for keys in result.levels:
        for key in keys:
            state = result.tasks[key]
            detail = describe(state)
            line = f"[{state.level}] {key}: {state.status.value}"
            lines.append(f"{line} ({detail})" if detail else line)
    lines.append(
        f"run {result.run_id} {result.status.value}: "
        f"{len(result.succeeded())} succeeded, {len(result.failed())} failed, "
        f"{len(result.skipped())} skipped"
    )
    return lines


def render_result(result: ExecutionResult, console: Console | None = None) -> None:
    console = console or Console()

    table = Table(title=f"Run {result.run_id}")
    table.add_column("Level", justify="right")
    table.add_column("Task", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")

    for keys in result.levels:
        for key in keys:
            state = result.tasks[key]
            style = _STATUS_STYLE.get(state.status, "")
            table.add_row(
                str(state.level),
                key,
                f"[{style}]{state.status.value}[/{style}]" if style else state.status.value,
                escape(describe(state)),
            )
    console.print(table)

    style = _RUN_STYLE.get(result.status, "bold")
    console.print(
        f"[{style}]{result.status.value}[/{style}]: "
        f"{len(result.succeeded())} succeeded, {len(result.failed())} failed, "
        f"{len(result.skipped())} skipped"
    )


def render_plan(changes: Iterable[PlannedChange], console: Console | None = None) -> None:
    console = console or Console()
    changes = list(changes)
    if not changes:
        console.print("[green]No changes.[/green]")
        return

    table = Table(title="Planned changes")
    table.add_column("Action")
    table.add_column("Task", style="cyan")
    table.add_column("Fields")

    for change in changes:
        action = "[green]create[/green]" if change.action == "create" else "[yellow]modify[/yellow]"
        table.add_row(action, change.key, ", ".join(sorted(change.changes)))
    console.print(table)
