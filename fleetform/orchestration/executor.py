"""Orchestration layer — Task executor.

The TaskExecutor drives a full convergence run:
  1. Build the task set and resolve dependencies (DependencyGraph)
  2. For each level, in ascending order:
     a. Skip tasks with a failed (or skipped) dependency
     b. Dispatch every remaining task concurrently, bounded by the limiter
     c. Record each task's outcome as its worker finishes
     d. Wait for the whole level before releasing the next one
  3. Mark never-dispatched tasks as cancelled if the run was stopped
  4. Let the target finish and report the complete ExecutionResult

Failure semantics:
  A failed task never aborts its siblings or unrelated branches.  Its
  transitive dependents are marked SKIPPED, each naming the failed
  ancestors that blocked it.  Every task runs at most once; retrying
  transient backend errors is the target's job.

Lifecycle:
  Each task carries its own lifecycle policy, evaluated at render time
  (see ``fleetform.tasks.delta.converge``).  The executor passes tasks to
  the target untouched and records whatever the render step reports.

Cancellation:
  Setting the ``cancel`` event, or exceeding ``run_timeout``, stops new
  levels from being dispatched.  In-flight tasks finish unless
  ``abandon_in_flight`` is set, in which case they are cancelled.  Either
  way, every task that did not finish is recorded as ``failed: cancelled``.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Iterable, Mapping

from fleetform.config import ExecutorConfig, Settings, get_settings
from fleetform.exceptions import TaskCancelledError
from fleetform.logging import bind_run_context, get_logger, run_context, setup_logging
from fleetform.orchestration.graph import DependencyGraph, ExecutionLevel
from fleetform.orchestration.limiter import ConcurrencyLimiter
from fleetform.orchestration.state import ExecutionResult, RunStatus, TaskStatus
from fleetform.targets.base import Target
from fleetform.tasks.base import RenderContext, Task, TaskSet

log = get_logger(__name__)


class TaskExecutor:
    """Runs a task set level by level against a target.

    Usage::

        executor = TaskExecutor(target, max_concurrency=8)
        result = await executor.run(tasks)
        result.raise_for_failures()

    Explicit keyword arguments override the matching ``Settings.executor``
    values and are validated the same way, so a bad limit raises
    ``pydantic.ValidationError`` here rather than stalling a run.
    """

    def __init__(
        self,
        target: Target,
        settings: Settings | None = None,
        max_concurrency: int | None = None,
        kind_limits: dict[str, int] | None = None,
        run_timeout: float | None = None,
        abandon_in_flight: bool | None = None,
    ) -> None:
        base = (settings or get_settings()).executor
        overrides = {
            "max_concurrency": max_concurrency,
            "kind_limits": kind_limits,
            "run_timeout_seconds": run_timeout,
            "abandon_in_flight": abandon_in_flight,
        }
        config = ExecutorConfig.model_validate(
            {**base.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
        )
        self._target = target
        self._max_concurrency = config.max_concurrency
        self._kind_limits = dict(config.kind_limits)
        self._run_timeout = config.run_timeout_seconds
        self._abandon_in_flight = config.abandon_in_flight

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def run(
        self,
        tasks: TaskSet | Mapping[str, Task] | Iterable[Task],
        cancel: asyncio.Event | None = None,
        run_id: str | None = None,
    ) -> ExecutionResult:
        """Execute *tasks* and return the complete :class:`ExecutionResult`.

        Raises:
            ConstructionError: The task set cannot be turned into a valid
                graph.  Nothing has been dispatched when this is raised.
        """
        run_id = run_id or uuid.uuid4().hex[:12]
        with run_context(run_id):
            return await self._run(tasks, cancel, run_id)

    async def _run(
        self,
        tasks: TaskSet | Mapping[str, Task] | Iterable[Task],
        cancel: asyncio.Event | None,
        run_id: str,
    ) -> ExecutionResult:
        task_set = TaskSet.coerce(tasks)
        graph = DependencyGraph.from_tasks(task_set)

        result = ExecutionResult.from_graph(run_id, graph, task_set)
        result.status = RunStatus.RUNNING
        result.started_at = time.time()
        log.info(
            "run_started",
            task_count=len(task_set),
            level_count=len(graph.levels),
            max_concurrency=self._max_concurrency,
        )

        limiter = ConcurrencyLimiter(self._max_concurrency, self._kind_limits)
        stop = asyncio.Event()
        watcher = self._start_watcher(stop, cancel)
        interrupted = False

        try:
            for level in graph.levels:
                if stop.is_set():
                    interrupted = True
                    break
                if await self._run_level(level, graph, task_set, result, limiter, stop):
                    interrupted = True
                    break
        finally:
            if watcher is not None:
                watcher.cancel()
                await asyncio.gather(watcher, return_exceptions=True)

        if interrupted:
            not_finished = result.pending()
            for key in not_finished:
                result.tasks[key].fail(TaskCancelledError(key))
            log.warning("run_cancelled", not_dispatched=len(not_finished))

        result.finish(cancelled=interrupted)
        await self._target.finish(task_set)

        log.info(
            "run_finished",
            status=result.status.value,
            succeeded=len(result.succeeded()),
            failed=len(result.failed()),
            skipped=len(result.skipped()),
        )
        return result

    # ------------------------------------------------------------------
    # Levels
    # ------------------------------------------------------------------

    async def _run_level(
        self,
        level: ExecutionLevel,
        graph: DependencyGraph,
        task_set: TaskSet,
        result: ExecutionResult,
        limiter: ConcurrencyLimiter,
        stop: asyncio.Event,
    ) -> bool:
        """Run one level to completion.  Return True if it was interrupted."""
        log.info("level_started", level=level.index, tasks=list(level.keys))

        runnable: list[str] = []
        for key in level.keys:
            blocked_by = self._failed_ancestors(key, graph, result)
            if blocked_by:
                result.tasks[key].skip(blocked_by)
                log.info("task_skipped", key=key, blocked_by=blocked_by)
                continue
            result.tasks[key].transition(TaskStatus.READY)
            runnable.append(key)

        workers = [
            asyncio.create_task(
                self._run_task(task_set[key], key, task_set, result, limiter),
                name=f"fleetform:{key}",
            )
            for key in runnable
        ]
        if not workers:
            return False

        if not self._abandon_in_flight:
            await asyncio.gather(*workers, return_exceptions=True)
            return False

        stopper = asyncio.ensure_future(stop.wait())
        try:
            pending = set(workers)
            while pending:
                done, _ = await asyncio.wait(
                    pending | {stopper}, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
                if stopper in done and pending:
                    for worker in pending:
                        worker.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)
                    log.warning("level_abandoned", level=level.index, abandoned=len(pending))
                    return True
        finally:
            stopper.cancel()
            await asyncio.gather(stopper, return_exceptions=True)
        return False

    @staticmethod
    def _failed_ancestors(
        key: str, graph: DependencyGraph, result: ExecutionResult
    ) -> list[str]:
        blocked: set[str] = set()
        for dep in graph.dependencies(key):
            dep_state = result.tasks[dep]
            if dep_state.status == TaskStatus.FAILED:
                blocked.add(dep)
            elif dep_state.status == TaskStatus.SKIPPED:
                blocked.update(dep_state.blocked_by)
        return sorted(blocked)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _run_task(
        self,
        task: Task,
        key: str,
        task_set: TaskSet,
        result: ExecutionResult,
        limiter: ConcurrencyLimiter,
    ) -> None:
        bind_run_context(task_key=key)
        state = result.tasks[key]
        context = RenderContext(
            target=self._target, tasks=task_set, run_id=result.run_id, task_key=key
        )

        try:
            async with limiter.acquire(type(task).__name__):
                state.start()
                log.info(
                    "task_started",
                    key=key,
                    kind=state.kind,
                    lifecycle=task.get_lifecycle().value,
                )
                await task.render(context)
        except asyncio.CancelledError:
            state.fail(TaskCancelledError(key), context.warnings)
            log.warning("task_cancelled", key=key)
            raise
        except Exception as exc:
            state.fail(exc, context.warnings)
            log.error("task_failed", key=key, error=str(exc), error_type=type(exc).__name__)
            return

        state.succeed(context.warnings)
        log.info("task_succeeded", key=key, warnings=len(context.warnings))

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def _start_watcher(
        self, stop: asyncio.Event, cancel: asyncio.Event | None
    ) -> asyncio.Task[None] | None:
        if cancel is None and self._run_timeout is None:
            return None
        return asyncio.create_task(self._watch(stop, cancel), name="fleetform:watcher")

    async def _watch(self, stop: asyncio.Event, cancel: asyncio.Event | None) -> None:
        """Set *stop* when *cancel* fires or the run timeout elapses."""
        waiter = cancel.wait() if cancel is not None else asyncio.Event().wait()
        try:
            await asyncio.wait_for(waiter, timeout=self._run_timeout)
            log.warning("run_cancel_requested")
        except asyncio.TimeoutError:
            log.warning("run_timeout", timeout_seconds=self._run_timeout)
        stop.set()


def run_tasks(
    target: Target,
    tasks: TaskSet | Mapping[str, Task] | Iterable[Task],
    *,
    settings: Settings | None = None,
    max_concurrency: int | None = None,
    kind_limits: dict[str, int] | None = None,
    run_timeout: float | None = None,
    abandon_in_flight: bool | None = None,
    cancel: asyncio.Event | None = None,
    run_id: str | None = None,
    configure_logs: bool = False,
) -> ExecutionResult:
    """Synchronous entry point: run *tasks* to completion in a fresh event loop.

    With ``configure_logs`` the process logging is first set up from
    ``settings.logging`` (or the global settings).
    """
    if configure_logs:
        setup_logging((settings or get_settings()).logging)
    executor = TaskExecutor(
        target,
        settings=settings,
        max_concurrency=max_concurrency,
        kind_limits=kind_limits,
        run_timeout=run_timeout,
        abandon_in_flight=abandon_in_flight,
    )
    return asyncio.run(executor.run(tasks, cancel=cancel, run_id=run_id))
