"""Unit tests — TaskState and ExecutionResult."""

from __future__ import annotations

import pytest

from fleetform.exceptions import InvalidTransitionError, RunFailedError
from fleetform.orchestration.state import (
    ExecutionResult,
    RunStatus,
    TaskState,
    TaskStatus,
)


def _result(**statuses: TaskStatus) -> ExecutionResult:
    result = ExecutionResult(run_id="r1", levels=[sorted(statuses)])
    for key, status in statuses.items():
        result.tasks[key] = TaskState(key=key, status=status)
    return result


@pytest.mark.unit
class TestTaskStateTransitions:
    def test_happy_path(self) -> None:
        state = TaskState(key="a")
        state.transition(TaskStatus.READY)
        state.start()
        state.succeed(["drift on 'a'"])
        assert state.status == TaskStatus.SUCCEEDED
        assert state.attempts == 1
        assert state.warnings == ["drift on 'a'"]
        assert state.duration is not None and state.duration >= 0

    def test_fail_records_error(self) -> None:
        state = TaskState(key="a", status=TaskStatus.RUNNING)
        state.fail(RuntimeError("boom"))
        assert state.status == TaskStatus.FAILED
        assert state.error == "boom"
        assert state.error_type == "RuntimeError"

    def test_fail_without_message_uses_type_name(self) -> None:
        state = TaskState(key="a", status=TaskStatus.RUNNING)
        state.fail(TimeoutError())
        assert state.error == "TimeoutError"

    def test_skip_from_pending(self) -> None:
        state = TaskState(key="d")
        state.skip(["c", "b"])
        assert state.status == TaskStatus.SKIPPED
        assert state.blocked_by == ["b", "c"]
        assert state.is_terminal

    def test_cannot_run_from_pending(self) -> None:
        with pytest.raises(InvalidTransitionError):
            TaskState(key="a").start()

    def test_terminal_states_are_final(self) -> None:
        state = TaskState(key="a", status=TaskStatus.SUCCEEDED)
        with pytest.raises(InvalidTransitionError) as exc:
            state.transition(TaskStatus.FAILED)
        assert exc.value.current == "succeeded"
        assert exc.value.requested == "failed"

    def test_skipped_task_never_runs(self) -> None:
        state = TaskState(key="a", status=TaskStatus.SKIPPED)
        with pytest.raises(InvalidTransitionError):
            state.transition(TaskStatus.RUNNING)


@pytest.mark.unit
class TestExecutionResult:
    def test_finish_succeeded(self) -> None:
        result = _result(a=TaskStatus.SUCCEEDED, b=TaskStatus.SUCCEEDED)
        result.finish()
        assert result.status == RunStatus.SUCCEEDED
        assert result.ok
        result.raise_for_failures()

    def test_finish_failed_when_any_task_failed(self) -> None:
        result = _result(a=TaskStatus.FAILED, b=TaskStatus.SUCCEEDED, c=TaskStatus.SKIPPED)
        result.tasks["a"].error = "boom"
        result.finish()
        assert result.status == RunStatus.FAILED
        assert not result.ok
        assert result.failed() == ["a"]
        assert result.succeeded() == ["b"]
        assert result.skipped() == ["c"]

    def test_skips_alone_do_not_fail_the_run(self) -> None:
        result = _result(a=TaskStatus.SKIPPED)
        result.finish()
        assert result.status == RunStatus.SUCCEEDED

    def test_cancelled(self) -> None:
        result = _result(a=TaskStatus.SUCCEEDED)
        result.finish(cancelled=True)
        assert result.status == RunStatus.CANCELLED
        assert not result.ok

    def test_raise_for_failures_lists_every_failure(self) -> None:
        result = _result(a=TaskStatus.FAILED, b=TaskStatus.FAILED)
        result.tasks["a"].error = "first"
        result.tasks["b"].error = "second"
        with pytest.raises(RunFailedError) as exc:
            result.raise_for_failures()
        assert exc.value.failures == {"a": "first", "b": "second"}
        assert "first" in exc.value.message and "second" in exc.value.message

    def test_pending_lists_non_terminal(self) -> None:
        result = _result(a=TaskStatus.READY, b=TaskStatus.PENDING, c=TaskStatus.FAILED)
        assert result.pending() == ["a", "b"]

    def test_warnings(self) -> None:
        result = _result(a=TaskStatus.SUCCEEDED, b=TaskStatus.SUCCEEDED)
        result.tasks["b"].warnings = ["access denied"]
        assert result.warnings() == {"b": ["access denied"]}

    def test_to_dict(self) -> None:
        result = _result(a=TaskStatus.SUCCEEDED)
        result.finish()
        data = result.to_dict()
        assert data["run_id"] == "r1"
        assert data["status"] == "succeeded"
        assert data["levels"] == [["a"]]
        assert data["tasks"]["a"]["status"] == "succeeded"
