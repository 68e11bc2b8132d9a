"""Target layer — in-memory backend.

Keeps resource state in a dict keyed by task key.  Used for local
convergence runs and as the reference backend in tests.

Usage::

    target = MemoryTarget(state={"Network/main": {"cidr": "10.0.0.0/16"}})
    result = await TaskExecutor(target).run(tasks)
    target.state("Network/main")
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from fleetform.exceptions import AccessDeniedError
from fleetform.logging import get_logger
from fleetform.targets.base import Target

if TYPE_CHECKING:
    from fleetform.tasks.base import Task

log = get_logger(__name__)


class MemoryTarget(Target):
    """Dict-backed Target, safe for concurrent use from one event loop.

    Args:
        state:     Initial resource state, keyed by task key.
        read_only: Refuse every ``apply`` with :class:`AccessDeniedError`.
        deny:      Task keys whose ``apply`` is refused.
        failures:  Task key → exception raised from ``apply`` for that task.
        delay:     Seconds each ``apply`` sleeps, to simulate API latency.
    """

    def __init__(
        self,
        state: Mapping[str, dict[str, Any]] | None = None,
        read_only: bool = False,
        deny: Iterable[str] = (),
        failures: Mapping[str, BaseException] | None = None,
        delay: float = 0.0,
    ) -> None:
        self._state: dict[str, dict[str, Any]] = copy.deepcopy(dict(state or {}))
        self._read_only = read_only
        self._deny = set(deny)
        self._failures = dict(failures or {})
        self._delay = delay
        self._lock = asyncio.Lock()
        self._in_flight = 0
        self.peak_in_flight = 0
        # Order in which resources were written.
        self.applied: list[str] = []

    async def find(self, task: Task) -> dict[str, Any] | None:
        async with self._lock:
            current = self._state.get(task.key)
            return copy.deepcopy(current) if current is not None else None

    async def apply(
        self, task: Task, actual: dict[str, Any] | None, changes: dict[str, Any]
    ) -> None:
        key = task.key
        self._in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
        try:
            if key in self._failures:
                raise self._failures[key]
            if self._read_only or key in self._deny:
                raise AccessDeniedError(key)
            if self._delay:
                await asyncio.sleep(self._delay)
            async with self._lock:
                merged = dict(self._state.get(key) or {})
                merged.update(copy.deepcopy(changes))
                self._state[key] = merged
                self.applied.append(key)
            log.debug(
                "resource_written",
                key=key,
                created=actual is None,
                fields=sorted(changes),
            )
        finally:
            self._in_flight -= 1

    def state(self, key: str) -> dict[str, Any] | None:
        current = self._state.get(key)
        return copy.deepcopy(current) if current is not None else None

    def keys(self) -> list[str]:
        return sorted(self._state)
