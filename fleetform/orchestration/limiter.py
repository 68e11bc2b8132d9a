"""Concurrency limiter — bounded worker pool for task rendering.

Caps how many tasks render at once across the whole run, and optionally
how many of one task kind render at once (e.g. max 4 Instance tasks, to
stay under a cloud API's rate limit).

Usage::

    limiter = ConcurrencyLimiter(max_concurrency=10, kind_limits={"Instance": 4})
    async with limiter.acquire("Instance"):
        await task.render(context)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class ConcurrencyLimiter:
    """Global asyncio.Semaphore plus lazily created per-kind semaphores."""

    def __init__(
        self,
        max_concurrency: int = 10,
        kind_limits: dict[str, int] | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        for kind, limit in (kind_limits or {}).items():
            if limit < 1:
                raise ValueError(f"kind_limits[{kind!r}] must be >= 1, got {limit}")
        self._max = max_concurrency
        self._limits = dict(kind_limits or {})
        self._global = asyncio.Semaphore(max_concurrency)
        self._semaphores: dict[str, asyncio.Semaphore] = {}

    def _get_semaphore(self, kind: str) -> asyncio.Semaphore | None:
        """Return (or lazily create) the semaphore for *kind*, if it is limited."""
        if kind not in self._limits:
            return None
        if kind not in self._semaphores:
            self._semaphores[kind] = asyncio.Semaphore(self._limits[kind])
        return self._semaphores[kind]

    @asynccontextmanager
    async def acquire(self, kind: str) -> AsyncIterator[None]:
        """Block until both the kind slot and a global slot are free."""
        # Kind first, so a capped kind never sits on a global slot while waiting.
        sem = self._get_semaphore(kind)
        if sem is not None:
            await sem.acquire()
        try:
            async with self._global:
                yield
        finally:
            if sem is not None:
                sem.release()

    def status(self) -> dict[str, dict[str, int]]:
        """Return current semaphore state for monitoring."""
        result: dict[str, dict[str, int]] = {
            "*": {
                "limit": self._max,
                "available": self._global._value,
                "in_use": self._max - self._global._value,
            }
        }
        for kind, sem in self._semaphores.items():
            limit = self._limits[kind]
            result[kind] = {
                "limit": limit,
                "available": sem._value,
                "in_use": limit - sem._value,
            }
        return result
