"""Unit tests for ConcurrencyLimiter — bounded worker pool."""

from __future__ import annotations

import asyncio

import pytest

from fleetform.orchestration.limiter import ConcurrencyLimiter


@pytest.mark.unit
class TestAcquire:
    async def test_acquire_and_release(self) -> None:
        limiter = ConcurrencyLimiter(max_concurrency=3, kind_limits={"Instance": 2})
        async with limiter.acquire("Instance"):
            status = limiter.status()
            assert status["Instance"]["in_use"] == 1
            assert status["*"]["in_use"] == 1

        status = limiter.status()
        assert status["Instance"]["in_use"] == 0
        assert status["*"]["available"] == 3

    async def test_unlimited_kind_has_no_semaphore(self) -> None:
        limiter = ConcurrencyLimiter(max_concurrency=2)
        async with limiter.acquire("Network"):
            assert "Network" not in limiter.status()

    async def test_release_on_exception(self) -> None:
        limiter = ConcurrencyLimiter(max_concurrency=1, kind_limits={"Instance": 1})
        with pytest.raises(ValueError):
            async with limiter.acquire("Instance"):
                raise ValueError("boom")
        status = limiter.status()
        assert status["Instance"]["available"] == 1
        assert status["*"]["available"] == 1


@pytest.mark.unit
class TestConcurrency:
    async def _peak(self, limiter: ConcurrencyLimiter, kinds: list[str]) -> dict[str, int]:
        running: dict[str, int] = {"*": 0}
        peak: dict[str, int] = {"*": 0}

        async def worker(kind: str) -> None:
            async with limiter.acquire(kind):
                running["*"] += 1
                running[kind] = running.get(kind, 0) + 1
                peak["*"] = max(peak["*"], running["*"])
                peak[kind] = max(peak.get(kind, 0), running[kind])
                await asyncio.sleep(0.01)
                running["*"] -= 1
                running[kind] -= 1

        await asyncio.gather(*(worker(k) for k in kinds))
        return peak

    async def test_global_cap(self) -> None:
        peak = await self._peak(ConcurrencyLimiter(max_concurrency=2), ["a"] * 6)
        assert peak["*"] == 2

    async def test_kind_cap_leaves_room_for_other_kinds(self) -> None:
        limiter = ConcurrencyLimiter(max_concurrency=4, kind_limits={"Instance": 1})
        peak = await self._peak(limiter, ["Instance"] * 4 + ["Subnet"] * 3)
        assert peak["Instance"] == 1
        assert peak["*"] == 4


@pytest.mark.unit
class TestLimits:
    def test_zero_global_limit_rejected(self) -> None:
        with pytest.raises(ValueError, match="max_concurrency"):
            ConcurrencyLimiter(max_concurrency=0)

    def test_zero_kind_limit_rejected(self) -> None:
        with pytest.raises(ValueError, match="Instance"):
            ConcurrencyLimiter(max_concurrency=2, kind_limits={"Instance": 0})
