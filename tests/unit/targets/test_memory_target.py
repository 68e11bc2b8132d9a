"""Unit tests — MemoryTarget."""

from __future__ import annotations

import asyncio

import pytest
from sample_tasks import Network

from fleetform.exceptions import AccessDeniedError
from fleetform.targets.memory import MemoryTarget


@pytest.mark.unit
class TestMemoryTarget:
    async def test_find_missing(self) -> None:
        assert await MemoryTarget().find(Network(name="net")) is None

    async def test_apply_creates_then_merges(self) -> None:
        target = MemoryTarget()
        net = Network(name="net")
        await target.apply(net, None, {"cidr": "10.0.0.0/16"})
        await target.apply(net, {"cidr": "10.0.0.0/16"}, {"id": "n-1"})
        assert await target.find(net) == {"cidr": "10.0.0.0/16", "id": "n-1"}
        assert target.applied == ["Network/net", "Network/net"]
        assert target.keys() == ["Network/net"]

    async def test_returned_state_is_a_copy(self) -> None:
        target = MemoryTarget(state={"Network/net": {"tags": {"a": "1"}}})
        found = await target.find(Network(name="net"))
        found["tags"]["a"] = "2"
        assert target.state("Network/net") == {"tags": {"a": "1"}}

    async def test_initial_state_is_copied(self) -> None:
        initial = {"Network/net": {"cidr": "x"}}
        target = MemoryTarget(state=initial)
        initial["Network/net"]["cidr"] = "y"
        assert target.state("Network/net") == {"cidr": "x"}

    async def test_read_only(self) -> None:
        target = MemoryTarget(read_only=True)
        with pytest.raises(AccessDeniedError):
            await target.apply(Network(name="net"), None, {"cidr": "x"})
        assert target.applied == []

    async def test_deny_specific_keys(self) -> None:
        target = MemoryTarget(deny=["Network/blocked"])
        await target.apply(Network(name="open"), None, {})
        with pytest.raises(AccessDeniedError) as exc:
            await target.apply(Network(name="blocked"), None, {})
        assert exc.value.task_key == "Network/blocked"

    async def test_configured_failure(self) -> None:
        target = MemoryTarget(failures={"Network/net": TimeoutError("slow api")})
        with pytest.raises(TimeoutError, match="slow api"):
            await target.apply(Network(name="net"), None, {})

    async def test_peak_in_flight(self) -> None:
        target = MemoryTarget(delay=0.02)
        nets = [Network(name=f"n{i}") for i in range(3)]
        await asyncio.gather(*(target.apply(n, None, {}) for n in nets))
        assert target.peak_in_flight == 3
        assert sorted(target.applied) == ["Network/n0", "Network/n1", "Network/n2"]

    async def test_finish_is_a_no_op(self) -> None:
        await MemoryTarget().finish(None)  # type: ignore[arg-type]
