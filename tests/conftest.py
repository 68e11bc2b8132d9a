"""Shared pytest fixtures for the fleetform test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
from sample_tasks import Instance, Network, Recorder, Subnet

from fleetform.config import Settings, override_settings
from fleetform.targets.memory import MemoryTarget
from fleetform.tasks.base import TaskSet


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def test_settings(tmp_path: Path) -> Settings:
    settings = Settings(
        executor={"max_concurrency": 10},
        logging={"level": "debug", "format": "console", "file": None},
    )
    override_settings(settings)
    return settings


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@pytest.fixture
def chain() -> TaskSet:
    """net <- sub <- vm, discovered only from field references."""
    net = Network(name="net")
    sub = Subnet(name="sub", network=net)
    vm = Instance(name="vm", subnet=sub)
    return TaskSet({"net": net, "sub": sub, "vm": vm})


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_target() -> MemoryTarget:
    return MemoryTarget()
