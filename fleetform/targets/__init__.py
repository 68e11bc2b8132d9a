"""Target layer — backends tasks render against."""

from fleetform.targets.base import Target
from fleetform.targets.dryrun import DryRunTarget, PlannedChange
from fleetform.targets.memory import MemoryTarget

__all__ = ["Target", "DryRunTarget", "PlannedChange", "MemoryTarget"]
