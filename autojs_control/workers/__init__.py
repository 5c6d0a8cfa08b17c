"""Background workers."""

from .scheduler import SchedulerWorker, SweepReport

__all__ = ["SchedulerWorker", "SweepReport"]
