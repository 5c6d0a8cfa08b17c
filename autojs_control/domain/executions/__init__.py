"""Script execution records and the instruction lifecycle."""

from .lifecycle import InstructionLifecycle, InstructionOutcomeListener
from .models import ExecutionRecord, ExecutionReport, ExecutionStatus, ReportOutcome, ReportStatus
from .repository import ExecutionRecordRepository

__all__ = [
    "ExecutionRecord",
    "ExecutionRecordRepository",
    "ExecutionReport",
    "ExecutionStatus",
    "InstructionLifecycle",
    "InstructionOutcomeListener",
    "ReportOutcome",
    "ReportStatus",
]
