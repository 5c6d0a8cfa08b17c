"""Task aggregate: fanout, lifecycle, retries and management."""

from .fanout import ALL_SENDS_FAILED_REASON, NO_DEVICES_REASON, TaskFanoutScheduler
from .lifecycle import TaskLifecycle
from .models import (
    FanoutResult,
    TargetStatus,
    Task,
    TaskStatistics,
    TaskStatus,
    TaskSummary,
    TaskTarget,
    TaskTargetType,
    TaskType,
)
from .repository import TaskRepository
from .retry import RetryEngine
from .service import TaskService

__all__ = [
    "ALL_SENDS_FAILED_REASON",
    "NO_DEVICES_REASON",
    "FanoutResult",
    "RetryEngine",
    "TargetStatus",
    "Task",
    "TaskFanoutScheduler",
    "TaskLifecycle",
    "TaskRepository",
    "TaskService",
    "TaskStatistics",
    "TaskStatus",
    "TaskSummary",
    "TaskTarget",
    "TaskTargetType",
    "TaskType",
]
