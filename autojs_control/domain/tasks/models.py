"""Task aggregate models and status rules."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from autojs_control.db import models as orm


class TaskType(str, Enum):
    IMMEDIATE = "immediate"
    SCHEDULED = "scheduled"
    RECURRING = "recurring"


class TaskTargetType(str, Enum):
    ALL = "all"
    GROUP = "group"
    SPECIFIC = "specific"


class TaskStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    def can_transition_to(self, target: "TaskStatus") -> bool:
        return target in _TRANSITIONS[self]


_TERMINAL = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.PARTIALLY_COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
)
_OUTCOMES = frozenset({TaskStatus.COMPLETED, TaskStatus.PARTIALLY_COMPLETED, TaskStatus.FAILED})

_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.SCHEDULED, TaskStatus.RUNNING, TaskStatus.PAUSED, TaskStatus.CANCELLED, TaskStatus.FAILED}
    ),
    TaskStatus.SCHEDULED: frozenset(
        {TaskStatus.RUNNING, TaskStatus.PAUSED, TaskStatus.CANCELLED, TaskStatus.FAILED}
    ),
    # RUNNING -> SCHEDULED closes one occurrence of a recurring task
    TaskStatus.RUNNING: _OUTCOMES | {TaskStatus.PAUSED, TaskStatus.CANCELLED, TaskStatus.SCHEDULED},
    TaskStatus.PAUSED: _OUTCOMES | {TaskStatus.PENDING, TaskStatus.RUNNING, TaskStatus.CANCELLED},
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.PARTIALLY_COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


class TargetStatus(str, Enum):
    """Per-device state of one fanned-out instruction."""

    PENDING = "pending"
    DELIVERED = "delivered"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        return self in (TargetStatus.PENDING, TargetStatus.DELIVERED, TargetStatus.RUNNING)

    @classmethod
    def open_values(cls) -> tuple[str, ...]:
        return (cls.PENDING.value, cls.DELIVERED.value, cls.RUNNING.value)


def _load_json(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


@dataclass(slots=True)
class Task:
    id: int
    name: str
    task_type: TaskType
    target_type: TaskTargetType
    target_device_ids: list[str]
    target_group_id: Optional[int]
    script_id: int
    parameters: dict[str, Any]
    priority: int
    max_retries: int
    retry_count: int
    retry_cancelled: bool
    scheduled_time: Optional[datetime]
    recurrence_interval: Optional[int]
    last_execution_time: Optional[datetime]
    status: TaskStatus
    total_devices: int
    success_devices: int
    failed_devices: int
    failure_reason: Optional[str]
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_orm(cls, instance: orm.Task) -> "Task":
        return cls(
            id=int(instance.id),
            name=instance.name,
            task_type=TaskType(instance.task_type),
            target_type=TaskTargetType(instance.target_type),
            target_device_ids=list(_load_json(instance.target_device_ids, [])),
            target_group_id=instance.target_group_id,
            script_id=int(instance.script_id),
            parameters=dict(_load_json(instance.parameters, {})),
            priority=int(instance.priority),
            max_retries=int(instance.max_retries or 0),
            retry_count=int(instance.retry_count or 0),
            retry_cancelled=bool(instance.retry_cancelled),
            scheduled_time=instance.scheduled_time,
            recurrence_interval=instance.recurrence_interval,
            last_execution_time=instance.last_execution_time,
            status=TaskStatus(instance.status),
            total_devices=int(instance.total_devices or 0),
            success_devices=int(instance.success_devices or 0),
            failed_devices=int(instance.failed_devices or 0),
            failure_reason=instance.failure_reason,
            start_time=instance.start_time,
            end_time=instance.end_time,
            created_at=instance.created_at,
            updated_at=instance.updated_at,
        )

    @property
    def progress(self) -> float:
        if not self.total_devices:
            return 0.0
        return round((self.success_devices + self.failed_devices) * 100.0 / self.total_devices, 2)


@dataclass(slots=True)
class TaskTarget:
    id: int
    task_id: int
    device_code: str
    instruction_id: str
    correlation_id: str
    attempt: int
    timeout: int
    status: TargetStatus
    superseded: bool
    sent_at: Optional[datetime]
    completed_at: Optional[datetime]

    @classmethod
    def from_orm(cls, instance: orm.TaskTarget) -> "TaskTarget":
        return cls(
            id=int(instance.id),
            task_id=int(instance.task_id),
            device_code=instance.device_code,
            instruction_id=instance.instruction_id,
            correlation_id=instance.correlation_id,
            attempt=int(instance.attempt),
            timeout=int(instance.timeout),
            status=TargetStatus(instance.status),
            superseded=bool(instance.superseded),
            sent_at=instance.sent_at,
            completed_at=instance.completed_at,
        )


@dataclass(slots=True)
class TaskSummary:
    total: int
    tasks: list[Task]


@dataclass(slots=True)
class TaskStatistics:
    total: int
    by_status: dict[str, int] = field(default_factory=dict)

    @property
    def active(self) -> int:
        return sum(count for status, count in self.by_status.items() if not TaskStatus(status).is_terminal)


@dataclass(slots=True)
class FanoutResult:
    task_id: int
    enqueued: list[TaskTarget] = field(default_factory=list)
    failed_devices: list[str] = field(default_factory=list)
    deferred: bool = False
