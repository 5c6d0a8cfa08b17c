"""Execution status and script execution record models."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from autojs_control.db import models as orm
from autojs_control.domain.instructions.models import InstructionState


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def is_final(self) -> bool:
        return self not in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING)

    @property
    def is_failure(self) -> bool:
        return self in (ExecutionStatus.FAILED, ExecutionStatus.TIMEOUT, ExecutionStatus.CANCELLED)

    @property
    def instruction_state(self) -> InstructionState:
        return InstructionState(self.value)


@dataclass(slots=True)
class ExecutionReport:
    """Result reported by a device for one instruction."""

    device_code: str
    instruction_id: str
    status: ExecutionStatus
    start_time: datetime
    end_time: datetime
    output: Optional[str] = None
    error_message: Optional[str] = None
    execution_metrics: dict[str, Any] = field(default_factory=dict)
    screenshots: list[Any] = field(default_factory=list)

    @property
    def duration(self) -> float:
        return (self.end_time - self.start_time).total_seconds()


class ReportStatus(str, Enum):
    OK = "ok"
    ERROR = "error"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"


@dataclass(slots=True)
class ReportOutcome:
    status: ReportStatus
    instruction_id: str
    message: Optional[str] = None


def _loads(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


@dataclass(slots=True)
class ExecutionRecord:
    id: int
    instruction_id: str
    device_code: str
    task_id: Optional[int]
    script_id: Optional[int]
    status: ExecutionStatus
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    duration: Optional[float]
    output: Optional[str]
    error_message: Optional[str]
    execution_metrics: dict[str, Any] = field(default_factory=dict)
    screenshots: list[Any] = field(default_factory=list)

    @classmethod
    def from_orm(cls, instance: orm.ScriptExecutionRecord) -> "ExecutionRecord":
        return cls(
            id=int(instance.id),
            instruction_id=instance.instruction_id,
            device_code=instance.device_code,
            task_id=instance.task_id,
            script_id=instance.script_id,
            status=ExecutionStatus(instance.status),
            start_time=instance.start_time,
            end_time=instance.end_time,
            duration=instance.duration,
            output=instance.output,
            error_message=instance.error_message,
            execution_metrics=_loads(instance.execution_metrics, {}),
            screenshots=_loads(instance.screenshots, []),
        )
