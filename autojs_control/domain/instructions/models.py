"""Device instruction value object and its enumerations."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Optional

from autojs_control.core.clock import ensure_aware, utcnow

MIN_PRIORITY = 0
MAX_PRIORITY = 10
MIN_TIMEOUT = 1
MAX_TIMEOUT = 3600


class InstructionType(str, Enum):
    EXECUTE_SCRIPT = "execute_script"
    STOP_SCRIPT = "stop_script"
    UPDATE_STATUS = "update_status"
    COLLECT_LOG = "collect_log"
    RESTART_APP = "restart_app"
    UPDATE_APP = "update_app"
    PING = "ping"

    @property
    def is_urgent(self) -> bool:
        """Urgent instructions jump ahead of every priority band."""
        return self in _URGENT_TYPES


_URGENT_TYPES = frozenset({InstructionType.STOP_SCRIPT, InstructionType.RESTART_APP, InstructionType.PING})


class InstructionState(str, Enum):
    """Values stored under ``instruction_status:<instructionId>``."""

    PENDING = "pending"
    DELIVERED = "delivered"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    CLEARED = "cleared"

    @property
    def is_terminal(self) -> bool:
        return self not in _OPEN_STATES

    @classmethod
    def open_values(cls) -> tuple[str, ...]:
        return tuple(state.value for state in _OPEN_STATES)


_OPEN_STATES = (InstructionState.PENDING, InstructionState.DELIVERED, InstructionState.RUNNING)


def generate_instruction_id() -> str:
    return f"INS-{uuid.uuid4().hex}"


@dataclass(frozen=True, slots=True)
class DeviceInstruction:
    """Immutable unit of work queued for one device.

    Retries never mutate an instruction; they build a new one with a fresh
    ``instruction_id`` and the same ``correlation_id``.
    """

    instruction_id: str
    type: InstructionType
    data: Mapping[str, Any] = field(default_factory=dict)
    timeout: int = 300
    priority: int = 5
    task_id: Optional[int] = None
    script_id: Optional[int] = None
    correlation_id: Optional[str] = None
    created_time: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.instruction_id:
            raise ValueError("instruction_id must not be empty")
        if len(self.instruction_id) > 64:
            raise ValueError("instruction_id must be at most 64 characters")
        if not isinstance(self.type, InstructionType):
            object.__setattr__(self, "type", InstructionType(self.type))
        if not MIN_TIMEOUT <= self.timeout <= MAX_TIMEOUT:
            raise ValueError(f"timeout must be between {MIN_TIMEOUT} and {MAX_TIMEOUT} seconds")
        if not MIN_PRIORITY <= self.priority <= MAX_PRIORITY:
            raise ValueError(f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}")
        object.__setattr__(self, "data", dict(self.data))
        object.__setattr__(self, "created_time", ensure_aware(self.created_time))

    @classmethod
    def create(
        cls,
        type: InstructionType,
        data: Optional[Mapping[str, Any]] = None,
        *,
        timeout: int = 300,
        priority: int = 5,
        task_id: Optional[int] = None,
        script_id: Optional[int] = None,
        correlation_id: Optional[str] = None,
        created_time: Optional[datetime] = None,
    ) -> "DeviceInstruction":
        return cls(
            instruction_id=generate_instruction_id(),
            type=InstructionType(type),
            data=data or {},
            timeout=timeout,
            priority=priority,
            task_id=task_id,
            script_id=script_id,
            correlation_id=correlation_id,
            created_time=created_time or utcnow(),
        )

    @property
    def expires_at(self) -> datetime:
        return self.created_time + timedelta(seconds=self.timeout)

    @property
    def is_urgent(self) -> bool:
        return self.type.is_urgent

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return ensure_aware(now or utcnow()) > self.expires_at

    def retry(self, *, created_time: Optional[datetime] = None) -> "DeviceInstruction":
        """New instruction for the same work, linked through ``correlation_id``."""
        return replace(
            self,
            instruction_id=generate_instruction_id(),
            correlation_id=self.correlation_id or self.instruction_id,
            created_time=created_time or utcnow(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "instructionId": self.instruction_id,
            "type": self.type.value,
            "data": dict(self.data),
            "createdTime": self.created_time.isoformat(),
            "timeout": self.timeout,
            "priority": self.priority,
            "taskId": self.task_id,
            "scriptId": self.script_id,
            "correlationId": self.correlation_id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DeviceInstruction":
        created = payload.get("createdTime") or payload.get("createTime")
        # without a creation time the entry could never expire
        if not isinstance(created, str):
            raise ValueError("instruction payload has no createdTime")
        return cls(
            instruction_id=str(payload.get("instructionId") or ""),
            type=InstructionType(payload.get("type")),
            data=payload.get("data") if isinstance(payload.get("data"), dict) else {},
            timeout=int(payload.get("timeout", 300)),
            priority=int(payload.get("priority", 5)),
            task_id=payload.get("taskId"),
            script_id=payload.get("scriptId"),
            correlation_id=payload.get("correlationId"),
            created_time=datetime.fromisoformat(created),
        )

    @classmethod
    def from_json(cls, raw: str) -> "DeviceInstruction":
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("instruction payload must be a JSON object")
        return cls.from_dict(payload)
