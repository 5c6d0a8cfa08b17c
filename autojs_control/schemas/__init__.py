"""Pydantic schemas used across the project.

Device-facing and operator-facing payloads use camelCase on the wire; the
Python side keeps snake_case attribute names.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from autojs_control.domain.executions.models import ExecutionStatus, ReportStatus
from autojs_control.domain.instructions.models import InstructionType
from autojs_control.domain.tasks.models import TargetStatus, TaskStatus, TaskTargetType, TaskType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenRequest(CamelModel):
    api_key: str = Field(..., min_length=1)
    operator: str = Field(default="operator", min_length=1, max_length=50)


class TokenData(BaseModel):
    subject: str
    role: str


class InstructionSchema(CamelModel):
    instruction_id: str
    type: InstructionType
    data: dict[str, Any] = Field(default_factory=dict)
    created_time: datetime
    timeout: int
    priority: int
    task_id: Optional[int] = None
    script_id: Optional[int] = None
    correlation_id: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class HeartbeatRequest(CamelModel):
    device_code: str = Field(..., min_length=1, max_length=64)
    signature: str = Field(..., min_length=1)
    timestamp: int
    auto_js_version: Optional[str] = Field(default=None, alias="autoJsVersion")
    device_info: dict[str, Any] = Field(default_factory=dict)
    monitor_data: dict[str, Any] = Field(default_factory=dict)
    poll_timeout: int = Field(default=30, ge=1, le=60)


class HeartbeatResponse(CamelModel):
    status: str = "ok"
    instructions: list[InstructionSchema] = Field(default_factory=list)
    server_time: datetime
    config: Optional[dict[str, Any]] = None
    message: Optional[str] = None


class ExecutionReportRequest(CamelModel):
    device_code: str = Field(..., min_length=1, max_length=64)
    signature: str = Field(..., min_length=1)
    timestamp: int
    instruction_id: str = Field(..., min_length=1, max_length=64)
    status: ExecutionStatus
    start_time: datetime
    end_time: datetime
    output: Optional[str] = None
    error_message: Optional[str] = None
    execution_metrics: dict[str, Any] = Field(default_factory=dict)
    screenshots: list[Any] = Field(default_factory=list)


class ExecutionReportResponse(CamelModel):
    status: ReportStatus
    instruction_id: str
    server_time: datetime
    message: Optional[str] = None


class DeviceRegisterRequest(CamelModel):
    device_code: str = Field(..., min_length=1, max_length=64)
    device_name: str = Field(..., min_length=1, max_length=100)
    certificate_request: str = Field(..., min_length=1)
    auto_js_version: Optional[str] = Field(default=None, alias="autoJsVersion")
    model: Optional[str] = None
    brand: Optional[str] = None
    os_version: Optional[str] = None
    fingerprint: Optional[str] = None
    hardware_info: dict[str, Any] = Field(default_factory=dict)
    group_id: Optional[int] = None


class DeviceRegisterResponse(CamelModel):
    status: str = "ok"
    device_id: str
    certificate: str
    server_time: datetime
    config: Optional[dict[str, Any]] = None
    message: Optional[str] = None


class ScriptDownloadResponse(CamelModel):
    status: str = "ok"
    script_id: int
    script_name: str
    version: Optional[str] = None
    content: Optional[str] = None
    timeout: int
    checksum: str
    server_time: datetime


class DeviceResponse(CamelModel):
    id: str
    device_code: str
    device_name: Optional[str] = None
    auto_js_version: Optional[str] = Field(default=None, alias="autoJsVersion")
    group_id: Optional[int] = None
    is_online: bool
    is_active: bool
    last_online_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class DeviceListResponse(BaseModel):
    total: int
    devices: list[DeviceResponse]


class DeviceGroupCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class DeviceGroupResponse(CamelModel):
    id: int
    name: str


class TaskCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=150)
    script_id: int
    task_type: TaskType = TaskType.IMMEDIATE
    target_type: TaskTargetType = TaskTargetType.SPECIFIC
    target_device_ids: list[str] = Field(default_factory=list)
    target_group_id: Optional[int] = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(default=5, ge=0, le=10)
    max_retries: int = Field(default=0, ge=0, le=100)
    retry_cancelled: bool = False
    scheduled_time: Optional[datetime] = None
    recurrence_interval: Optional[int] = Field(default=None, gt=0)


class TaskResponse(CamelModel):
    id: int
    name: str
    task_type: TaskType
    target_type: TaskTargetType
    target_device_ids: list[str] = Field(default_factory=list)
    target_group_id: Optional[int] = None
    script_id: int
    parameters: dict[str, Any] = Field(default_factory=dict)
    priority: int
    max_retries: int
    retry_count: int
    retry_cancelled: bool
    scheduled_time: Optional[datetime] = None
    recurrence_interval: Optional[int] = None
    last_execution_time: Optional[datetime] = None
    status: TaskStatus
    total_devices: int
    success_devices: int
    failed_devices: int
    progress: float
    failure_reason: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class TaskTargetResponse(CamelModel):
    device_code: str
    instruction_id: str
    correlation_id: str
    attempt: int
    status: TargetStatus
    superseded: bool
    sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class TaskDetailResponse(TaskResponse):
    targets: list[TaskTargetResponse] = Field(default_factory=list)


class TaskListResponse(BaseModel):
    total: int
    tasks: list[TaskResponse]


class TaskStatisticsResponse(CamelModel):
    total: int
    active: int
    by_status: dict[str, int]


class InstructionCreate(CamelModel):
    type: InstructionType
    data: dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(default=5, ge=0, le=10)
    timeout: Optional[int] = Field(default=None, ge=1, le=3600)
    script_id: Optional[int] = None


class InstructionStatusResponse(CamelModel):
    instruction_id: str
    status: Optional[str] = None


class QueueClearResponse(CamelModel):
    device_code: str
    cleared: int


class DeviceQueueStatsResponse(CamelModel):
    device_code: str
    online: bool
    queue_depth: int
    last_heartbeat: Optional[int] = None
    metrics: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class FleetQueueStatsResponse(CamelModel):
    total_devices: int
    online_devices: int
    total_queued: int
    busy_devices: list[DeviceQueueStatsResponse] = Field(default_factory=list)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
