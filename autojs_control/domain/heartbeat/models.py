"""Heartbeat exchange models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from autojs_control.domain.instructions.models import DeviceInstruction


@dataclass(slots=True)
class HeartbeatRequest:
    device_code: str
    signature: str
    timestamp: int
    poll_timeout: int = 30
    auto_js_version: Optional[str] = None
    device_info: dict[str, Any] = field(default_factory=dict)
    monitor_data: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class HeartbeatResult:
    instructions: list[DeviceInstruction]
    server_time: datetime
    config: Optional[dict[str, Any]] = None
    expired: int = 0
    message: Optional[str] = None
