"""Device domain models."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from autojs_control.db import models as orm


@dataclass(slots=True)
class Device:
    id: str
    device_code: str
    device_name: Optional[str]
    certificate: str
    auto_js_version: Optional[str]
    group_id: Optional[int]
    is_online: bool
    is_active: bool
    last_online_at: Optional[datetime]
    created_at: Optional[datetime]
    device_info: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_orm(cls, instance: orm.Device) -> "Device":
        info: dict[str, Any] = {}
        if instance.device_info:
            try:
                info = json.loads(instance.device_info)
            except ValueError:
                info = {}
        return cls(
            id=str(instance.id),
            device_code=instance.device_code,
            device_name=instance.device_name,
            certificate=instance.certificate,
            auto_js_version=instance.auto_js_version,
            group_id=instance.group_id,
            is_online=bool(instance.is_online),
            is_active=bool(instance.is_active),
            last_online_at=instance.last_online_at,
            created_at=instance.created_at,
            device_info=info if isinstance(info, dict) else {},
        )


@dataclass(slots=True)
class DeviceSummary:
    """Simplified view used for listings with pagination."""

    total: int
    devices: list[Device]
