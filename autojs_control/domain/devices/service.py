"""Device registry service used by the dispatch engine and operators."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from autojs_control.domain.common.exceptions import TaskConfigurationError
from autojs_control.infrastructure.database.repositories.device_repository import SqlDeviceRepository

from .auth import DeviceAuthService
from .models import Device, DeviceSummary
from .repository import DeviceRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeviceService:
    repository: DeviceRepository

    @classmethod
    def with_session(cls, session: AsyncSession) -> "DeviceService":
        return cls(SqlDeviceRepository(session))

    async def get_by_code(self, device_code: str) -> Device | None:
        model = await self.repository.get_by_code(device_code)
        return Device.from_orm(model) if model else None

    async def list_devices(self, skip: int, limit: int, online_only: bool) -> DeviceSummary:
        models, total = await self.repository.list_devices(skip, limit, online_only)
        return DeviceSummary(total=total, devices=[Device.from_orm(model) for model in models])

    async def list_all_active(self) -> list[Device]:
        return [Device.from_orm(model) for model in await self.repository.list_active()]

    async def list_group(self, group_id: int) -> list[Device]:
        if await self.repository.get_group(group_id) is None:
            raise TaskConfigurationError(f"设备分组不存在: {group_id}")
        return [Device.from_orm(model) for model in await self.repository.list_by_group(group_id)]

    async def list_by_codes(self, device_codes: Sequence[str]) -> list[Device]:
        models = await self.repository.list_by_codes(device_codes)
        found = {model.device_code for model in models}
        missing = [code for code in device_codes if code not in found]
        if missing:
            logger.warning("部分目标设备不存在或已禁用 deviceCodes=%s", missing)
        return [Device.from_orm(model) for model in models]

    async def list_flagged_online(self) -> list[Device]:
        return [Device.from_orm(model) for model in await self.repository.list_flagged_online()]

    async def register(
        self,
        *,
        device_code: str,
        certificate_request: str,
        auth: DeviceAuthService,
        device_name: Optional[str] = None,
        auto_js_version: Optional[str] = None,
        group_id: Optional[int] = None,
        device_info: Optional[dict[str, Any]] = None,
    ) -> tuple[Device, str]:
        """Create or re-provision a device and issue it a fresh certificate."""
        certificate = auth.generate_certificate(device_code, certificate_request)
        info = json.dumps(device_info, ensure_ascii=False) if device_info else None
        model = await self.repository.get_by_code(device_code)
        if model is None:
            model = await self.repository.create_device(
                device_code=device_code,
                device_name=device_name,
                certificate=certificate,
                auto_js_version=auto_js_version,
                group_id=group_id,
                device_info=info,
            )
            logger.info("新设备注册成功 deviceCode=%s", device_code)
        else:
            model.certificate = certificate
            model.device_name = device_name or model.device_name
            model.auto_js_version = auto_js_version or model.auto_js_version
            if group_id is not None:
                model.group_id = group_id
            if info is not None:
                model.device_info = info
            model.is_active = True
            model = await self.repository.save(model)
            logger.info("设备重新注册，证书已更新 deviceCode=%s", device_code)
        return Device.from_orm(model), certificate

    async def touch(
        self,
        device_code: str,
        *,
        seen_at: datetime,
        auto_js_version: Optional[str] = None,
        device_info: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Record a heartbeat on the durable record; True if it was flagged offline."""
        model = await self.repository.get_by_code(device_code)
        if model is None:
            return False
        was_offline = not model.is_online
        model.is_online = True
        model.last_online_at = seen_at
        if auto_js_version:
            model.auto_js_version = auto_js_version
        if device_info:
            model.device_info = json.dumps(device_info, ensure_ascii=False)
        await self.repository.save(model)
        return was_offline

    async def mark_offline(self, device_code: str) -> bool:
        return await self.repository.set_online(device_code, False)

    async def create_group(self, *, name: str, description: Optional[str] = None) -> int:
        group = await self.repository.create_group(name=name, description=description)
        return int(group.id)


__all__ = ["DeviceService"]
