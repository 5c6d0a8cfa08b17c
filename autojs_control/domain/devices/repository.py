"""Repository protocol for the device registry."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from autojs_control.db.models import Device as DeviceModel
from autojs_control.db.models import DeviceGroup as DeviceGroupModel


class DeviceRepository(Protocol):
    async def get_by_code(self, device_code: str) -> DeviceModel | None:
        ...

    async def list_devices(self, skip: int, limit: int, online_only: bool) -> tuple[Sequence[DeviceModel], int]:
        ...

    async def list_active(self) -> list[DeviceModel]:
        ...

    async def list_by_group(self, group_id: int) -> list[DeviceModel]:
        ...

    async def list_by_codes(self, device_codes: Sequence[str]) -> list[DeviceModel]:
        ...

    async def list_flagged_online(self) -> list[DeviceModel]:
        ...

    async def create_device(
        self,
        *,
        device_code: str,
        device_name: Optional[str],
        certificate: str,
        auto_js_version: Optional[str],
        group_id: Optional[int],
        device_info: Optional[str],
    ) -> DeviceModel:
        ...

    async def save(self, model: DeviceModel) -> DeviceModel:
        ...

    async def set_online(self, device_code: str, is_online: bool, *, seen_at: Optional[datetime] = None) -> bool:
        ...

    async def get_group(self, group_id: int) -> DeviceGroupModel | None:
        ...

    async def create_group(self, *, name: str, description: Optional[str]) -> DeviceGroupModel:
        ...
