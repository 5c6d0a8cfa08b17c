"""SQLAlchemy powered repository for the device registry."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from autojs_control.db.models import Device as DeviceModel
from autojs_control.db.models import DeviceGroup as DeviceGroupModel
from autojs_control.domain.common.repository import AsyncRepository


class SqlDeviceRepository(AsyncRepository[DeviceModel]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get_by_code(self, device_code: str) -> DeviceModel | None:
        stmt = select(DeviceModel).where(DeviceModel.device_code == device_code)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_devices(
        self, skip: int, limit: int, online_only: bool
    ) -> tuple[Sequence[DeviceModel], int]:
        query = select(DeviceModel).order_by(DeviceModel.created_at.desc(), DeviceModel.device_code)
        count_query = select(func.count(DeviceModel.id))
        if online_only:
            predicate = DeviceModel.is_online.is_(True)
            query = query.where(predicate)
            count_query = count_query.where(predicate)

        if skip:
            query = query.offset(skip)
        if limit:
            query = query.limit(limit)

        result = await self.session.execute(query)
        devices = result.scalars().all()
        total = (await self.session.execute(count_query)).scalar() or 0
        return devices, int(total)

    async def list_active(self) -> list[DeviceModel]:
        stmt = select(DeviceModel).where(DeviceModel.is_active.is_(True)).order_by(DeviceModel.device_code)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_group(self, group_id: int) -> list[DeviceModel]:
        stmt = (
            select(DeviceModel)
            .where(DeviceModel.group_id == group_id, DeviceModel.is_active.is_(True))
            .order_by(DeviceModel.device_code)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_codes(self, device_codes: Sequence[str]) -> list[DeviceModel]:
        if not device_codes:
            return []
        stmt = select(DeviceModel).where(
            DeviceModel.device_code.in_(list(device_codes)),
            DeviceModel.is_active.is_(True),
        )
        result = await self.session.execute(stmt)
        by_code = {model.device_code: model for model in result.scalars().all()}
        # keep the caller's order
        return [by_code[code] for code in dict.fromkeys(device_codes) if code in by_code]

    async def list_flagged_online(self) -> list[DeviceModel]:
        stmt = select(DeviceModel).where(DeviceModel.is_online.is_(True))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

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
        model = DeviceModel(
            device_code=device_code,
            device_name=device_name,
            certificate=certificate,
            auto_js_version=auto_js_version,
            group_id=group_id,
            device_info=device_info,
            is_online=False,
            is_active=True,
        )
        await self.add(model)
        await self.refresh(model)
        return model

    async def save(self, model: DeviceModel) -> DeviceModel:
        await self.session.flush()
        return model

    async def set_online(self, device_code: str, is_online: bool, *, seen_at: Optional[datetime] = None) -> bool:
        values: dict[str, object] = {"is_online": is_online}
        if seen_at is not None:
            values["last_online_at"] = seen_at
        stmt = (
            update(DeviceModel)
            .where(DeviceModel.device_code == device_code, DeviceModel.is_online.is_not(is_online))
            .values(**values)
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)

    async def get_group(self, group_id: int) -> DeviceGroupModel | None:
        return await self.session.get(DeviceGroupModel, group_id)

    async def create_group(self, *, name: str, description: Optional[str]) -> DeviceGroupModel:
        group = DeviceGroupModel(name=name, description=description)
        await self.add(group)
        return group
