"""SQLAlchemy repository for tasks and their per-device targets."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import func, select, update

from autojs_control.db.models import Task as TaskModel
from autojs_control.db.models import TaskTarget as TaskTargetModel
from autojs_control.domain.common.repository import AsyncRepository

_OPEN_TARGET_STATUSES = ("pending", "delivered", "running")


class SqlTaskRepository(AsyncRepository[TaskModel]):
    async def create_task(
        self,
        *,
        name: str,
        task_type: str,
        target_type: str,
        target_device_ids: Optional[str],
        target_group_id: Optional[int],
        script_id: int,
        parameters: Optional[str],
        priority: int,
        max_retries: int,
        retry_cancelled: bool,
        scheduled_time: Optional[datetime],
        recurrence_interval: Optional[int],
        status: str,
    ) -> TaskModel:
        model = TaskModel(
            name=name,
            task_type=task_type,
            target_type=target_type,
            target_device_ids=target_device_ids,
            target_group_id=target_group_id,
            script_id=script_id,
            parameters=parameters,
            priority=priority,
            max_retries=max_retries,
            retry_count=0,
            retry_cancelled=retry_cancelled,
            scheduled_time=scheduled_time,
            recurrence_interval=recurrence_interval,
            status=status,
            total_devices=0,
            success_devices=0,
            failed_devices=0,
        )
        await self.add(model)
        await self.session.refresh(model)
        return model

    async def get_task(self, task_id: int) -> TaskModel | None:
        return await self.session.get(TaskModel, task_id)

    async def list_tasks(
        self, *, status: Optional[str], skip: int, limit: int
    ) -> tuple[Sequence[TaskModel], int]:
        query = select(TaskModel).order_by(TaskModel.id.desc())
        count_query = select(func.count(TaskModel.id))
        if status:
            query = query.where(TaskModel.status == status)
            count_query = count_query.where(TaskModel.status == status)
        if skip:
            query = query.offset(skip)
        if limit:
            query = query.limit(limit)

        result = await self.session.execute(query)
        tasks = result.scalars().all()
        total = (await self.session.execute(count_query)).scalar() or 0
        return tasks, int(total)

    async def list_by_status(self, statuses: Sequence[str]) -> list[TaskModel]:
        stmt = select(TaskModel).where(TaskModel.status.in_(list(statuses))).order_by(TaskModel.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_status(self) -> dict[str, int]:
        stmt = select(TaskModel.status, func.count(TaskModel.id)).group_by(TaskModel.status)
        result = await self.session.execute(stmt)
        return {status: int(count) for status, count in result.all()}

    async def save(self, model: TaskModel) -> TaskModel:
        await self.session.flush()
        return model

    async def claim_retry(self, model: TaskModel) -> bool:
        await self.session.flush()
        # conditional UPDATE keeps concurrent failures from overshooting max_retries
        stmt = (
            update(TaskModel)
            .where(TaskModel.id == model.id, TaskModel.retry_count < TaskModel.max_retries)
            .values(retry_count=TaskModel.retry_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if not result.rowcount:
            return False
        await self.session.refresh(model, attribute_names=["retry_count"])
        return True

    async def add_target(
        self,
        *,
        task_id: int,
        device_code: str,
        instruction_id: str,
        correlation_id: str,
        attempt: int,
        timeout: int,
    ) -> TaskTargetModel:
        model = TaskTargetModel(
            task_id=task_id,
            device_code=device_code,
            instruction_id=instruction_id,
            correlation_id=correlation_id,
            attempt=attempt,
            timeout=timeout,
            status="pending",
            superseded=False,
        )
        self.session.add(model)
        await self.session.flush()
        return model

    async def get_target_by_instruction(self, instruction_id: str) -> TaskTargetModel | None:
        stmt = select(TaskTargetModel).where(TaskTargetModel.instruction_id == instruction_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_targets(self, task_id: int, *, include_superseded: bool = False) -> list[TaskTargetModel]:
        stmt = select(TaskTargetModel).where(TaskTargetModel.task_id == task_id)
        if not include_superseded:
            stmt = stmt.where(TaskTargetModel.superseded.is_(False))
        stmt = stmt.order_by(TaskTargetModel.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def supersede_targets(self, task_id: int) -> int:
        stmt = (
            update(TaskTargetModel)
            .where(TaskTargetModel.task_id == task_id, TaskTargetModel.superseded.is_(False))
            .values(superseded=True)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def list_open_targets(
        self, *, task_id: Optional[int] = None, device_code: Optional[str] = None
    ) -> list[TaskTargetModel]:
        stmt = select(TaskTargetModel).where(
            TaskTargetModel.superseded.is_(False),
            TaskTargetModel.status.in_(_OPEN_TARGET_STATUSES),
        )
        if task_id is not None:
            stmt = stmt.where(TaskTargetModel.task_id == task_id)
        if device_code is not None:
            stmt = stmt.where(TaskTargetModel.device_code == device_code)
        stmt = stmt.order_by(TaskTargetModel.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def save_target(self, model: TaskTargetModel) -> TaskTargetModel:
        await self.session.flush()
        return model
