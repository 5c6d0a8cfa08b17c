"""SQLAlchemy repository for script execution records."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from autojs_control.db.models import ScriptExecutionRecord as ExecutionRecordModel
from autojs_control.domain.common.repository import AsyncRepository


class SqlExecutionRecordRepository(AsyncRepository[ExecutionRecordModel]):
    async def get_by_instruction(self, instruction_id: str) -> ExecutionRecordModel | None:
        stmt = select(ExecutionRecordModel).where(ExecutionRecordModel.instruction_id == instruction_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_record(
        self,
        *,
        instruction_id: str,
        device_code: str,
        task_id: Optional[int],
        script_id: Optional[int],
        status: str,
    ) -> ExecutionRecordModel:
        model = ExecutionRecordModel(
            instruction_id=instruction_id,
            device_code=device_code,
            task_id=task_id,
            script_id=script_id,
            status=status,
        )
        return await self.add(model)

    async def save(self, model: ExecutionRecordModel) -> ExecutionRecordModel:
        await self.session.flush()
        return model
