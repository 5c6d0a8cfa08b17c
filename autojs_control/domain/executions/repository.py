"""Repository protocol for script execution records."""

from __future__ import annotations

from typing import Optional, Protocol

from autojs_control.db.models import ScriptExecutionRecord as ExecutionRecordModel


class ExecutionRecordRepository(Protocol):
    async def get_by_instruction(self, instruction_id: str) -> ExecutionRecordModel | None:
        ...

    async def create_record(
        self,
        *,
        instruction_id: str,
        device_code: str,
        task_id: Optional[int],
        script_id: Optional[int],
        status: str,
    ) -> ExecutionRecordModel:
        ...

    async def save(self, model: ExecutionRecordModel) -> ExecutionRecordModel:
        ...
