"""Protocol for task and task target persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from autojs_control.db.models import Task as TaskModel
from autojs_control.db.models import TaskTarget as TaskTargetModel


class TaskRepository(Protocol):
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
        ...

    async def get_task(self, task_id: int) -> TaskModel | None:
        ...

    async def refresh(self, model: TaskModel) -> TaskModel:
        ...

    async def list_tasks(
        self, *, status: Optional[str], skip: int, limit: int
    ) -> tuple[Sequence[TaskModel], int]:
        ...

    async def list_by_status(self, statuses: Sequence[str]) -> list[TaskModel]:
        ...

    async def count_by_status(self) -> dict[str, int]:
        ...

    async def save(self, model: TaskModel) -> TaskModel:
        ...

    async def claim_retry(self, model: TaskModel) -> bool:
        ...

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
        ...

    async def get_target_by_instruction(self, instruction_id: str) -> TaskTargetModel | None:
        ...

    async def list_targets(self, task_id: int, *, include_superseded: bool = False) -> list[TaskTargetModel]:
        ...

    async def supersede_targets(self, task_id: int) -> int:
        ...

    async def list_open_targets(
        self, *, task_id: Optional[int] = None, device_code: Optional[str] = None
    ) -> list[TaskTargetModel]:
        ...

    async def save_target(self, model: TaskTargetModel) -> TaskTargetModel:
        ...
