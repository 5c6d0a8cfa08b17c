"""Task status machine driven by the outcomes of its fanned-out instructions."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from autojs_control.core.clock import Clock, utcnow
from autojs_control.db.models import Task as TaskModel
from autojs_control.db.models import TaskTarget as TaskTargetModel
from autojs_control.domain.common.exceptions import TaskStateError
from autojs_control.domain.executions.models import ExecutionStatus
from autojs_control.domain.instructions.models import DeviceInstruction
from autojs_control.domain.notifications import Notifier

from .models import Task, TargetStatus, TaskStatus, TaskType
from .repository import TaskRepository

if TYPE_CHECKING:
    from .retry import RetryEngine

logger = logging.getLogger(__name__)


class TaskLifecycle:
    """Owns every write to ``Task.status``.

    Also receives instruction delivery and completion callbacks, updates the
    matching target row, hands failures to the retry engine and rolls the
    surviving targets up into the task status.
    """

    def __init__(
        self,
        tasks: TaskRepository,
        notifier: Notifier,
        *,
        retry: Optional["RetryEngine"] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._tasks = tasks
        self._notifier = notifier
        self._retry = retry
        self._clock = clock

    def bind_retry(self, retry: "RetryEngine") -> None:
        self._retry = retry

    async def transition(
        self,
        task: TaskModel,
        status: TaskStatus,
        *,
        reason: Optional[str] = None,
    ) -> None:
        current = TaskStatus(task.status)
        if current is status:
            return
        if not current.can_transition_to(status):
            raise TaskStateError(f"任务状态不允许从 {current.value} 变更为 {status.value}")

        now = self._clock()
        task.status = status.value
        if status is TaskStatus.RUNNING and task.start_time is None:
            task.start_time = now
        if status.is_terminal:
            task.end_time = now
        if reason:
            task.failure_reason = reason
        await self._tasks.save(task)
        logger.info("任务状态变更 taskId=%s from=%s to=%s", task.id, current.value, status.value)
        await self._notifier.task_status_changed(Task.from_orm(task), current.value)

    async def fail(self, task: TaskModel, reason: str) -> None:
        logger.warning("任务执行失败 taskId=%s reason=%s", task.id, reason)
        await self.transition(task, TaskStatus.FAILED, reason=reason)

    async def instruction_delivered(self, instruction: DeviceInstruction, delivered_at: datetime) -> None:
        target = await self._tasks.get_target_by_instruction(instruction.instruction_id)
        if target is None or target.status != TargetStatus.PENDING.value:
            return
        target.status = TargetStatus.DELIVERED.value
        target.sent_at = delivered_at
        await self._tasks.save_target(target)

    async def instruction_finished(self, instruction_id: str, device_code: str, status: ExecutionStatus) -> None:
        target = await self._tasks.get_target_by_instruction(instruction_id)
        if target is None:
            return
        if not TargetStatus(target.status).is_open:
            return
        if target.device_code != device_code:
            logger.warning(
                "指令设备不匹配 instructionId=%s expected=%s actual=%s",
                instruction_id,
                target.device_code,
                device_code,
            )
            return

        target.status = TargetStatus(status.value).value
        target.completed_at = self._clock()
        await self._tasks.save_target(target)

        task = await self._tasks.get_task(target.task_id)
        if task is None:
            return
        if status.is_failure and self._retry is not None and not target.superseded:
            if await self._retry.handle_failure(task, target, status):
                await self.refresh_counts(task)
                return
        await self.refresh_aggregate(task)

    async def refresh_counts(self, task: TaskModel) -> list[TaskTargetModel]:
        targets = await self._tasks.list_targets(task.id)
        task.success_devices = sum(1 for t in targets if t.status == TargetStatus.SUCCESS.value)
        task.failed_devices = sum(
            1 for t in targets if t.status in (TargetStatus.FAILED.value, TargetStatus.TIMEOUT.value, TargetStatus.CANCELLED.value)
        )
        await self._tasks.save(task)
        return targets

    async def refresh_aggregate(self, task: TaskModel) -> None:
        """Roll the current occurrence's targets up into the task status."""
        targets = await self.refresh_counts(task)
        status = TaskStatus(task.status)
        if status not in (TaskStatus.RUNNING, TaskStatus.PAUSED):
            return
        if not targets or any(TargetStatus(t.status).is_open for t in targets):
            return
        finished = task.success_devices + task.failed_devices
        if finished < (task.total_devices or 0):
            return

        if task.task_type == TaskType.RECURRING.value:
            if status is TaskStatus.RUNNING:
                logger.info(
                    "周期任务本轮执行结束 taskId=%s success=%s failed=%s",
                    task.id,
                    task.success_devices,
                    task.failed_devices,
                )
                await self.transition(task, TaskStatus.SCHEDULED)
            return

        if task.failed_devices == 0:
            outcome = TaskStatus.COMPLETED
        elif task.success_devices == 0:
            outcome = TaskStatus.FAILED
        else:
            outcome = TaskStatus.PARTIALLY_COMPLETED
        reason = None
        if outcome is TaskStatus.FAILED:
            reason = f"所有设备执行失败 ({task.failed_devices}/{task.total_devices})"
        await self.transition(task, outcome, reason=reason)


__all__ = ["TaskLifecycle"]
