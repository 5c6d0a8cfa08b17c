"""Operator-facing task management and the scheduler's periodic sweeps."""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from autojs_control.core.clock import Clock, ensure_aware, utcnow
from autojs_control.db.models import Task as TaskModel
from autojs_control.db.models import TaskTarget as TaskTargetModel
from autojs_control.domain.common.exceptions import (
    ScriptNotFoundError,
    TaskConfigurationError,
    TaskNotFoundError,
    TaskStateError,
)
from autojs_control.domain.devices.service import DeviceService
from autojs_control.domain.executions.lifecycle import InstructionLifecycle
from autojs_control.domain.executions.models import ExecutionStatus
from autojs_control.domain.instructions import (
    MAX_PRIORITY,
    MIN_PRIORITY,
    DeviceInstruction,
    DeviceLock,
    InstructionQueue,
    InstructionState,
    InstructionType,
)
from autojs_control.domain.notifications import Notifier
from autojs_control.domain.scripts.repository import ScriptRepository

from .fanout import TaskFanoutScheduler
from .lifecycle import TaskLifecycle
from .models import (
    FanoutResult,
    TargetStatus,
    Task,
    TaskStatistics,
    TaskStatus,
    TaskSummary,
    TaskTarget,
    TaskTargetType,
    TaskType,
)
from .repository import TaskRepository

logger = logging.getLogger(__name__)

STOP_INSTRUCTION_TIMEOUT = 300

# store states that map onto a finished target
_STORE_OUTCOMES = {
    InstructionState.SUCCESS.value: ExecutionStatus.SUCCESS,
    InstructionState.FAILED.value: ExecutionStatus.FAILED,
    InstructionState.TIMEOUT.value: ExecutionStatus.TIMEOUT,
    InstructionState.EXPIRED.value: ExecutionStatus.TIMEOUT,
    InstructionState.CANCELLED.value: ExecutionStatus.CANCELLED,
    InstructionState.CLEARED.value: ExecutionStatus.CANCELLED,
}


@dataclass(slots=True)
class TaskService:
    tasks: TaskRepository
    scripts: ScriptRepository
    devices: DeviceService
    fanout: TaskFanoutScheduler
    lifecycle: TaskLifecycle
    executions: InstructionLifecycle
    queue: InstructionQueue
    lock: DeviceLock
    notifier: Notifier
    clock: Clock = utcnow

    async def create_task(
        self,
        *,
        name: str,
        script_id: int,
        task_type: TaskType = TaskType.IMMEDIATE,
        target_type: TaskTargetType = TaskTargetType.SPECIFIC,
        target_device_ids: Optional[Sequence[str]] = None,
        target_group_id: Optional[int] = None,
        parameters: Optional[dict[str, Any]] = None,
        priority: int = 5,
        max_retries: int = 0,
        retry_cancelled: bool = False,
        scheduled_time: Optional[datetime] = None,
        recurrence_interval: Optional[int] = None,
    ) -> Task:
        task_type = TaskType(task_type)
        target_type = TaskTargetType(target_type)
        device_ids = list(dict.fromkeys(target_device_ids or []))
        self._validate(
            task_type=task_type,
            target_type=target_type,
            device_ids=device_ids,
            target_group_id=target_group_id,
            priority=priority,
            max_retries=max_retries,
            scheduled_time=scheduled_time,
            recurrence_interval=recurrence_interval,
        )

        script = await self.scripts.get_by_id(script_id)
        if script is None or not script.is_active:
            raise ScriptNotFoundError(f"脚本不存在或已停用: {script_id}")
        if target_type is TaskTargetType.GROUP:
            # raises when the group does not exist
            await self.devices.list_group(int(target_group_id))  # type: ignore[arg-type]

        model = await self.tasks.create_task(
            name=name,
            task_type=task_type.value,
            target_type=target_type.value,
            target_device_ids=json.dumps(device_ids, ensure_ascii=False) if device_ids else None,
            target_group_id=target_group_id if target_type is TaskTargetType.GROUP else None,
            script_id=script_id,
            parameters=json.dumps(parameters, ensure_ascii=False) if parameters else None,
            priority=priority,
            max_retries=max_retries,
            retry_cancelled=retry_cancelled,
            scheduled_time=scheduled_time,
            recurrence_interval=recurrence_interval,
            status=TaskStatus.PENDING.value,
        )
        logger.info("任务创建成功 taskId=%s name=%s type=%s", model.id, name, task_type.value)
        await self.notifier.task_created(Task.from_orm(model))
        await self.fanout.dispatch(model)
        return Task.from_orm(model)

    @staticmethod
    def _validate(
        *,
        task_type: TaskType,
        target_type: TaskTargetType,
        device_ids: list[str],
        target_group_id: Optional[int],
        priority: int,
        max_retries: int,
        scheduled_time: Optional[datetime],
        recurrence_interval: Optional[int],
    ) -> None:
        if target_type is TaskTargetType.SPECIFIC and not device_ids:
            raise TaskConfigurationError("指定设备任务必须提供 targetDeviceIds")
        if target_type is TaskTargetType.GROUP and target_group_id is None:
            raise TaskConfigurationError("分组任务必须提供 targetGroupId")
        if target_type is not TaskTargetType.SPECIFIC and device_ids:
            raise TaskConfigurationError("仅指定设备任务可以提供 targetDeviceIds")
        if target_type is not TaskTargetType.GROUP and target_group_id is not None:
            raise TaskConfigurationError("仅分组任务可以提供 targetGroupId")
        if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
            raise TaskConfigurationError(f"priority 必须在 {MIN_PRIORITY}-{MAX_PRIORITY} 之间")
        if max_retries < 0:
            raise TaskConfigurationError("maxRetries 不能为负数")
        if task_type is TaskType.SCHEDULED and scheduled_time is None:
            raise TaskConfigurationError("计划任务必须提供 scheduledTime")
        if task_type is TaskType.RECURRING and not recurrence_interval:
            raise TaskConfigurationError("周期任务必须提供 recurrenceInterval")
        if recurrence_interval is not None and recurrence_interval <= 0:
            raise TaskConfigurationError("recurrenceInterval 必须大于 0")

    async def get_task(self, task_id: int) -> Task:
        return Task.from_orm(await self._require(task_id))

    async def get_targets(self, task_id: int, *, include_superseded: bool = False) -> list[TaskTarget]:
        await self._require(task_id)
        models = await self.tasks.list_targets(task_id, include_superseded=include_superseded)
        return [TaskTarget.from_orm(model) for model in models]

    async def list_tasks(self, *, status: Optional[TaskStatus] = None, skip: int = 0, limit: int = 50) -> TaskSummary:
        models, total = await self.tasks.list_tasks(
            status=status.value if status else None, skip=skip, limit=limit
        )
        return TaskSummary(total=total, tasks=[Task.from_orm(model) for model in models])

    async def statistics(self) -> TaskStatistics:
        counts = await self.tasks.count_by_status()
        by_status = {status.value: counts.get(status.value, 0) for status in TaskStatus}
        return TaskStatistics(total=sum(by_status.values()), by_status=by_status)

    async def dispatch(self, task_id: int) -> FanoutResult:
        return await self.fanout.dispatch(await self._require(task_id))

    async def pause(self, task_id: int) -> Task:
        model = await self._require(task_id)
        await self.lifecycle.transition(model, TaskStatus.PAUSED)
        return Task.from_orm(model)

    async def resume(self, task_id: int) -> Task:
        model = await self._require(task_id)
        if TaskStatus(model.status) is not TaskStatus.PAUSED:
            raise TaskStateError("只有已暂停的任务可以恢复")
        if await self.tasks.list_open_targets(task_id=model.id):
            await self.lifecycle.transition(model, TaskStatus.RUNNING)
        else:
            await self.lifecycle.transition(model, TaskStatus.PENDING)
            await self.fanout.dispatch(model)
        return Task.from_orm(model)

    async def cancel(self, task_id: int, *, reason: str = "任务已取消") -> Task:
        """Cancel at once; devices get a stop_script without waiting for acks."""
        model = await self._require(task_id)
        if TaskStatus(model.status).is_terminal:
            raise TaskStateError("任务已结束，无法取消")
        await self.lifecycle.transition(model, TaskStatus.CANCELLED, reason=reason)

        targets = await self.tasks.list_open_targets(task_id=model.id)
        by_device: dict[str, list[TaskTargetModel]] = defaultdict(list)
        for target in targets:
            by_device[target.device_code].append(target)

        stopped = 0
        for device_code, device_targets in by_device.items():
            removed = set(await self.queue.cancel(device_code, task_id=model.id))
            for target in device_targets:
                if target.instruction_id in removed:
                    await self.executions.finalize(
                        target.instruction_id, device_code, ExecutionStatus.CANCELLED, message=reason
                    )
                    continue
                if await self.executions.apply_terminal(
                    target.instruction_id, device_code, ExecutionStatus.CANCELLED, message=reason
                ):
                    await self.send_stop(device_code, target.instruction_id, task_id=model.id)
                    stopped += 1
        logger.info("任务已取消 taskId=%s targets=%s stopSent=%s", model.id, len(targets), stopped)
        await self.lifecycle.refresh_counts(model)
        return Task.from_orm(model)

    async def send_stop(self, device_code: str, instruction_id: str, *, task_id: Optional[int] = None) -> DeviceInstruction:
        instruction = DeviceInstruction.create(
            InstructionType.STOP_SCRIPT,
            {"instructionId": instruction_id, "taskId": task_id},
            timeout=STOP_INSTRUCTION_TIMEOUT,
            priority=MAX_PRIORITY,
            correlation_id=instruction_id,
            created_time=self.clock(),
        )
        async with self.lock.hold(device_code):
            await self.queue.enqueue(device_code, instruction)
        await self.notifier.instruction_sent(device_code, instruction)
        return instruction

    async def run_due(self) -> list[int]:
        """Dispatch SCHEDULED tasks and recurring occurrences that are due."""
        now = self.clock()
        dispatched: list[int] = []
        for model in await self.tasks.list_by_status([TaskStatus.SCHEDULED.value]):
            if not self._is_due(model, now):
                continue
            try:
                await self.fanout.dispatch(model)
            except (ScriptNotFoundError, TaskConfigurationError) as exc:
                await self.lifecycle.fail(model, str(exc))
                continue
            dispatched.append(int(model.id))
        return dispatched

    @staticmethod
    def _is_due(model: TaskModel, now: datetime) -> bool:
        if model.task_type == TaskType.RECURRING.value and model.last_execution_time is not None:
            interval = timedelta(seconds=int(model.recurrence_interval or 0))
            return ensure_aware(model.last_execution_time) + interval <= now
        if model.scheduled_time is None:
            return True
        return ensure_aware(model.scheduled_time) <= now

    async def reconcile_targets(self, *, delivery_grace: int) -> int:
        """Close targets whose outcome is already known or overdue.

        Picks up store-side outcomes that never reached the database (a report
        that raced the fanout commit, expiry during drain) and times out
        delivered instructions that ran past ``timeout + delivery_grace``.
        """
        now = self.clock()
        closed = 0
        for target in await self.tasks.list_open_targets():
            state = await self.queue.get_status(target.instruction_id)
            outcome = _STORE_OUTCOMES.get(state or "")
            if outcome is not None:
                await self.executions.finalize(target.instruction_id, target.device_code, outcome)
                closed += 1
                continue

            if state == InstructionState.DELIVERED.value and target.status == TargetStatus.PENDING.value:
                target.status = TargetStatus.DELIVERED.value
                target.sent_at = now
                await self.tasks.save_target(target)
                continue

            started = target.sent_at or target.created_at
            if started is None:
                continue
            deadline = ensure_aware(started) + timedelta(seconds=int(target.timeout) + delivery_grace)
            if deadline > now:
                continue
            if state is None:
                # status key already gone; nothing left to race against
                await self.executions.finalize(
                    target.instruction_id, target.device_code, ExecutionStatus.TIMEOUT, message="指令状态已过期"
                )
                closed += 1
            elif await self.executions.apply_terminal(
                target.instruction_id, target.device_code, ExecutionStatus.TIMEOUT, message="执行超时"
            ):
                logger.warning(
                    "任务指令执行超时 taskId=%s deviceCode=%s instructionId=%s",
                    target.task_id,
                    target.device_code,
                    target.instruction_id,
                )
                closed += 1
        return closed

    async def cancel_device_instructions(self, device_code: str, *, reason: str = "设备离线") -> int:
        """Terminal CANCELLED for a device's delivered or running task instructions."""
        cancelled = 0
        for target in await self.tasks.list_open_targets(device_code=device_code):
            if target.status == TargetStatus.PENDING.value:
                continue
            if await self.executions.apply_terminal(
                target.instruction_id, device_code, ExecutionStatus.CANCELLED, message=reason
            ):
                await self.send_stop(device_code, target.instruction_id, task_id=target.task_id)
                cancelled += 1
        if cancelled:
            logger.warning("设备离线，已取消执行中的指令 deviceCode=%s count=%s", device_code, cancelled)
        return cancelled

    async def _require(self, task_id: int) -> TaskModel:
        model = await self.tasks.get_task(task_id)
        if model is None:
            raise TaskNotFoundError(f"任务不存在: {task_id}")
        return model


__all__ = ["STOP_INSTRUCTION_TIMEOUT", "TaskService"]
