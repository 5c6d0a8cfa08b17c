"""Expands a task into one execute_script instruction per target device."""

from __future__ import annotations

import json
import logging
from typing import Optional

from autojs_control.core.clock import Clock, ensure_aware, utcnow
from autojs_control.db.models import Script as ScriptModel
from autojs_control.db.models import Task as TaskModel
from autojs_control.db.models import TaskTarget as TaskTargetModel
from autojs_control.domain.common.exceptions import ScriptNotFoundError, TaskConfigurationError, TaskStateError
from autojs_control.domain.devices.models import Device
from autojs_control.domain.devices.service import DeviceService
from autojs_control.domain.instructions import (
    MAX_TIMEOUT,
    MIN_TIMEOUT,
    DeviceInstruction,
    DeviceLock,
    InstructionQueue,
    InstructionType,
    generate_instruction_id,
)
from autojs_control.domain.notifications import Notifier
from autojs_control.domain.scripts.repository import ScriptRepository
from autojs_control.infrastructure.ttl_store import StoreUnavailableError

from .lifecycle import TaskLifecycle
from .models import FanoutResult, TargetStatus, TaskStatus, TaskTarget, TaskTargetType
from .repository import TaskRepository

logger = logging.getLogger(__name__)

NO_DEVICES_REASON = "没有可用的目标设备"
ALL_SENDS_FAILED_REASON = "所有设备发送指令失败"


class TaskFanoutScheduler:
    def __init__(
        self,
        tasks: TaskRepository,
        scripts: ScriptRepository,
        devices: DeviceService,
        queue: InstructionQueue,
        lock: DeviceLock,
        lifecycle: TaskLifecycle,
        notifier: Notifier,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._tasks = tasks
        self._scripts = scripts
        self._devices = devices
        self._queue = queue
        self._lock = lock
        self._lifecycle = lifecycle
        self._notifier = notifier
        self._clock = clock

    async def dispatch(self, task: TaskModel) -> FanoutResult:
        """Fan a PENDING or SCHEDULED task out to its devices.

        A PENDING task whose ``scheduled_time`` is still in the future is only
        moved to SCHEDULED; the scheduler worker calls back when it is due.
        Each call produces a fresh instruction set, superseding the targets of
        the previous occurrence.
        """
        status = TaskStatus(task.status)
        if status not in (TaskStatus.PENDING, TaskStatus.SCHEDULED):
            raise TaskStateError(f"任务当前状态不可分发: {status.value}")

        result = FanoutResult(task_id=task.id)
        now = self._clock()
        if (
            status is TaskStatus.PENDING
            and task.scheduled_time is not None
            and ensure_aware(task.scheduled_time) > now
        ):
            await self._lifecycle.transition(task, TaskStatus.SCHEDULED)
            logger.info("任务已计划执行 taskId=%s scheduledTime=%s", task.id, task.scheduled_time)
            result.deferred = True
            return result

        script = await self.load_script(task.script_id)
        devices = await self.resolve_devices(task)
        if not devices:
            await self._lifecycle.fail(task, NO_DEVICES_REASON)
            return result

        await self._tasks.supersede_targets(task.id)
        task.success_devices = 0
        task.failed_devices = 0

        for device in devices:
            try:
                target = await self.dispatch_to_device(task, script, device.device_code)
            except StoreUnavailableError:
                logger.error(
                    "发送任务指令失败 taskId=%s deviceCode=%s",
                    task.id,
                    device.device_code,
                    exc_info=True,
                )
                result.failed_devices.append(device.device_code)
                continue
            result.enqueued.append(TaskTarget.from_orm(target))

        if not result.enqueued:
            await self._lifecycle.fail(task, ALL_SENDS_FAILED_REASON)
            return result

        task.total_devices = len(result.enqueued)
        task.last_execution_time = now
        await self._tasks.save(task)
        await self._lifecycle.transition(task, TaskStatus.RUNNING)
        logger.info(
            "任务分发完成 taskId=%s devices=%s failed=%s",
            task.id,
            len(result.enqueued),
            len(result.failed_devices),
        )
        return result

    async def resolve_devices(self, task: TaskModel) -> list[Device]:
        target_type = TaskTargetType(task.target_type)
        if target_type is TaskTargetType.ALL:
            return await self._devices.list_all_active()
        if target_type is TaskTargetType.GROUP:
            if task.target_group_id is None:
                raise TaskConfigurationError("分组任务缺少目标分组")
            return await self._devices.list_group(task.target_group_id)
        codes = json.loads(task.target_device_ids) if task.target_device_ids else []
        if not codes:
            raise TaskConfigurationError("指定设备任务缺少目标设备")
        return await self._devices.list_by_codes(codes)

    async def dispatch_to_device(
        self,
        task: TaskModel,
        script: ScriptModel,
        device_code: str,
        *,
        correlation_id: Optional[str] = None,
        attempt: int = 1,
    ) -> TaskTargetModel:
        """Queue one execute_script instruction and track it as a target.

        Raises StoreUnavailableError when the instruction could not be queued;
        the target row is then left superseded so it never counts.
        """
        instruction_id = generate_instruction_id()
        timeout = min(max(int(script.timeout or MAX_TIMEOUT), MIN_TIMEOUT), MAX_TIMEOUT)
        instruction = DeviceInstruction(
            instruction_id=instruction_id,
            type=InstructionType.EXECUTE_SCRIPT,
            data={
                "scriptId": script.id,
                "parameters": json.loads(task.parameters) if task.parameters else {},
            },
            timeout=timeout,
            priority=task.priority,
            task_id=task.id,
            script_id=script.id,
            correlation_id=correlation_id or instruction_id,
            created_time=self._clock(),
        )
        target = await self._tasks.add_target(
            task_id=task.id,
            device_code=device_code,
            instruction_id=instruction_id,
            correlation_id=instruction.correlation_id or instruction_id,
            attempt=attempt,
            timeout=timeout,
        )
        try:
            async with self._lock.hold(device_code):
                await self._queue.enqueue(device_code, instruction)
        except StoreUnavailableError:
            target.status = TargetStatus.FAILED.value
            target.superseded = True
            await self._tasks.save_target(target)
            raise
        await self._notifier.instruction_sent(device_code, instruction)
        return target

    async def load_script(self, script_id: int) -> ScriptModel:
        script = await self._scripts.get_by_id(script_id)
        if script is None or not script.is_active:
            raise ScriptNotFoundError(f"脚本不存在或已停用: {script_id}")
        return script


__all__ = ["ALL_SENDS_FAILED_REASON", "NO_DEVICES_REASON", "TaskFanoutScheduler"]
