"""Outbound notifications for logging and alerting consumers.

The engine calls the hub after each state change has been persisted; sinks
are observers only, so a failing sink is logged and never propagated.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Optional, Protocol

if TYPE_CHECKING:
    from autojs_control.domain.executions.models import ExecutionRecord
    from autojs_control.domain.instructions.models import DeviceInstruction
    from autojs_control.domain.tasks.models import Task

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def task_created(self, task: "Task") -> None:
        ...

    async def task_status_changed(self, task: "Task", previous: str) -> None:
        ...

    async def instruction_sent(self, device_code: str, instruction: "DeviceInstruction") -> None:
        ...

    async def script_executed(self, record: "ExecutionRecord") -> None:
        ...

    async def device_status_changed(self, device_code: str, online: bool) -> None:
        ...


class LoggingNotifier:
    """Default sink: one structured log line per event."""

    def __init__(self, name: str = "autojs_control.events") -> None:
        self._logger = logging.getLogger(name)

    async def task_created(self, task: "Task") -> None:
        self._logger.info("任务已创建 taskId=%s name=%s type=%s", task.id, task.name, task.task_type.value)

    async def task_status_changed(self, task: "Task", previous: str) -> None:
        self._logger.info(
            "任务状态变更 taskId=%s from=%s to=%s success=%s failed=%s total=%s",
            task.id,
            previous,
            task.status.value,
            task.success_devices,
            task.failed_devices,
            task.total_devices,
        )

    async def instruction_sent(self, device_code: str, instruction: "DeviceInstruction") -> None:
        self._logger.info(
            "指令已发送 deviceCode=%s instructionId=%s type=%s taskId=%s",
            device_code,
            instruction.instruction_id,
            instruction.type.value,
            instruction.task_id,
        )

    async def script_executed(self, record: "ExecutionRecord") -> None:
        self._logger.info(
            "脚本执行结果 deviceCode=%s instructionId=%s status=%s duration=%s",
            record.device_code,
            record.instruction_id,
            record.status.value,
            record.duration,
        )

    async def device_status_changed(self, device_code: str, online: bool) -> None:
        self._logger.info("设备状态变更 deviceCode=%s online=%s", device_code, online)


class NotificationHub:
    """Fans each event out to every registered sink."""

    def __init__(self, sinks: Optional[Iterable[Notifier]] = None) -> None:
        self._sinks: list[Notifier] = list(sinks) if sinks is not None else [LoggingNotifier()]

    def register(self, sink: Notifier) -> None:
        self._sinks.append(sink)

    async def _emit(self, event: str, call: Callable[[Notifier], Awaitable[None]]) -> None:
        for sink in list(self._sinks):
            try:
                await call(sink)
            except Exception:
                logger.exception("通知处理失败 event=%s sink=%s", event, type(sink).__name__)

    async def task_created(self, task: "Task") -> None:
        await self._emit("task_created", lambda sink: sink.task_created(task))

    async def task_status_changed(self, task: "Task", previous: str) -> None:
        await self._emit("task_status_changed", lambda sink: sink.task_status_changed(task, previous))

    async def instruction_sent(self, device_code: str, instruction: "DeviceInstruction") -> None:
        await self._emit("instruction_sent", lambda sink: sink.instruction_sent(device_code, instruction))

    async def script_executed(self, record: "ExecutionRecord") -> None:
        await self._emit("script_executed", lambda sink: sink.script_executed(record))

    async def device_status_changed(self, device_code: str, online: bool) -> None:
        await self._emit("device_status_changed", lambda sink: sink.device_status_changed(device_code, online))


__all__ = ["LoggingNotifier", "NotificationHub", "Notifier"]
