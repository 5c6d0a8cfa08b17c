"""Domain service for operator-issued device instructions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from autojs_control.core.clock import Clock, utcnow
from autojs_control.domain.common.exceptions import DeviceNotFoundError
from autojs_control.domain.devices.service import DeviceService
from autojs_control.domain.executions.lifecycle import InstructionLifecycle
from autojs_control.domain.executions.models import ExecutionStatus
from autojs_control.domain.instructions import DeviceInstruction, DeviceLock, InstructionQueue, InstructionType
from autojs_control.domain.notifications import Notifier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandService:
    devices: DeviceService
    queue: InstructionQueue
    lock: DeviceLock
    executions: InstructionLifecycle
    notifier: Notifier
    default_timeout: int = 300
    clock: Clock = utcnow

    async def send(
        self,
        device_code: str,
        *,
        type: InstructionType,
        data: Optional[dict[str, Any]] = None,
        priority: int = 5,
        timeout: Optional[int] = None,
        script_id: Optional[int] = None,
    ) -> DeviceInstruction:
        await self._require_device(device_code)
        instruction = DeviceInstruction.create(
            type,
            data,
            timeout=timeout or self.default_timeout,
            priority=priority,
            script_id=script_id,
            created_time=self.clock(),
        )
        async with self.lock.hold(device_code):
            await self.queue.enqueue(device_code, instruction)
        await self.notifier.instruction_sent(device_code, instruction)
        return instruction

    async def cancel(self, device_code: str, instruction_id: str) -> bool:
        removed = await self.queue.cancel(device_code, instruction_id=instruction_id)
        for cancelled_id in removed:
            await self.executions.finalize(cancelled_id, device_code, ExecutionStatus.CANCELLED, message="指令已取消")
        return bool(removed)

    async def clear(self, device_code: str) -> int:
        await self._require_device(device_code)
        removed = await self.queue.clear(device_code)
        for cleared_id in removed:
            await self.executions.finalize(cleared_id, device_code, ExecutionStatus.CANCELLED, message="设备队列已清空")
        return len(removed)

    async def preview(self, device_code: str, limit: int = 10) -> list[DeviceInstruction]:
        return await self.queue.preview(device_code, limit)

    async def status(self, instruction_id: str) -> Optional[str]:
        return await self.queue.get_status(instruction_id)

    async def _require_device(self, device_code: str) -> None:
        if await self.devices.get_by_code(device_code) is None:
            raise DeviceNotFoundError(f"设备不存在: {device_code}")
