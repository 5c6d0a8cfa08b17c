"""Queue and liveness statistics for operators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from autojs_control.domain.common.exceptions import DeviceNotFoundError
from autojs_control.domain.devices.liveness import DeviceLivenessTracker
from autojs_control.domain.devices.service import DeviceService
from autojs_control.domain.instructions import InstructionQueue, keys
from autojs_control.infrastructure.ttl_store import TtlStore


@dataclass(slots=True)
class DeviceQueueStats:
    device_code: str
    online: bool
    queue_depth: int
    last_heartbeat: Optional[int]
    metrics: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class FleetQueueStats:
    total_devices: int
    online_devices: int
    total_queued: int
    busy_devices: list[DeviceQueueStats] = field(default_factory=list)


@dataclass(slots=True)
class QueueMonitorService:
    devices: DeviceService
    queue: InstructionQueue
    liveness: DeviceLivenessTracker
    store: TtlStore
    busy_limit: int = 10

    async def device_stats(self, device_code: str) -> DeviceQueueStats:
        if await self.devices.get_by_code(device_code) is None:
            raise DeviceNotFoundError(f"设备不存在: {device_code}")
        return await self._stats(device_code, with_metrics=True)

    async def fleet_stats(self) -> FleetQueueStats:
        devices = await self.devices.list_all_active()
        stats = [await self._stats(device.device_code, with_metrics=False) for device in devices]
        busy = sorted((item for item in stats if item.queue_depth > 0), key=lambda item: item.queue_depth, reverse=True)
        return FleetQueueStats(
            total_devices=len(stats),
            online_devices=sum(1 for item in stats if item.online),
            total_queued=sum(item.queue_depth for item in stats),
            busy_devices=busy[: self.busy_limit],
        )

    async def _stats(self, device_code: str, *, with_metrics: bool) -> DeviceQueueStats:
        metrics = await self.store.hgetall(keys.device_metrics(device_code)) if with_metrics else {}
        return DeviceQueueStats(
            device_code=device_code,
            online=await self.liveness.is_online(device_code),
            queue_depth=await self.queue.peek_depth(device_code),
            last_heartbeat=await self.liveness.last_heartbeat(device_code),
            metrics=metrics,
        )
