"""Heartbeat/long-poll protocol and signed execution reports.

A heartbeat is authenticated (timestamp window, then signature), refreshes
liveness, and then drains the device queue. When the queue is empty the call
blocks on the device's wake key until an instruction is enqueued or the
poll timeout elapses.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from autojs_control.core.clock import Clock, utcnow
from autojs_control.domain.common.exceptions import UnknownDeviceError
from autojs_control.domain.devices.auth import DeviceAuthService
from autojs_control.domain.devices.liveness import DeviceLivenessTracker
from autojs_control.domain.devices.models import Device
from autojs_control.domain.devices.service import DeviceService
from autojs_control.domain.executions.lifecycle import InstructionLifecycle
from autojs_control.domain.executions.models import ExecutionReport, ReportOutcome
from autojs_control.domain.instructions import DeviceInstruction, InstructionQueue, keys
from autojs_control.domain.notifications import Notifier
from autojs_control.infrastructure.ttl_store import TtlStore

from .models import HeartbeatRequest, HeartbeatResult

logger = logging.getLogger(__name__)


class HeartbeatService:
    def __init__(
        self,
        *,
        auth: DeviceAuthService,
        devices: DeviceService,
        liveness: DeviceLivenessTracker,
        queue: InstructionQueue,
        executions: InstructionLifecycle,
        notifier: Notifier,
        store: TtlStore,
        drain_limit: int = 50,
        min_poll_timeout: int = 1,
        max_poll_timeout: int = 60,
        metrics_ttl: int = keys.TTL_METRICS,
        client_config: Optional[dict[str, Any]] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._auth = auth
        self._devices = devices
        self._liveness = liveness
        self._queue = queue
        self._executions = executions
        self._notifier = notifier
        self._store = store
        self._drain_limit = drain_limit
        self._min_poll_timeout = min_poll_timeout
        self._max_poll_timeout = max_poll_timeout
        self._metrics_ttl = metrics_ttl
        self._client_config = client_config
        self._clock = clock

    @property
    def client_config(self) -> Optional[dict[str, Any]]:
        return self._client_config

    async def authenticate(self, device_code: str, signature: str, timestamp: int, *fields: object) -> Device:
        """Reject stale timestamps before touching the registry or the signature."""
        self._auth.check_timestamp(device_code, timestamp)
        device = await self._devices.get_by_code(device_code)
        if device is None or not device.is_active:
            logger.warning("未知或已禁用的设备请求 deviceCode=%s", device_code)
            raise UnknownDeviceError("设备不存在或已禁用")
        self._auth.verify_signature(device_code, signature, device.certificate, device_code, *fields, timestamp)
        return device

    async def accept(self, request: HeartbeatRequest) -> Device:
        """Authenticate and record liveness; no instructions are drained yet."""
        device = await self.authenticate(request.device_code, request.signature, request.timestamp)
        now = self._clock()
        await self._liveness.record_heartbeat(device.device_code, now)
        came_online = await self._devices.touch(
            device.device_code,
            seen_at=now,
            auto_js_version=request.auto_js_version,
            device_info=request.device_info or None,
        )
        await self._store_metrics(device.device_code, request.monitor_data)
        if came_online:
            logger.info("设备上线 deviceCode=%s", device.device_code)
            await self._notifier.device_status_changed(device.device_code, True)
        return device

    async def poll(
        self,
        device_code: str,
        poll_timeout: float,
        *,
        wait: bool = True,
        disconnected: Optional[asyncio.Event] = None,
    ) -> HeartbeatResult:
        """Drain the queue, waiting up to ``poll_timeout`` seconds for work.

        Only the wait is abandoned when ``disconnected`` is set; a drain in
        progress always completes so no delivered instruction is lost.
        """
        timeout = self.clamp_timeout(poll_timeout)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        expired = 0
        while True:
            drained = await self._queue.drain(device_code, self._drain_limit)
            expired += len(drained.expired)
            for instruction in drained.expired:
                await self._executions.record_expired(device_code, instruction)
            if drained.instructions:
                await self._executions.mark_delivered(device_code, drained.instructions)
                return self._result(device_code, drained.instructions, expired)
            remaining = deadline - loop.time()
            if not wait or remaining <= 0:
                return self._result(device_code, [], expired)
            if not await self._wait(device_code, remaining, disconnected):
                logger.info("设备连接已断开，结束长轮询 deviceCode=%s", device_code)
                return self._result(device_code, [], expired)

    async def _wait(self, device_code: str, timeout: float, disconnected: Optional[asyncio.Event]) -> bool:
        """Wait for a wake token; False once the client has gone away."""
        if disconnected is None:
            await self._queue.wait_for_work(device_code, timeout)
            return True
        if disconnected.is_set():
            return False
        waiter = asyncio.ensure_future(self._queue.wait_for_work(device_code, timeout))
        gone = asyncio.ensure_future(disconnected.wait())
        try:
            await asyncio.wait({waiter, gone}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (waiter, gone):
                if not pending.done():
                    pending.cancel()
        if waiter.done() and not waiter.cancelled():
            # surface store failures raised while waiting
            waiter.result()
        return not disconnected.is_set()

    async def heartbeat(
        self,
        request: HeartbeatRequest,
        *,
        wait: bool = True,
        disconnected: Optional[asyncio.Event] = None,
    ) -> HeartbeatResult:
        device = await self.accept(request)
        return await self.poll(device.device_code, request.poll_timeout, wait=wait, disconnected=disconnected)

    async def report(self, report: ExecutionReport, *, signature: str, timestamp: int) -> ReportOutcome:
        await self.authenticate(report.device_code, signature, timestamp, report.instruction_id)
        return await self._executions.report(report)

    def clamp_timeout(self, poll_timeout: float) -> float:
        return float(min(max(poll_timeout, self._min_poll_timeout), self._max_poll_timeout))

    def _result(self, device_code: str, instructions: list[DeviceInstruction], expired: int) -> HeartbeatResult:
        if instructions:
            logger.info(
                "下发指令 deviceCode=%s count=%s ids=%s",
                device_code,
                len(instructions),
                [instruction.instruction_id for instruction in instructions],
            )
        return HeartbeatResult(
            instructions=instructions,
            server_time=self._clock(),
            config=self._client_config,
            expired=expired,
        )

    async def _store_metrics(self, device_code: str, monitor_data: dict[str, Any]) -> None:
        metrics_key = keys.device_metrics(device_code)
        await self._store.hincrby(metrics_key, "heartbeatCount", 1, ttl=self._metrics_ttl)
        if not monitor_data:
            return
        mapping = {
            str(name): value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
            for name, value in monitor_data.items()
        }
        mapping["lastUpdate"] = self._clock().isoformat()
        await self._store.hset(metrics_key, mapping, ttl=self._metrics_ttl)


__all__ = ["HeartbeatService"]
