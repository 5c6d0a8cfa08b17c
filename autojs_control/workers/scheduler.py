"""Background sweeps: due tasks, overdue instructions and device liveness.

Every step runs in its own database session and commits on its own, so a
failure in one step (or for one device) is logged and the sweep moves on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autojs_control.core.container import ApplicationContainer
from autojs_control.domain.engine import DispatchEngine

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepReport:
    dispatched: list[int] = field(default_factory=list)
    reconciled: int = 0
    offline: list[str] = field(default_factory=list)
    cancelled: int = 0
    errors: int = 0


class SchedulerWorker:
    def __init__(
        self,
        container: ApplicationContainer,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        interval: float = 10.0,
        delivery_grace: int = 60,
    ) -> None:
        self._container = container
        self._session_factory = session_factory
        self._interval = interval
        self._delivery_grace = delivery_grace
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name="autojs-scheduler")
        logger.info("调度器已启动 interval=%ss", self._interval)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("调度器已停止")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> SweepReport:
        report = SweepReport()
        await self._run_due(report)
        await self._reconcile(report)
        await self._sweep_liveness(report)
        if report.dispatched or report.reconciled or report.offline:
            logger.info(
                "调度巡检完成 dispatched=%s reconciled=%s offline=%s cancelled=%s",
                report.dispatched,
                report.reconciled,
                report.offline,
                report.cancelled,
            )
        return report

    @asynccontextmanager
    async def _engine(self) -> AsyncIterator[DispatchEngine]:
        async with self._session_factory() as session:
            try:
                yield self._container.engine(session)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _run_due(self, report: SweepReport) -> None:
        try:
            async with self._engine() as engine:
                report.dispatched = await engine.tasks.run_due()
        except Exception:
            report.errors += 1
            logger.exception("到期任务下发失败")

    async def _reconcile(self, report: SweepReport) -> None:
        try:
            async with self._engine() as engine:
                report.reconciled = await engine.tasks.reconcile_targets(delivery_grace=self._delivery_grace)
        except Exception:
            report.errors += 1
            logger.exception("任务指令对账失败")

    async def _sweep_liveness(self, report: SweepReport) -> None:
        try:
            async with self._engine() as engine:
                flagged = [device.device_code for device in await engine.devices.list_flagged_online()]
        except Exception:
            report.errors += 1
            logger.exception("读取在线设备列表失败")
            return

        for device_code in flagged:
            try:
                async with self._engine() as engine:
                    if await engine.liveness.is_online(device_code):
                        continue
                    if not await engine.devices.mark_offline(device_code):
                        continue
                    logger.warning("设备心跳超时，标记为离线 deviceCode=%s", device_code)
                    report.offline.append(device_code)
                    await self._container.notifier.device_status_changed(device_code, False)
                    report.cancelled += await engine.tasks.cancel_device_instructions(device_code)
            except Exception:
                report.errors += 1
                logger.exception("设备离线处理失败 deviceCode=%s", device_code)


__all__ = ["SchedulerWorker", "SweepReport"]
