"""Per-session wiring of the dispatch engine components."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from autojs_control.core.clock import Clock, utcnow
from autojs_control.core.config import Settings
from autojs_control.infrastructure.database.repositories.execution_repository import SqlExecutionRecordRepository
from autojs_control.infrastructure.database.repositories.script_repository import SqlScriptRepository
from autojs_control.infrastructure.database.repositories.task_repository import SqlTaskRepository
from autojs_control.infrastructure.ttl_store import TtlStore

from .commands import CommandService
from .devices import DeviceAuthService, DeviceLivenessTracker, DeviceService
from .executions import InstructionLifecycle
from .heartbeat import HeartbeatService
from .instructions import DeviceLock, InstructionQueue
from .monitoring import QueueMonitorService
from .notifications import Notifier
from .tasks import RetryEngine, TaskFanoutScheduler, TaskLifecycle, TaskService


@dataclass(slots=True)
class DispatchEngine:
    store: TtlStore
    auth: DeviceAuthService
    devices: DeviceService
    liveness: DeviceLivenessTracker
    lock: DeviceLock
    queue: InstructionQueue
    executions: InstructionLifecycle
    task_lifecycle: TaskLifecycle
    fanout: TaskFanoutScheduler
    retry: RetryEngine
    tasks: TaskService
    commands: CommandService
    heartbeat: HeartbeatService
    monitor: QueueMonitorService

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        *,
        store: TtlStore,
        notifier: Notifier,
        settings: Settings,
        clock: Clock = utcnow,
    ) -> "DispatchEngine":
        queue_cfg = settings.queue
        auth = DeviceAuthService(settings.secret_key, window=settings.security.signature_window, clock=clock)
        devices = DeviceService.with_session(session)
        liveness = DeviceLivenessTracker(
            store,
            online_ttl=queue_cfg.online_ttl,
            heartbeat_ttl=queue_cfg.heartbeat_ttl,
            clock=clock,
        )
        lock = DeviceLock(store, ttl=queue_cfg.lock_ttl)
        queue = InstructionQueue(
            store,
            lock=lock,
            status_ttl=queue_cfg.instruction_status_ttl,
            metrics_ttl=queue_cfg.metrics_ttl,
            clock=clock,
        )
        task_repository = SqlTaskRepository(session)
        script_repository = SqlScriptRepository(session)

        task_lifecycle = TaskLifecycle(task_repository, notifier, clock=clock)
        executions = InstructionLifecycle(
            store,
            SqlExecutionRecordRepository(session),
            notifier,
            listener=task_lifecycle,
            status_ttl=queue_cfg.instruction_status_ttl,
            clock=clock,
        )
        fanout = TaskFanoutScheduler(
            task_repository,
            script_repository,
            devices,
            queue,
            lock,
            task_lifecycle,
            notifier,
            clock=clock,
        )
        retry = RetryEngine(store, task_repository, fanout, counter_ttl=queue_cfg.retry_counter_ttl)
        task_lifecycle.bind_retry(retry)

        tasks = TaskService(
            tasks=task_repository,
            scripts=script_repository,
            devices=devices,
            fanout=fanout,
            lifecycle=task_lifecycle,
            executions=executions,
            queue=queue,
            lock=lock,
            notifier=notifier,
            clock=clock,
        )
        commands = CommandService(
            devices=devices,
            queue=queue,
            lock=lock,
            executions=executions,
            notifier=notifier,
            default_timeout=queue_cfg.default_instruction_timeout,
            clock=clock,
        )
        heartbeat = HeartbeatService(
            auth=auth,
            devices=devices,
            liveness=liveness,
            queue=queue,
            executions=executions,
            notifier=notifier,
            store=store,
            drain_limit=queue_cfg.drain_limit,
            min_poll_timeout=settings.heartbeat.min_poll_timeout,
            max_poll_timeout=settings.heartbeat.max_poll_timeout,
            metrics_ttl=queue_cfg.metrics_ttl,
            client_config=settings.heartbeat.client_config,
            clock=clock,
        )
        monitor = QueueMonitorService(devices=devices, queue=queue, liveness=liveness, store=store)
        return cls(
            store=store,
            auth=auth,
            devices=devices,
            liveness=liveness,
            lock=lock,
            queue=queue,
            executions=executions,
            task_lifecycle=task_lifecycle,
            fanout=fanout,
            retry=retry,
            tasks=tasks,
            commands=commands,
            heartbeat=heartbeat,
            monitor=monitor,
        )


__all__ = ["DispatchEngine"]
