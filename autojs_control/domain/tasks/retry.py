"""Bounded per-device retries of failed task instructions."""

from __future__ import annotations

import logging

from autojs_control.db.models import Task as TaskModel
from autojs_control.db.models import TaskTarget as TaskTargetModel
from autojs_control.domain.common.exceptions import ScriptNotFoundError
from autojs_control.domain.executions.models import ExecutionStatus
from autojs_control.domain.instructions import keys
from autojs_control.infrastructure.ttl_store import StoreUnavailableError, TtlStore

from .fanout import TaskFanoutScheduler
from .models import TaskStatus
from .repository import TaskRepository

logger = logging.getLogger(__name__)


class RetryEngine:
    """Re-dispatches a single failed device of a task, never the whole task.

    Two guards keep the retry count exact. ``instruction_retry:<id>`` is
    incremented atomically, so only the first caller handles a given failed
    instruction. The task's ``retry_count`` is then claimed with a
    conditional UPDATE, so concurrent failures can never exceed
    ``max_retries``.
    """

    def __init__(
        self,
        store: TtlStore,
        tasks: TaskRepository,
        fanout: TaskFanoutScheduler,
        *,
        counter_ttl: int = keys.TTL_RETRY_COUNTER,
    ) -> None:
        self._store = store
        self._tasks = tasks
        self._fanout = fanout
        self._counter_ttl = counter_ttl

    def is_eligible(self, task: TaskModel, status: ExecutionStatus) -> bool:
        if status is ExecutionStatus.CANCELLED and not task.retry_cancelled:
            return False
        if not status.is_failure:
            return False
        task_status = TaskStatus(task.status)
        if task_status.is_terminal or task_status is TaskStatus.PAUSED:
            return False
        return (task.retry_count or 0) < (task.max_retries or 0)

    async def handle_failure(self, task: TaskModel, target: TaskTargetModel, status: ExecutionStatus) -> bool:
        """Returns True when a replacement instruction was queued."""
        if not self.is_eligible(task, status):
            return False
        try:
            script = await self._fanout.load_script(task.script_id)
        except ScriptNotFoundError:
            logger.warning("重试失败，脚本不可用 taskId=%s scriptId=%s", task.id, task.script_id)
            return False

        handled = await self._store.incr(keys.instruction_retry(target.instruction_id), ttl=self._counter_ttl)
        if handled > 1:
            logger.info("指令失败已处理过重试 instructionId=%s", target.instruction_id)
            return False

        if not await self._tasks.claim_retry(task):
            logger.info("任务重试次数已用尽 taskId=%s maxRetries=%s", task.id, task.max_retries)
            return False

        target.superseded = True
        await self._tasks.save_target(target)
        try:
            replacement = await self._fanout.dispatch_to_device(
                task,
                script,
                target.device_code,
                correlation_id=target.correlation_id,
                attempt=(target.attempt or 1) + 1,
            )
        except StoreUnavailableError:
            logger.error("重试指令入队失败 taskId=%s deviceCode=%s", task.id, target.device_code, exc_info=True)
            target.superseded = False
            await self._tasks.save_target(target)
            return False
        logger.info(
            "任务指令已重试 taskId=%s deviceCode=%s attempt=%s retryCount=%s/%s instructionId=%s",
            task.id,
            target.device_code,
            replacement.attempt,
            task.retry_count,
            task.max_retries,
            replacement.instruction_id,
        )
        return True


__all__ = ["RetryEngine"]
