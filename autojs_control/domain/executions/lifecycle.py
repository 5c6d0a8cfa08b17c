"""Instruction state machine: delivery, result reports and terminal outcomes.

``instruction_status:<id>`` in the TTL store is the serialization point. Every
transition is a compare-and-set on that key, so two concurrent reports for
the same instruction can never both apply. The durable execution record and
the task bookkeeping are only touched by the caller that won the swap.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Iterable, Optional, Protocol

from autojs_control.core.clock import Clock, ensure_aware, utcnow
from autojs_control.domain.common.exceptions import ReportValidationError
from autojs_control.domain.instructions import keys
from autojs_control.domain.instructions.models import DeviceInstruction, InstructionState, InstructionType
from autojs_control.domain.notifications import Notifier
from autojs_control.infrastructure.ttl_store import MISSING, TtlStore

from .models import ExecutionRecord, ExecutionReport, ExecutionStatus, ReportOutcome, ReportStatus
from .repository import ExecutionRecordRepository

logger = logging.getLogger(__name__)


class InstructionOutcomeListener(Protocol):
    async def instruction_delivered(self, instruction: DeviceInstruction, delivered_at: datetime) -> None:
        ...

    async def instruction_finished(self, instruction_id: str, device_code: str, status: ExecutionStatus) -> None:
        ...


class InstructionLifecycle:
    def __init__(
        self,
        store: TtlStore,
        records: ExecutionRecordRepository,
        notifier: Notifier,
        *,
        listener: Optional[InstructionOutcomeListener] = None,
        status_ttl: int = keys.TTL_INSTRUCTION_STATUS,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._records = records
        self._notifier = notifier
        self._listener = listener
        self._status_ttl = status_ttl
        self._clock = clock

    async def mark_delivered(self, device_code: str, instructions: Iterable[DeviceInstruction]) -> None:
        """Create execution records for delivered script instructions."""
        now = self._clock()
        for instruction in instructions:
            if instruction.type is InstructionType.EXECUTE_SCRIPT:
                existing = await self._records.get_by_instruction(instruction.instruction_id)
                if existing is None:
                    await self._records.create_record(
                        instruction_id=instruction.instruction_id,
                        device_code=device_code,
                        task_id=instruction.task_id,
                        script_id=instruction.script_id,
                        status=ExecutionStatus.PENDING.value,
                    )
            if self._listener is not None:
                await self._listener.instruction_delivered(instruction, now)

    async def report(self, report: ExecutionReport) -> ReportOutcome:
        if report.status is ExecutionStatus.PENDING:
            raise ReportValidationError("pending 不是可上报的执行状态")
        if report.end_time < report.start_time:
            raise ReportValidationError("endTime 不能早于 startTime")

        record = await self._records.get_by_instruction(report.instruction_id)
        if record is not None and record.device_code != report.device_code:
            raise ReportValidationError("指令不属于该设备")

        status_key = keys.instruction_status(report.instruction_id)
        if report.status is ExecutionStatus.RUNNING:
            expected: tuple[Optional[str], ...] = (InstructionState.PENDING.value, InstructionState.DELIVERED.value)
        else:
            expected = InstructionState.open_values()

        swapped, previous = await self._store.compare_and_set(
            status_key,
            expected,
            report.status.instruction_state.value,
            ttl=self._status_ttl,
        )
        if not swapped:
            if previous is MISSING:
                logger.info(
                    "上报的指令不存在或已过期 deviceCode=%s instructionId=%s",
                    report.device_code,
                    report.instruction_id,
                )
                return ReportOutcome(ReportStatus.NOT_FOUND, report.instruction_id, "指令不存在或已过期")
            logger.info(
                "重复的执行结果上报 deviceCode=%s instructionId=%s current=%s reported=%s",
                report.device_code,
                report.instruction_id,
                previous,
                report.status.value,
            )
            return ReportOutcome(ReportStatus.DUPLICATE, report.instruction_id, "执行结果已处理")

        saved = await self._write_record(report)
        if report.status.is_final:
            await self._notifier.script_executed(saved)
            if self._listener is not None:
                await self._listener.instruction_finished(report.instruction_id, report.device_code, report.status)
        logger.info(
            "执行结果已记录 deviceCode=%s instructionId=%s status=%s",
            report.device_code,
            report.instruction_id,
            report.status.value,
        )
        return ReportOutcome(ReportStatus.OK, report.instruction_id, "执行结果已记录")

    async def apply_terminal(
        self,
        instruction_id: str,
        device_code: str,
        status: ExecutionStatus,
        *,
        message: Optional[str] = None,
    ) -> bool:
        """Server-side terminal transition (timeout, cancellation).

        Uses the same compare-and-set as a report, so whichever of the device
        report and the server decision lands first wins.
        """
        if not status.is_final:
            raise ValueError(f"{status.value} is not a terminal status")
        swapped, _ = await self._store.compare_and_set(
            keys.instruction_status(instruction_id),
            InstructionState.open_values(),
            status.instruction_state.value,
            ttl=self._status_ttl,
        )
        if not swapped:
            return False
        await self.finalize(instruction_id, device_code, status, message=message)
        return True

    async def finalize(
        self,
        instruction_id: str,
        device_code: str,
        status: ExecutionStatus,
        *,
        message: Optional[str] = None,
    ) -> None:
        """Apply a terminal outcome whose status key was already swapped."""
        model = await self._records.get_by_instruction(instruction_id)
        if model is not None and not ExecutionStatus(model.status).is_final:
            now = self._clock()
            model.status = status.value
            model.end_time = now
            if model.start_time is not None:
                model.duration = (now - ensure_aware(model.start_time)).total_seconds()
            if message:
                model.error_message = message
            await self._records.save(model)
            await self._notifier.script_executed(ExecutionRecord.from_orm(model))
        if self._listener is not None:
            await self._listener.instruction_finished(instruction_id, device_code, status)

    async def record_expired(self, device_code: str, instruction: DeviceInstruction) -> None:
        """Expired-in-queue task instructions count as timed out for their task."""
        if instruction.task_id is None:
            return
        await self.finalize(
            instruction.instruction_id,
            device_code,
            ExecutionStatus.TIMEOUT,
            message="指令在投递前已过期",
        )

    async def _write_record(self, report: ExecutionReport) -> ExecutionRecord:
        model = await self._records.get_by_instruction(report.instruction_id)
        if model is None:
            model = await self._records.create_record(
                instruction_id=report.instruction_id,
                device_code=report.device_code,
                task_id=None,
                script_id=None,
                status=report.status.value,
            )
        model.status = report.status.value
        model.start_time = report.start_time
        if report.status.is_final:
            model.end_time = report.end_time
            model.duration = report.duration
        if report.output is not None:
            model.output = report.output
        if report.error_message is not None:
            model.error_message = report.error_message
        if report.execution_metrics:
            model.execution_metrics = json.dumps(report.execution_metrics, ensure_ascii=False)
        if report.screenshots:
            model.screenshots = json.dumps(report.screenshots, ensure_ascii=False)
        await self._records.save(model)
        return ExecutionRecord.from_orm(model)


__all__ = ["InstructionLifecycle", "InstructionOutcomeListener"]
