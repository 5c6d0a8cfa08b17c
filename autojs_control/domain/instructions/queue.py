"""Per-device priority instruction queue backed by the TTL store."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from autojs_control.core.clock import Clock, utcnow
from autojs_control.infrastructure.ttl_store import MISSING, TtlStore

from . import keys
from .lock import DeviceLock
from .models import DeviceInstruction, InstructionState

logger = logging.getLogger(__name__)

InstructionFilter = Callable[[DeviceInstruction], bool]


@dataclass(slots=True)
class DrainResult:
    instructions: list[DeviceInstruction] = field(default_factory=list)
    expired: list[DeviceInstruction] = field(default_factory=list)
    discarded: list[str] = field(default_factory=list)
    malformed: int = 0


class InstructionQueue:
    """Priority-then-FIFO queue, one Redis list per band.

    Bands are drained in ``keys.QUEUE_BANDS`` order; inside a band entries are
    appended with RPUSH and taken with LPOP so the oldest comes first. Each
    store call is atomic on its own, which is what keeps concurrent fanout
    writers and heartbeat readers from corrupting ordering.
    """

    def __init__(
        self,
        store: TtlStore,
        *,
        lock: Optional[DeviceLock] = None,
        status_ttl: int = keys.TTL_INSTRUCTION_STATUS,
        metrics_ttl: int = keys.TTL_METRICS,
        notify_ttl: int = 120,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._lock = lock or DeviceLock(store)
        self._status_ttl = status_ttl
        self._metrics_ttl = metrics_ttl
        self._notify_ttl = notify_ttl
        self._clock = clock

    async def enqueue(self, device_code: str, instruction: DeviceInstruction) -> None:
        status_key = keys.instruction_status(instruction.instruction_id)
        await self._store.set(status_key, InstructionState.PENDING.value, ttl=self._status_ttl)
        await self._store.rpush(keys.device_queue_band(device_code, keys.band_for(instruction)), instruction.to_json())
        await self._notify(device_code)
        logger.info(
            "指令已加入设备队列 deviceCode=%s instructionId=%s type=%s priority=%s",
            device_code,
            instruction.instruction_id,
            instruction.type.value,
            instruction.priority,
        )

    async def drain(self, device_code: str, limit: int) -> DrainResult:
        """Pop up to ``limit`` deliverable instructions, highest band first.

        Expired entries are marked ``expired`` and returned separately. Entries
        whose status was moved away from ``pending`` (cancelled while queued)
        are dropped. Every delivered entry is flipped to ``delivered`` by a
        compare-and-set, so no instruction id is handed out twice.
        """
        result = DrainResult()
        if limit <= 0:
            return result
        now = self._clock()
        for band in keys.QUEUE_BANDS:
            band_key = keys.device_queue_band(device_code, band)
            while len(result.instructions) < limit:
                raw_items = await self._store.lpop(band_key, limit - len(result.instructions))
                if not raw_items:
                    break
                for raw in raw_items:
                    await self._take(device_code, raw, now, result)
            if len(result.instructions) >= limit:
                break

        if result.expired:
            await self._store.hincrby(
                keys.device_metrics(device_code),
                "expiredInstructions",
                len(result.expired),
                ttl=self._metrics_ttl,
            )
        return result

    async def _take(self, device_code: str, raw: str, now: datetime, result: DrainResult) -> None:
        try:
            instruction = DeviceInstruction.from_json(raw)
        except (ValueError, TypeError, KeyError) as exc:
            result.malformed += 1
            logger.error("解析指令数据失败 deviceCode=%s error=%s data=%.200s", device_code, exc, raw)
            return

        status_key = keys.instruction_status(instruction.instruction_id)
        if instruction.is_expired(now):
            swapped, previous = await self._store.compare_and_set(
                status_key,
                (InstructionState.PENDING.value, MISSING),
                InstructionState.EXPIRED.value,
                ttl=self._status_ttl,
            )
            if not swapped and previous != InstructionState.EXPIRED.value:
                result.discarded.append(instruction.instruction_id)
                return
            result.expired.append(instruction)
            logger.warning(
                "指令已过期，丢弃 deviceCode=%s instructionId=%s createdTime=%s timeout=%s",
                device_code,
                instruction.instruction_id,
                instruction.created_time.isoformat(),
                instruction.timeout,
            )
            return

        delivered, previous = await self._store.compare_and_set(
            status_key,
            (InstructionState.PENDING.value, MISSING),
            InstructionState.DELIVERED.value,
            ttl=self._status_ttl,
        )
        if not delivered:
            result.discarded.append(instruction.instruction_id)
            logger.info(
                "跳过不可投递的指令 deviceCode=%s instructionId=%s status=%s",
                device_code,
                instruction.instruction_id,
                previous,
            )
            return
        result.instructions.append(instruction)

    async def wait_for_work(self, device_code: str, timeout: float) -> bool:
        """Block until a wake token arrives or ``timeout`` elapses."""
        if timeout <= 0:
            return False
        woke = await self._store.blpop([keys.device_poll_notify(device_code)], timeout)
        return woke is not None

    async def peek_depth(self, device_code: str) -> int:
        total = 0
        for band in keys.QUEUE_BANDS:
            total += await self._store.llen(keys.device_queue_band(device_code, band))
        return total

    async def preview(self, device_code: str, limit: int = 10) -> list[DeviceInstruction]:
        instructions: list[DeviceInstruction] = []
        for band in keys.QUEUE_BANDS:
            remaining = limit - len(instructions)
            if remaining <= 0:
                break
            for raw in await self._store.lrange(keys.device_queue_band(device_code, band), 0, remaining - 1):
                try:
                    instructions.append(DeviceInstruction.from_json(raw))
                except (ValueError, TypeError, KeyError) as exc:
                    logger.warning("解析队列中的指令失败 deviceCode=%s error=%s", device_code, exc)
        return instructions

    async def cancel(
        self,
        device_code: str,
        *,
        instruction_id: Optional[str] = None,
        task_id: Optional[int] = None,
    ) -> list[str]:
        """Remove still-queued instructions by id or task; returns removed ids."""
        if instruction_id is None and task_id is None:
            raise ValueError("instruction_id or task_id is required")

        def matches(instruction: DeviceInstruction) -> bool:
            if instruction_id is not None and instruction.instruction_id != instruction_id:
                return False
            if task_id is not None and instruction.task_id != task_id:
                return False
            return True

        removed = await self._remove(device_code, matches, InstructionState.CANCELLED)
        if removed:
            logger.info("已从设备队列取消指令 deviceCode=%s instructionIds=%s", device_code, removed)
        return removed

    async def clear(self, device_code: str) -> list[str]:
        removed = await self._remove(device_code, lambda _: True, InstructionState.CLEARED)
        # wake tokens left behind would only trigger empty drains
        await self._store.delete(keys.device_poll_notify(device_code))
        logger.info("设备队列已清空 deviceCode=%s clearedCount=%s", device_code, len(removed))
        return removed

    async def _remove(self, device_code: str, predicate: InstructionFilter, state: InstructionState) -> list[str]:
        removed: list[str] = []
        async with self._lock.hold(device_code):
            for band in keys.QUEUE_BANDS:
                band_key = keys.device_queue_band(device_code, band)
                for raw in await self._store.lrange(band_key, 0, -1):
                    try:
                        instruction = DeviceInstruction.from_json(raw)
                    except (ValueError, TypeError, KeyError):
                        continue
                    if not predicate(instruction):
                        continue
                    # LREM is atomic; 0 means a concurrent drain already took it
                    if await self._store.lrem(band_key, raw, 1):
                        await self._store.compare_and_set(
                            keys.instruction_status(instruction.instruction_id),
                            (InstructionState.PENDING.value, MISSING),
                            state.value,
                            ttl=self._status_ttl,
                        )
                        removed.append(instruction.instruction_id)
        return removed

    async def get_status(self, instruction_id: str) -> Optional[str]:
        return await self._store.get(keys.instruction_status(instruction_id))

    async def _notify(self, device_code: str) -> None:
        notify_key = keys.device_poll_notify(device_code)
        await self._store.rpush(notify_key, json.dumps({"event": "new_instruction"}))
        await self._store.expire(notify_key, self._notify_ttl)


__all__ = ["DrainResult", "InstructionQueue"]
