import asyncio
import json
from datetime import timedelta

import pytest

from autojs_control.domain.instructions import (
    DeviceInstruction,
    DeviceLock,
    InstructionQueue,
    InstructionState,
    InstructionType,
    keys,
)


@pytest.fixture
def queue(store, clock):
    return InstructionQueue(store, lock=DeviceLock(store), clock=clock)


def _instruction(clock, *, priority=5, type=InstructionType.EXECUTE_SCRIPT, task_id=None, timeout=300, age=0):
    return DeviceInstruction.create(
        type,
        {"scriptId": 1},
        priority=priority,
        timeout=timeout,
        task_id=task_id,
        created_time=clock() - timedelta(seconds=age),
    )


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


async def test_drain_returns_highest_priority_first_and_urgent_above_all(queue, clock):
    low = _instruction(clock, priority=1)
    high = _instruction(clock, priority=9)
    mid = _instruction(clock, priority=5)
    stop = _instruction(clock, priority=0, type=InstructionType.STOP_SCRIPT)
    for instruction in (low, high, mid, stop):
        await queue.enqueue("dev-1", instruction)

    drained = await queue.drain("dev-1", 10)

    assert [item.instruction_id for item in drained.instructions] == [
        stop.instruction_id,
        high.instruction_id,
        mid.instruction_id,
        low.instruction_id,
    ]


async def test_equal_priority_is_fifo(queue, clock):
    first = _instruction(clock)
    second = _instruction(clock)
    await queue.enqueue("dev-1", first)
    await queue.enqueue("dev-1", second)

    drained = await queue.drain("dev-1", 10)

    assert [item.instruction_id for item in drained.instructions] == [first.instruction_id, second.instruction_id]


async def test_drain_respects_limit_and_keeps_the_rest(queue, clock):
    for _ in range(5):
        await queue.enqueue("dev-1", _instruction(clock))

    drained = await queue.drain("dev-1", 2)

    assert len(drained.instructions) == 2
    assert await queue.peek_depth("dev-1") == 3


async def test_queues_are_per_device(queue, clock):
    await queue.enqueue("dev-1", _instruction(clock))

    assert (await queue.drain("dev-2", 10)).instructions == []
    assert await queue.peek_depth("dev-1") == 1


# ---------------------------------------------------------------------------
# Delivery state
# ---------------------------------------------------------------------------


async def test_enqueue_marks_pending_and_drain_marks_delivered(queue, clock):
    instruction = _instruction(clock)
    await queue.enqueue("dev-1", instruction)
    assert await queue.get_status(instruction.instruction_id) == InstructionState.PENDING.value

    await queue.drain("dev-1", 10)

    assert await queue.get_status(instruction.instruction_id) == InstructionState.DELIVERED.value


async def test_concurrent_drains_deliver_each_instruction_once(queue, clock):
    enqueued = [_instruction(clock) for _ in range(20)]
    for instruction in enqueued:
        await queue.enqueue("dev-1", instruction)

    results = await asyncio.gather(*(queue.drain("dev-1", 7) for _ in range(4)))

    delivered = [item.instruction_id for result in results for item in result.instructions]
    assert len(delivered) == len(set(delivered)) == 20
    assert set(delivered) == {instruction.instruction_id for instruction in enqueued}


async def test_expired_instruction_is_reported_not_delivered(queue, store, clock):
    stale = _instruction(clock, timeout=60, age=61)
    fresh = _instruction(clock)
    await queue.enqueue("dev-1", stale)
    await queue.enqueue("dev-1", fresh)

    drained = await queue.drain("dev-1", 10)

    assert [item.instruction_id for item in drained.instructions] == [fresh.instruction_id]
    assert [item.instruction_id for item in drained.expired] == [stale.instruction_id]
    assert await queue.get_status(stale.instruction_id) == InstructionState.EXPIRED.value
    metrics = await store.hgetall(keys.device_metrics("dev-1"))
    assert metrics["expiredInstructions"] == "1"


async def test_instruction_expires_while_queued(queue, clock):
    instruction = _instruction(clock, timeout=30)
    await queue.enqueue("dev-1", instruction)
    clock.advance(31)

    drained = await queue.drain("dev-1", 10)

    assert drained.instructions == []
    assert [item.instruction_id for item in drained.expired] == [instruction.instruction_id]


async def test_entry_cancelled_out_of_band_is_discarded(queue, store, clock):
    instruction = _instruction(clock)
    await queue.enqueue("dev-1", instruction)
    await store.set(keys.instruction_status(instruction.instruction_id), InstructionState.CANCELLED.value)

    drained = await queue.drain("dev-1", 10)

    assert drained.instructions == []
    assert drained.discarded == [instruction.instruction_id]


async def test_malformed_entry_is_skipped(queue, store, clock):
    await store.rpush(keys.device_queue_band("dev-1", "5"), "{not json")
    instruction = _instruction(clock)
    await queue.enqueue("dev-1", instruction)

    drained = await queue.drain("dev-1", 10)

    assert drained.malformed == 1
    assert [item.instruction_id for item in drained.instructions] == [instruction.instruction_id]


async def test_entry_without_created_time_counts_as_malformed(queue, store, clock):
    payload = _instruction(clock).to_dict()
    del payload["createdTime"]
    await store.rpush(keys.device_queue_band("dev-1", "5"), json.dumps(payload))

    drained = await queue.drain("dev-1", 10)

    assert drained.malformed == 1
    assert drained.instructions == []


# ---------------------------------------------------------------------------
# Cancel, clear, preview
# ---------------------------------------------------------------------------


async def test_cancel_by_task_removes_only_that_task(queue, clock):
    mine = _instruction(clock, task_id=7)
    other = _instruction(clock, task_id=8)
    await queue.enqueue("dev-1", mine)
    await queue.enqueue("dev-1", other)

    removed = await queue.cancel("dev-1", task_id=7)

    assert removed == [mine.instruction_id]
    assert await queue.get_status(mine.instruction_id) == InstructionState.CANCELLED.value
    drained = await queue.drain("dev-1", 10)
    assert [item.instruction_id for item in drained.instructions] == [other.instruction_id]


async def test_cancel_requires_a_selector(queue):
    with pytest.raises(ValueError):
        await queue.cancel("dev-1")


async def test_clear_marks_every_entry_cleared_and_drops_wake_tokens(queue, store, clock):
    instructions = [_instruction(clock, priority=p) for p in (1, 5, 9)]
    for instruction in instructions:
        await queue.enqueue("dev-1", instruction)

    removed = await queue.clear("dev-1")

    assert sorted(removed) == sorted(instruction.instruction_id for instruction in instructions)
    assert await queue.peek_depth("dev-1") == 0
    for instruction in instructions:
        assert await queue.get_status(instruction.instruction_id) == InstructionState.CLEARED.value
    assert not await store.exists(keys.device_poll_notify("dev-1"))


async def test_preview_is_in_dequeue_order_and_does_not_remove(queue, clock):
    low = _instruction(clock, priority=2)
    ping = _instruction(clock, type=InstructionType.PING)
    await queue.enqueue("dev-1", low)
    await queue.enqueue("dev-1", ping)

    preview = await queue.preview("dev-1", 10)

    assert [item.instruction_id for item in preview] == [ping.instruction_id, low.instruction_id]
    assert await queue.peek_depth("dev-1") == 2


# ---------------------------------------------------------------------------
# Wake-up
# ---------------------------------------------------------------------------


async def test_wait_for_work_wakes_on_enqueue(queue, clock):
    waiter = asyncio.create_task(queue.wait_for_work("dev-1", 5))
    await asyncio.sleep(0)
    await queue.enqueue("dev-1", _instruction(clock))

    assert await asyncio.wait_for(waiter, 1) is True


async def test_wait_for_work_times_out(queue):
    assert await queue.wait_for_work("dev-1", 0.05) is False


# ---------------------------------------------------------------------------
# Instruction value object
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("priority", [-1, 11])
def test_priority_outside_range_is_rejected(clock, priority):
    with pytest.raises(ValueError):
        _instruction(clock, priority=priority)


@pytest.mark.parametrize("timeout", [0, 3601])
def test_timeout_outside_range_is_rejected(clock, timeout):
    with pytest.raises(ValueError):
        _instruction(clock, timeout=timeout)


def test_wire_format_uses_camel_case_keys(clock):
    instruction = _instruction(clock, task_id=3)
    payload = instruction.to_dict()

    assert set(payload) == {
        "instructionId",
        "type",
        "data",
        "createdTime",
        "timeout",
        "priority",
        "taskId",
        "scriptId",
        "correlationId",
    }
    assert DeviceInstruction.from_json(instruction.to_json()) == instruction


def test_retry_keeps_correlation_and_changes_id(clock):
    instruction = _instruction(clock)
    retried = instruction.retry(created_time=clock())

    assert retried.instruction_id != instruction.instruction_id
    assert retried.correlation_id == instruction.instruction_id


def test_key_formats_are_stable():
    assert keys.device_instruction_queue("d1") == "device_instruction_queue:d1"
    assert keys.device_queue_band("d1", "urgent") == "device_instruction_queue:d1:urgent"
    assert keys.device_poll_notify("d1") == "device_poll_notify:d1"
    assert keys.device_online("d1") == "device_online:d1"
    assert keys.instruction_status("INS-1") == "instruction_status:INS-1"
    assert keys.device_last_heartbeat("d1") == "device_last_heartbeat:d1"
    assert keys.GLOBAL_TASK_QUEUE == "global_task_queue"
    assert keys.group_task_queue(4) == "group_task_queue:4"
    assert keys.device_lock("d1") == "device_lock:d1"
    assert keys.instruction_retry("INS-1") == "instruction_retry:INS-1"
    assert keys.device_metrics("d1") == "device_metrics:d1"
    assert keys.QUEUE_BANDS[0] == "urgent"
    assert keys.QUEUE_BANDS[1:] == tuple(str(level) for level in range(10, -1, -1))
