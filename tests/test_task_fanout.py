from datetime import timedelta

import pytest

from autojs_control.domain.common.exceptions import (
    ScriptNotFoundError,
    TaskConfigurationError,
    TaskStateError,
)
from autojs_control.domain.executions import ExecutionStatus, ReportStatus
from autojs_control.domain.instructions import InstructionState, InstructionType
from autojs_control.domain.tasks import (
    ALL_SENDS_FAILED_REASON,
    NO_DEVICES_REASON,
    TargetStatus,
    TaskStatus,
    TaskTargetType,
    TaskType,
)
from autojs_control.infrastructure.ttl_store import StoreUnavailableError

from helpers import deliver, report

ALL_DEVICES = ["dev-1", "dev-2", "dev-3"]


async def _create(engine, seed, **overrides):
    params = dict(name="collect", script_id=seed["script_id"], target_device_ids=ALL_DEVICES)
    params.update(overrides)
    return await engine.tasks.create_task(**params)


async def _finish(engine, clock, outcomes):
    for device_code, status in outcomes.items():
        [instruction] = await deliver(engine, device_code)
        outcome = await report(engine, device_code, instruction.instruction_id, status, clock)
        assert outcome.status is ReportStatus.OK


# ---------------------------------------------------------------------------
# Fanout
# ---------------------------------------------------------------------------


async def test_specific_task_fans_out_one_instruction_per_device(engine, seed, recorder):
    task = await _create(engine, seed, parameters={"city": "sh"}, priority=7)

    assert task.status is TaskStatus.RUNNING
    assert task.total_devices == 3
    targets = await engine.tasks.get_targets(task.id)
    assert sorted(target.device_code for target in targets) == ALL_DEVICES
    assert len({target.instruction_id for target in targets}) == 3

    for device_code in ALL_DEVICES:
        [instruction] = await engine.queue.preview(device_code)
        assert instruction.type is InstructionType.EXECUTE_SCRIPT
        assert instruction.task_id == task.id
        assert instruction.priority == 7
        assert instruction.data == {"scriptId": seed["script_id"], "parameters": {"city": "sh"}}
        assert await engine.queue.get_status(instruction.instruction_id) == InstructionState.PENDING.value
    assert len(recorder.named("instruction_sent")) == 3
    assert ("task_status_changed", task.id, "pending", "running") in recorder.events


async def test_group_task_targets_group_members(engine, seed):
    task = await _create(
        engine,
        seed,
        target_type=TaskTargetType.GROUP,
        target_device_ids=None,
        target_group_id=seed["group_id"],
    )

    targets = await engine.tasks.get_targets(task.id)
    assert sorted(target.device_code for target in targets) == ["dev-1", "dev-2"]


async def test_all_task_targets_every_active_device(engine, seed):
    task = await _create(engine, seed, target_type=TaskTargetType.ALL, target_device_ids=None)

    assert task.total_devices == 3


async def test_task_without_resolvable_devices_fails(engine, seed):
    task = await _create(engine, seed, target_device_ids=["ghost-1", "ghost-2"])

    assert task.status is TaskStatus.FAILED
    assert task.failure_reason == NO_DEVICES_REASON


async def test_store_failure_for_one_device_skips_it(engine, seed, monkeypatch):
    enqueue = engine.queue.enqueue

    async def flaky_enqueue(device_code, instruction):
        if device_code == "dev-2":
            raise StoreUnavailableError("connection refused")
        await enqueue(device_code, instruction)

    monkeypatch.setattr(engine.queue, "enqueue", flaky_enqueue)
    task = await _create(engine, seed)

    assert task.status is TaskStatus.RUNNING
    assert task.total_devices == 2
    targets = await engine.tasks.get_targets(task.id)
    assert sorted(target.device_code for target in targets) == ["dev-1", "dev-3"]


async def test_store_failure_for_every_device_fails_task(engine, seed, monkeypatch):
    async def broken_enqueue(device_code, instruction):
        raise StoreUnavailableError("connection refused")

    monkeypatch.setattr(engine.queue, "enqueue", broken_enqueue)
    task = await _create(engine, seed)

    assert task.status is TaskStatus.FAILED
    assert task.failure_reason == ALL_SENDS_FAILED_REASON


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "overrides",
    [
        {"target_device_ids": []},
        {"target_type": TaskTargetType.GROUP, "target_group_id": None},
        {"target_type": TaskTargetType.ALL},
        {"target_group_id": 1},
        {"task_type": TaskType.SCHEDULED},
        {"task_type": TaskType.RECURRING},
        {"priority": 11},
        {"max_retries": -1},
    ],
)
async def test_inconsistent_task_configuration_is_rejected(engine, seed, overrides):
    with pytest.raises(TaskConfigurationError):
        await _create(engine, seed, **overrides)


async def test_unknown_group_is_rejected(engine, seed):
    with pytest.raises(TaskConfigurationError):
        await _create(engine, seed, target_type=TaskTargetType.GROUP, target_device_ids=None, target_group_id=999)


async def test_unknown_script_is_rejected(engine, seed):
    with pytest.raises(ScriptNotFoundError):
        await _create(engine, seed, script_id=999)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


async def test_all_devices_succeed_completes_task(engine, seed, clock):
    task = await _create(engine, seed)

    await _finish(engine, clock, {"dev-1": ExecutionStatus.SUCCESS, "dev-2": ExecutionStatus.SUCCESS})
    midway = await engine.tasks.get_task(task.id)
    assert midway.status is TaskStatus.RUNNING
    assert midway.progress == pytest.approx(66.67)

    await _finish(engine, clock, {"dev-3": ExecutionStatus.SUCCESS})
    done = await engine.tasks.get_task(task.id)
    assert done.status is TaskStatus.COMPLETED
    assert done.success_devices == 3
    assert done.failed_devices == 0
    assert done.end_time is not None


async def test_mixed_outcomes_partially_complete_task(engine, seed, clock):
    task = await _create(engine, seed)

    await _finish(
        engine,
        clock,
        {"dev-1": ExecutionStatus.SUCCESS, "dev-2": ExecutionStatus.FAILED, "dev-3": ExecutionStatus.SUCCESS},
    )

    done = await engine.tasks.get_task(task.id)
    assert done.status is TaskStatus.PARTIALLY_COMPLETED
    assert (done.success_devices, done.failed_devices) == (2, 1)


async def test_every_device_failing_fails_task(engine, seed, clock):
    task = await _create(engine, seed)

    await _finish(
        engine,
        clock,
        {"dev-1": ExecutionStatus.FAILED, "dev-2": ExecutionStatus.TIMEOUT, "dev-3": ExecutionStatus.FAILED},
    )

    done = await engine.tasks.get_task(task.id)
    assert done.status is TaskStatus.FAILED
    assert "3/3" in done.failure_reason


async def test_instruction_expiring_in_queue_counts_as_timeout(engine, seed, clock):
    task = await _create(engine, seed, target_device_ids=["dev-1"])
    clock.advance(301)

    assert await deliver(engine, "dev-1") == []

    done = await engine.tasks.get_task(task.id)
    assert done.status is TaskStatus.FAILED
    [target] = await engine.tasks.get_targets(task.id)
    assert target.status is TargetStatus.TIMEOUT


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


async def test_scheduled_task_waits_until_due(engine, seed, clock):
    task = await _create(
        engine,
        seed,
        task_type=TaskType.SCHEDULED,
        scheduled_time=clock() + timedelta(minutes=5),
    )
    assert task.status is TaskStatus.SCHEDULED
    assert await engine.queue.peek_depth("dev-1") == 0

    assert await engine.tasks.run_due() == []
    clock.advance(301)
    assert await engine.tasks.run_due() == [task.id]

    assert (await engine.tasks.get_task(task.id)).status is TaskStatus.RUNNING
    assert await engine.queue.peek_depth("dev-1") == 1


async def test_recurring_task_runs_each_interval_with_fresh_instructions(engine, seed, clock):
    task = await _create(
        engine,
        seed,
        target_device_ids=["dev-1"],
        task_type=TaskType.RECURRING,
        recurrence_interval=600,
    )
    [first] = await engine.tasks.get_targets(task.id)
    await _finish(engine, clock, {"dev-1": ExecutionStatus.SUCCESS})
    assert (await engine.tasks.get_task(task.id)).status is TaskStatus.SCHEDULED

    assert await engine.tasks.run_due() == []
    clock.advance(601)
    assert await engine.tasks.run_due() == [task.id]

    again = await engine.tasks.get_task(task.id)
    assert again.status is TaskStatus.RUNNING
    assert again.success_devices == 0
    [second] = await engine.tasks.get_targets(task.id)
    assert second.instruction_id != first.instruction_id
    assert len(await engine.tasks.get_targets(task.id, include_superseded=True)) == 2


# ---------------------------------------------------------------------------
# Operator actions
# ---------------------------------------------------------------------------


async def test_cancel_removes_queued_and_stops_delivered_instructions(engine, seed, clock):
    task = await _create(engine, seed, target_device_ids=["dev-1", "dev-2"])
    [running] = await deliver(engine, "dev-1")

    cancelled = await engine.tasks.cancel(task.id)

    assert cancelled.status is TaskStatus.CANCELLED
    assert await engine.queue.peek_depth("dev-2") == 0
    [stop] = await deliver(engine, "dev-1")
    assert stop.type is InstructionType.STOP_SCRIPT
    assert stop.data["instructionId"] == running.instruction_id
    targets = await engine.tasks.get_targets(task.id)
    assert {target.status for target in targets} == {TargetStatus.CANCELLED}

    late = await report(engine, "dev-1", running.instruction_id, ExecutionStatus.SUCCESS, clock)
    assert late.status is ReportStatus.DUPLICATE
    assert (await engine.tasks.get_task(task.id)).status is TaskStatus.CANCELLED


async def test_cancel_finished_task_is_rejected(engine, seed, clock):
    task = await _create(engine, seed, target_device_ids=["dev-1"])
    await _finish(engine, clock, {"dev-1": ExecutionStatus.SUCCESS})

    with pytest.raises(TaskStateError):
        await engine.tasks.cancel(task.id)


async def test_pause_and_resume_keep_outstanding_instructions(engine, seed):
    task = await _create(engine, seed, target_device_ids=["dev-1"])

    paused = await engine.tasks.pause(task.id)
    assert paused.status is TaskStatus.PAUSED

    resumed = await engine.tasks.resume(task.id)
    assert resumed.status is TaskStatus.RUNNING
    assert await engine.queue.peek_depth("dev-1") == 1


async def test_resume_requires_paused_task(engine, seed):
    task = await _create(engine, seed, target_device_ids=["dev-1"])

    with pytest.raises(TaskStateError):
        await engine.tasks.resume(task.id)


async def test_statistics_count_tasks_by_status(engine, seed, clock):
    await _create(engine, seed, target_device_ids=["dev-1"])
    await _create(engine, seed, target_device_ids=["ghost"])

    stats = await engine.tasks.statistics()

    assert stats.total == 2
    assert stats.by_status["running"] == 1
    assert stats.by_status["failed"] == 1
    assert stats.active == 1
