import pytest

from autojs_control.domain.executions import ExecutionStatus, ReportStatus
from autojs_control.domain.tasks import TargetStatus, TaskStatus

from helpers import deliver, report


@pytest.fixture
def create_task(engine, seed):
    async def _create(**overrides):
        params = dict(name="retrying", script_id=seed["script_id"], target_device_ids=["dev-1"])
        params.update(overrides)
        return await engine.tasks.create_task(**params)

    return _create


async def _fail_current(engine, clock, status=ExecutionStatus.FAILED):
    [instruction] = await deliver(engine, "dev-1")
    outcome = await report(engine, "dev-1", instruction.instruction_id, status, clock)
    assert outcome.status is ReportStatus.OK
    return instruction


async def test_failed_device_is_retried_with_same_correlation(engine, create_task, clock):
    task = await create_task(max_retries=1)
    [original] = await engine.tasks.get_targets(task.id)

    failed = await _fail_current(engine, clock)

    current = await engine.tasks.get_task(task.id)
    assert current.status is TaskStatus.RUNNING
    assert current.retry_count == 1
    [replacement] = await engine.tasks.get_targets(task.id)
    assert replacement.instruction_id != failed.instruction_id
    assert replacement.correlation_id == original.correlation_id
    assert replacement.attempt == 2
    assert replacement.status is TargetStatus.PENDING

    [queued] = await engine.queue.preview("dev-1")
    assert queued.instruction_id == replacement.instruction_id
    assert queued.correlation_id == original.correlation_id


async def test_retry_budget_is_exhausted_then_task_fails(engine, create_task, clock):
    task = await create_task(max_retries=1)

    await _fail_current(engine, clock)
    await _fail_current(engine, clock, ExecutionStatus.TIMEOUT)

    done = await engine.tasks.get_task(task.id)
    assert done.status is TaskStatus.FAILED
    assert done.retry_count == 1
    assert done.failed_devices == 1
    history = await engine.tasks.get_targets(task.id, include_superseded=True)
    assert [target.attempt for target in history] == [1, 2]


async def test_no_retries_fails_immediately(engine, create_task, clock):
    task = await create_task(max_retries=0)

    await _fail_current(engine, clock)

    assert (await engine.tasks.get_task(task.id)).status is TaskStatus.FAILED
    assert await engine.queue.peek_depth("dev-1") == 0


async def test_retry_recovers_task_to_completed(engine, create_task, clock):
    task = await create_task(max_retries=2)

    await _fail_current(engine, clock)
    [instruction] = await deliver(engine, "dev-1")
    await report(engine, "dev-1", instruction.instruction_id, ExecutionStatus.SUCCESS, clock)

    done = await engine.tasks.get_task(task.id)
    assert done.status is TaskStatus.COMPLETED
    assert (done.success_devices, done.failed_devices) == (1, 0)


async def test_same_failure_is_only_retried_once(engine, create_task, clock):
    task = await create_task(max_retries=3)
    failed = await _fail_current(engine, clock)

    repository = engine.tasks.tasks
    task_model = await repository.get_task(task.id)
    target_model = await repository.get_target_by_instruction(failed.instruction_id)
    again = await engine.retry.handle_failure(task_model, target_model, ExecutionStatus.FAILED)

    assert again is False
    assert len(await engine.tasks.get_targets(task.id, include_superseded=True)) == 2
    assert (await engine.tasks.get_task(task.id)).retry_count == 1


async def test_cancelled_outcome_is_retried_only_when_enabled(engine, create_task):
    task = await create_task(max_retries=2)
    model = await engine.tasks.tasks.get_task(task.id)

    assert engine.retry.is_eligible(model, ExecutionStatus.FAILED)
    assert engine.retry.is_eligible(model, ExecutionStatus.TIMEOUT)
    assert not engine.retry.is_eligible(model, ExecutionStatus.SUCCESS)
    assert not engine.retry.is_eligible(model, ExecutionStatus.CANCELLED)

    model.retry_cancelled = True
    assert engine.retry.is_eligible(model, ExecutionStatus.CANCELLED)


async def test_no_retry_for_paused_task(engine, create_task):
    task = await create_task(max_retries=2)
    paused = await engine.tasks.pause(task.id)
    model = await engine.tasks.tasks.get_task(paused.id)

    assert not engine.retry.is_eligible(model, ExecutionStatus.FAILED)
