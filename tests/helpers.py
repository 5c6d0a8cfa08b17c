"""Test doubles and small drivers shared across the suite."""

from datetime import datetime, timedelta

from autojs_control.domain.devices import DeviceAuthService
from autojs_control.domain.engine import DispatchEngine
from autojs_control.domain.executions import ExecutionReport, ExecutionStatus


class FakeClock:
    """Controllable wall clock; the TTL store follows it too."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def timestamp(self) -> float:
        return self.now.timestamp()


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple] = []

    async def task_created(self, task) -> None:
        self.events.append(("task_created", task.id))

    async def task_status_changed(self, task, previous: str) -> None:
        self.events.append(("task_status_changed", task.id, previous, task.status.value))

    async def instruction_sent(self, device_code: str, instruction) -> None:
        self.events.append(("instruction_sent", device_code, instruction.instruction_id))

    async def script_executed(self, record) -> None:
        self.events.append(("script_executed", record.instruction_id, record.status))

    async def device_status_changed(self, device_code: str, online: bool) -> None:
        self.events.append(("device_status_changed", device_code, online))

    def named(self, name: str) -> list[tuple]:
        return [event for event in self.events if event[0] == name]


def sign(certificate: str, *fields) -> str:
    return DeviceAuthService.sign(certificate, *fields)


async def deliver(engine: DispatchEngine, device_code: str):
    """Drain a device's queue the way a heartbeat does, without waiting."""
    result = await engine.heartbeat.poll(device_code, 1, wait=False)
    return result.instructions


async def report(
    engine: DispatchEngine,
    device_code: str,
    instruction_id: str,
    status: ExecutionStatus,
    clock: FakeClock,
    **extra,
):
    now = clock()
    start_time = extra.pop("start_time", now - timedelta(seconds=5))
    end_time = extra.pop("end_time", now)
    return await engine.executions.report(
        ExecutionReport(
            device_code=device_code,
            instruction_id=instruction_id,
            status=status,
            start_time=start_time,
            end_time=end_time,
            **extra,
        )
    )
