"""TTL store key templates.

The literal formats are shared with device-side tooling and other server
implementations, so they must not change.
"""

from __future__ import annotations

from .models import MAX_PRIORITY, MIN_PRIORITY, DeviceInstruction

DEVICE_INSTRUCTION_QUEUE = "device_instruction_queue:{}"
DEVICE_POLL_NOTIFY = "device_poll_notify:{}"
DEVICE_ONLINE = "device_online:{}"
INSTRUCTION_STATUS = "instruction_status:{}"
DEVICE_LAST_HEARTBEAT = "device_last_heartbeat:{}"
GLOBAL_TASK_QUEUE = "global_task_queue"
GROUP_TASK_QUEUE = "group_task_queue:{}"
DEVICE_LOCK = "device_lock:{}"
INSTRUCTION_RETRY = "instruction_retry:{}"
DEVICE_METRICS = "device_metrics:{}"

TTL_ONLINE_STATUS = 120
TTL_INSTRUCTION_STATUS = 3600
TTL_HEARTBEAT = 300
TTL_LOCK = 30
TTL_RETRY_COUNTER = 1800
TTL_METRICS = 86400

URGENT_BAND = "urgent"

# Dequeue order: urgent first, then priority 10 down to 0.
QUEUE_BANDS: tuple[str, ...] = (URGENT_BAND,) + tuple(
    str(level) for level in range(MAX_PRIORITY, MIN_PRIORITY - 1, -1)
)


def device_instruction_queue(device_code: str) -> str:
    return DEVICE_INSTRUCTION_QUEUE.format(device_code)


def device_queue_band(device_code: str, band: str) -> str:
    return f"{device_instruction_queue(device_code)}:{band}"


def band_for(instruction: DeviceInstruction) -> str:
    if instruction.is_urgent:
        return URGENT_BAND
    return str(instruction.priority)


def device_poll_notify(device_code: str) -> str:
    return DEVICE_POLL_NOTIFY.format(device_code)


def device_online(device_code: str) -> str:
    return DEVICE_ONLINE.format(device_code)


def instruction_status(instruction_id: str) -> str:
    return INSTRUCTION_STATUS.format(instruction_id)


def device_last_heartbeat(device_code: str) -> str:
    return DEVICE_LAST_HEARTBEAT.format(device_code)


def group_task_queue(group_id: int | str) -> str:
    return GROUP_TASK_QUEUE.format(group_id)


def device_lock(device_code: str) -> str:
    return DEVICE_LOCK.format(device_code)


def instruction_retry(instruction_id: str) -> str:
    return INSTRUCTION_RETRY.format(instruction_id)


def device_metrics(device_code: str) -> str:
    return DEVICE_METRICS.format(device_code)
