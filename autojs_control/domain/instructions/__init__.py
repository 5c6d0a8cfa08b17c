"""Device instructions and the per-device queue."""

from . import keys
from .lock import DeviceLock
from .models import (
    MAX_PRIORITY,
    MAX_TIMEOUT,
    MIN_PRIORITY,
    MIN_TIMEOUT,
    DeviceInstruction,
    InstructionState,
    InstructionType,
    generate_instruction_id,
)
from .queue import DrainResult, InstructionQueue

__all__ = [
    "keys",
    "DeviceLock",
    "DeviceInstruction",
    "InstructionState",
    "InstructionType",
    "generate_instruction_id",
    "DrainResult",
    "InstructionQueue",
    "MAX_PRIORITY",
    "MAX_TIMEOUT",
    "MIN_PRIORITY",
    "MIN_TIMEOUT",
]
