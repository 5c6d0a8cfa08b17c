"""Shared domain helpers."""

from .exceptions import (
    DeviceAuthError,
    DeviceNotFoundError,
    DispatchError,
    InvalidSignatureError,
    ReportValidationError,
    ScriptNotFoundError,
    StaleTimestampError,
    TaskConfigurationError,
    TaskNotFoundError,
    TaskStateError,
    UnknownDeviceError,
)
from .repository import AsyncRepository

__all__ = [
    "AsyncRepository",
    "DeviceAuthError",
    "DeviceNotFoundError",
    "DispatchError",
    "InvalidSignatureError",
    "ReportValidationError",
    "ScriptNotFoundError",
    "StaleTimestampError",
    "TaskConfigurationError",
    "TaskNotFoundError",
    "TaskStateError",
    "UnknownDeviceError",
]
