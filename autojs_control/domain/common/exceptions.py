"""Exception hierarchy shared by the dispatch engine."""


class DispatchError(Exception):
    """Base class for business rejections raised by the engine."""


class DeviceAuthError(DispatchError):
    """Raised when a device request fails authentication."""


class StaleTimestampError(DeviceAuthError):
    """Raised when a request timestamp is outside the accepted window."""


class InvalidSignatureError(DeviceAuthError):
    """Raised when a request signature does not match."""


class UnknownDeviceError(DeviceAuthError):
    """Raised when the device code is not registered or disabled."""


class ReportValidationError(DispatchError):
    """Raised when an execution report is malformed."""


class TaskConfigurationError(DispatchError):
    """Raised when a task's target fields contradict its target type."""


class TaskStateError(DispatchError):
    """Raised when an operation is not allowed in the task's current status."""


class TaskNotFoundError(DispatchError):
    """Raised when the requested task does not exist."""


class ScriptNotFoundError(DispatchError):
    """Raised when a task references a missing or inactive script."""


class DeviceNotFoundError(DispatchError):
    """Raised when an operator action names an unknown device."""
