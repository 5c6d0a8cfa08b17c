"""Device registry, authentication and liveness."""

from .auth import DeviceAuthService
from .liveness import DeviceLivenessTracker
from .models import Device, DeviceSummary
from .repository import DeviceRepository
from .service import DeviceService

__all__ = [
    "Device",
    "DeviceAuthService",
    "DeviceLivenessTracker",
    "DeviceRepository",
    "DeviceService",
    "DeviceSummary",
]
