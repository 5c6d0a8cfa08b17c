"""Device-facing heartbeat and result report protocol."""

from .models import HeartbeatRequest, HeartbeatResult
from .service import HeartbeatService

__all__ = ["HeartbeatRequest", "HeartbeatResult", "HeartbeatService"]
