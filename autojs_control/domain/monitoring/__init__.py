"""Operator monitoring of device queues."""

from .service import DeviceQueueStats, FleetQueueStats, QueueMonitorService

__all__ = ["DeviceQueueStats", "FleetQueueStats", "QueueMonitorService"]
