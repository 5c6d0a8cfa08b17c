from fastapi import APIRouter

from . import auth, device, devices, monitor, tasks

DEVICE_API_PREFIX = "/autojs/v1/device"


def create_api_router(prefix: str = "") -> APIRouter:
    router = APIRouter(prefix=prefix)
    router.include_router(device.router, prefix=DEVICE_API_PREFIX, tags=["设备通信"])
    router.include_router(auth.router, prefix="/auth", tags=["认证"])
    router.include_router(tasks.router, prefix="/tasks", tags=["任务"])
    router.include_router(devices.router, prefix="/devices", tags=["设备"])
    router.include_router(monitor.router, prefix="/monitor", tags=["监控"])
    return router


__all__ = [
    "create_api_router",
]
