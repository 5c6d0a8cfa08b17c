"""Queue monitoring endpoints."""

from fastapi import APIRouter, Depends

from autojs_control.core.security import get_current_operator
from autojs_control.domain.engine import DispatchEngine
from autojs_control.interfaces.http.deps import get_dispatch_engine
from autojs_control.schemas import DeviceQueueStatsResponse, FleetQueueStatsResponse

router = APIRouter(dependencies=[Depends(get_current_operator)])


@router.get("/queues", response_model=FleetQueueStatsResponse, summary="设备队列总览")
async def fleet_queues(engine: DispatchEngine = Depends(get_dispatch_engine)):
    return FleetQueueStatsResponse.model_validate(await engine.monitor.fleet_stats())


@router.get("/devices/{device_code}", response_model=DeviceQueueStatsResponse, summary="单台设备队列状态")
async def device_queue(device_code: str, engine: DispatchEngine = Depends(get_dispatch_engine)):
    return DeviceQueueStatsResponse.model_validate(await engine.monitor.device_stats(device_code))
