"""Device-facing endpoints: registration, heartbeat long-poll, script download and result reports."""

import asyncio
import hashlib
import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from autojs_control.core.clock import utcnow
from autojs_control.domain.engine import DispatchEngine
from autojs_control.domain.executions import ExecutionReport
from autojs_control.domain.heartbeat import HeartbeatRequest as HeartbeatInput
from autojs_control.interfaces.http.deps import get_db_session, get_dispatch_engine
from autojs_control.schemas import (
    DeviceRegisterRequest,
    DeviceRegisterResponse,
    ExecutionReportRequest,
    ExecutionReportResponse,
    HeartbeatRequest,
    HeartbeatResponse,
    InstructionSchema,
    ScriptDownloadResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _watch_disconnect(request: Request, disconnected: asyncio.Event) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            disconnected.set()
            return


@router.post("/register", response_model=DeviceRegisterResponse, summary="设备注册")
async def register(
    payload: DeviceRegisterRequest,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    device_info = dict(payload.hardware_info)
    for name in ("model", "brand", "os_version", "fingerprint"):
        value = getattr(payload, name)
        if value:
            device_info[name] = value
    device, certificate = await engine.devices.register(
        device_code=payload.device_code,
        certificate_request=payload.certificate_request,
        auth=engine.auth,
        device_name=payload.device_name,
        auto_js_version=payload.auto_js_version,
        group_id=payload.group_id,
        device_info=device_info,
    )
    await engine.liveness.record_heartbeat(device.device_code)
    await db.commit()
    return DeviceRegisterResponse(
        device_id=device.id,
        certificate=certificate,
        server_time=utcnow(),
        config=engine.heartbeat.client_config,
        message="设备注册成功",
    )


@router.post("/heartbeat", response_model=HeartbeatResponse, summary="设备心跳（长轮询获取指令）")
async def heartbeat(
    payload: HeartbeatRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    device = await engine.heartbeat.accept(
        HeartbeatInput(
            device_code=payload.device_code,
            signature=payload.signature,
            timestamp=payload.timestamp,
            poll_timeout=payload.poll_timeout,
            auto_js_version=payload.auto_js_version,
            device_info=payload.device_info,
            monitor_data=payload.monitor_data,
        )
    )
    # release the write transaction before blocking on the queue
    await db.commit()

    disconnected = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, disconnected))
    try:
        result = await engine.heartbeat.poll(device.device_code, payload.poll_timeout, disconnected=disconnected)
    finally:
        watcher.cancel()
    await db.commit()
    return HeartbeatResponse(
        instructions=[InstructionSchema.model_validate(instruction) for instruction in result.instructions],
        server_time=result.server_time,
        config=result.config,
        message=result.message,
    )


@router.post("/report-result", response_model=ExecutionReportResponse, summary="上报指令执行结果")
async def report_result(
    payload: ExecutionReportRequest,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    outcome = await engine.heartbeat.report(
        ExecutionReport(
            device_code=payload.device_code,
            instruction_id=payload.instruction_id,
            status=payload.status,
            start_time=payload.start_time,
            end_time=payload.end_time,
            output=payload.output,
            error_message=payload.error_message,
            execution_metrics=payload.execution_metrics,
            screenshots=payload.screenshots,
        ),
        signature=payload.signature,
        timestamp=payload.timestamp,
    )
    await db.commit()
    return ExecutionReportResponse(
        status=outcome.status,
        instruction_id=outcome.instruction_id,
        server_time=utcnow(),
        message=outcome.message,
    )


@router.get("/script/{script_id}", response_model=ScriptDownloadResponse, summary="下载脚本内容")
async def get_script(
    script_id: int,
    device_code: str = Query(..., alias="deviceCode", min_length=1, max_length=64),
    signature: str = Query(..., min_length=1),
    timestamp: int = Query(...),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    device = await engine.heartbeat.authenticate(device_code, signature, timestamp, script_id)
    script = await engine.fanout.load_script(script_id)
    content = script.content or ""
    logger.info("设备下载脚本 deviceCode=%s scriptId=%s version=%s", device.device_code, script.id, script.version)
    return ScriptDownloadResponse(
        script_id=script.id,
        script_name=script.name,
        version=script.version,
        content=script.content,
        timeout=script.timeout,
        checksum=hashlib.sha256(content.encode("utf-8")).hexdigest(),
        server_time=utcnow(),
    )
