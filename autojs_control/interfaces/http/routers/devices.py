"""Device registry and ad-hoc instruction endpoints for operators."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from autojs_control.core.security import get_current_operator
from autojs_control.domain.engine import DispatchEngine
from autojs_control.interfaces.http.deps import get_db_session, get_dispatch_engine
from autojs_control.schemas import (
    DeviceGroupCreate,
    DeviceGroupResponse,
    DeviceListResponse,
    DeviceResponse,
    InstructionCreate,
    InstructionSchema,
    InstructionStatusResponse,
    QueueClearResponse,
)

router = APIRouter(dependencies=[Depends(get_current_operator)])


@router.get("/", response_model=DeviceListResponse, summary="获取设备列表")
async def list_devices(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    online_only: bool = False,
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    summary = await engine.devices.list_devices(skip=skip, limit=limit, online_only=online_only)
    return DeviceListResponse(
        total=summary.total,
        devices=[DeviceResponse.model_validate(device) for device in summary.devices],
    )


@router.post("/groups", response_model=DeviceGroupResponse, status_code=201, summary="创建设备分组")
async def create_group(
    payload: DeviceGroupCreate,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    group_id = await engine.devices.create_group(name=payload.name, description=payload.description)
    await db.commit()
    return DeviceGroupResponse(id=group_id, name=payload.name)


@router.get("/{device_code}", response_model=DeviceResponse, summary="获取设备详情")
async def get_device(device_code: str, engine: DispatchEngine = Depends(get_dispatch_engine)):
    device = await engine.devices.get_by_code(device_code)
    if device is None:
        raise HTTPException(status_code=404, detail="设备不存在")
    return DeviceResponse.model_validate(device)


@router.post(
    "/{device_code}/instructions",
    response_model=InstructionSchema,
    status_code=201,
    summary="向设备下发指令",
)
async def send_instruction(
    device_code: str,
    payload: InstructionCreate,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    instruction = await engine.commands.send(
        device_code,
        type=payload.type,
        data=payload.data,
        priority=payload.priority,
        timeout=payload.timeout,
        script_id=payload.script_id,
    )
    await db.commit()
    return InstructionSchema.model_validate(instruction)


@router.get("/{device_code}/instructions", response_model=list[InstructionSchema], summary="预览设备指令队列")
async def preview_instructions(
    device_code: str,
    limit: int = Query(default=10, ge=1, le=100),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    return [InstructionSchema.model_validate(item) for item in await engine.commands.preview(device_code, limit)]


@router.get(
    "/{device_code}/instructions/{instruction_id}",
    response_model=InstructionStatusResponse,
    summary="查询指令状态",
)
async def instruction_status(
    device_code: str,
    instruction_id: str,
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    return InstructionStatusResponse(
        instruction_id=instruction_id,
        status=await engine.commands.status(instruction_id),
    )


@router.delete(
    "/{device_code}/instructions/{instruction_id}",
    response_model=InstructionStatusResponse,
    summary="取消队列中的指令",
)
async def cancel_instruction(
    device_code: str,
    instruction_id: str,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    if not await engine.commands.cancel(device_code, instruction_id):
        raise HTTPException(status_code=404, detail="指令不在设备队列中")
    await db.commit()
    return InstructionStatusResponse(
        instruction_id=instruction_id,
        status=await engine.commands.status(instruction_id),
    )


@router.delete("/{device_code}/instructions", response_model=QueueClearResponse, summary="清空设备指令队列")
async def clear_instructions(
    device_code: str,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    cleared = await engine.commands.clear(device_code)
    await db.commit()
    return QueueClearResponse(device_code=device_code, cleared=cleared)
