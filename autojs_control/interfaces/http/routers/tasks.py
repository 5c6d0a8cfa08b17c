"""Task management endpoints for operators."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from autojs_control.core.security import get_current_operator
from autojs_control.domain.engine import DispatchEngine
from autojs_control.domain.tasks import Task, TaskStatus
from autojs_control.interfaces.http.deps import get_db_session, get_dispatch_engine
from autojs_control.schemas import (
    TaskCreate,
    TaskDetailResponse,
    TaskListResponse,
    TaskResponse,
    TaskStatisticsResponse,
    TaskTargetResponse,
)

router = APIRouter(dependencies=[Depends(get_current_operator)])


def _to_schema(task: Task) -> TaskResponse:
    return TaskResponse.model_validate(task)


@router.post("/", response_model=TaskResponse, status_code=201, summary="创建任务")
async def create_task(
    payload: TaskCreate,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    task = await engine.tasks.create_task(
        name=payload.name,
        script_id=payload.script_id,
        task_type=payload.task_type,
        target_type=payload.target_type,
        target_device_ids=payload.target_device_ids,
        target_group_id=payload.target_group_id,
        parameters=payload.parameters,
        priority=payload.priority,
        max_retries=payload.max_retries,
        retry_cancelled=payload.retry_cancelled,
        scheduled_time=payload.scheduled_time,
        recurrence_interval=payload.recurrence_interval,
    )
    await db.commit()
    return _to_schema(task)


@router.get("/", response_model=TaskListResponse, summary="获取任务列表")
async def list_tasks(
    status: Optional[TaskStatus] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    summary = await engine.tasks.list_tasks(status=status, skip=skip, limit=limit)
    return TaskListResponse(total=summary.total, tasks=[_to_schema(task) for task in summary.tasks])


@router.get("/statistics", response_model=TaskStatisticsResponse, summary="任务状态统计")
async def task_statistics(engine: DispatchEngine = Depends(get_dispatch_engine)):
    stats = await engine.tasks.statistics()
    return TaskStatisticsResponse(total=stats.total, active=stats.active, by_status=stats.by_status)


@router.get("/{task_id}", response_model=TaskDetailResponse, summary="获取任务详情")
async def get_task(task_id: int, engine: DispatchEngine = Depends(get_dispatch_engine)):
    task = await engine.tasks.get_task(task_id)
    targets = await engine.tasks.get_targets(task_id)
    return TaskDetailResponse(
        **_to_schema(task).model_dump(),
        targets=[TaskTargetResponse.model_validate(target) for target in targets],
    )


@router.get("/{task_id}/targets", response_model=list[TaskTargetResponse], summary="获取任务下发明细")
async def get_task_targets(
    task_id: int,
    include_superseded: bool = False,
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    targets = await engine.tasks.get_targets(task_id, include_superseded=include_superseded)
    return [TaskTargetResponse.model_validate(target) for target in targets]


@router.post("/{task_id}/dispatch", response_model=TaskResponse, summary="立即下发任务")
async def dispatch_task(
    task_id: int,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    await engine.tasks.dispatch(task_id)
    await db.commit()
    return _to_schema(await engine.tasks.get_task(task_id))


@router.post("/{task_id}/pause", response_model=TaskResponse, summary="暂停任务")
async def pause_task(
    task_id: int,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    task = await engine.tasks.pause(task_id)
    await db.commit()
    return _to_schema(task)


@router.post("/{task_id}/resume", response_model=TaskResponse, summary="恢复任务")
async def resume_task(
    task_id: int,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    task = await engine.tasks.resume(task_id)
    await db.commit()
    return _to_schema(task)


@router.post("/{task_id}/cancel", response_model=TaskResponse, summary="取消任务")
async def cancel_task(
    task_id: int,
    db: AsyncSession = Depends(get_db_session),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    task = await engine.tasks.cancel(task_id)
    await db.commit()
    return _to_schema(task)
