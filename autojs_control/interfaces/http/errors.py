"""Translate engine exceptions into HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from autojs_control.domain.common.exceptions import (
    DeviceAuthError,
    DeviceNotFoundError,
    DispatchError,
    ReportValidationError,
    ScriptNotFoundError,
    TaskConfigurationError,
    TaskNotFoundError,
    TaskStateError,
)
from autojs_control.infrastructure.ttl_store import StoreUnavailableError

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[DispatchError], int], ...] = (
    (DeviceAuthError, status.HTTP_401_UNAUTHORIZED),
    (ReportValidationError, status.HTTP_400_BAD_REQUEST),
    (TaskConfigurationError, status.HTTP_400_BAD_REQUEST),
    (TaskStateError, status.HTTP_409_CONFLICT),
    (TaskNotFoundError, status.HTTP_404_NOT_FOUND),
    (ScriptNotFoundError, status.HTTP_404_NOT_FOUND),
    (DeviceNotFoundError, status.HTTP_404_NOT_FOUND),
)


def status_for(exc: DispatchError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code == status.HTTP_401_UNAUTHORIZED:
        # no engine state is touched on authentication failures
        return JSONResponse(status_code=status_code, content={"status": "error", "detail": "设备认证失败"})
    return JSONResponse(status_code=status_code, content={"status": "error", "detail": str(exc)})


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error("存储服务不可用 path=%s error=%s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "error", "detail": "存储服务暂不可用，请稍后重试"},
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DispatchError, dispatch_error_handler)
    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)


__all__ = ["install_exception_handlers", "status_for"]
