from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from autojs_control import __version__
from autojs_control.core.config import get_settings
from autojs_control.core.container import get_container
from autojs_control.core.logging import configure_logging
from autojs_control.infrastructure.database import get_session_factory, init_db
from autojs_control.infrastructure.database.session import dispose_engine
from autojs_control.interfaces.http.errors import install_exception_handlers
from autojs_control.interfaces.http.routers import create_api_router
from autojs_control.workers import SchedulerWorker

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(level=settings.logging.level, json_format=settings.logging.json_format)
    container = get_container()
    await init_db()

    scheduler = None
    if settings.scheduler.enabled:
        scheduler = SchedulerWorker(
            container,
            get_session_factory(),
            interval=settings.scheduler.interval,
            delivery_grace=settings.scheduler.delivery_grace,
        )
        scheduler.start()
    app.state.scheduler = scheduler
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()
        await container.close()
        await dispose_engine()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.project_name,
        description="Auto.js 设备指令下发与任务调度服务",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_exception_handlers(app)
    app.include_router(create_api_router(settings.api_prefix))

    @app.get("/health", summary="健康检查")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


app = create_app()


def run() -> None:
    uvicorn.run(
        "autojs_control.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.server.reload,
    )
