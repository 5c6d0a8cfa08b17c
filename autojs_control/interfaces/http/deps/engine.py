"""Dispatch engine dependency providers."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from autojs_control.core.container import ApplicationContainer, get_container
from autojs_control.domain.engine import DispatchEngine

from .database import get_db_session


def get_app_container() -> ApplicationContainer:
    return get_container()


def get_dispatch_engine(
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_app_container),
) -> DispatchEngine:
    return container.engine(db)


__all__ = ["get_app_container", "get_dispatch_engine"]
