"""Simple dependency container for wiring core services."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from autojs_control.core.clock import Clock, utcnow
from autojs_control.core.config import Settings, get_settings
from autojs_control.domain.engine import DispatchEngine
from autojs_control.domain.notifications import NotificationHub
from autojs_control.infrastructure.database.session import get_engine
from autojs_control.infrastructure.ttl_store import TtlStore, create_store


@dataclass(slots=True)
class ApplicationContainer:
    settings: Settings
    store: TtlStore
    notifier: NotificationHub = field(default_factory=NotificationHub)
    clock: Clock = utcnow

    def init_infrastructure(self) -> None:
        """Ensure infrastructure singletons (database engine, etc.) are initialised."""
        get_engine()

    def engine(self, session: AsyncSession) -> DispatchEngine:
        return DispatchEngine.with_session(
            session,
            store=self.store,
            notifier=self.notifier,
            settings=self.settings,
            clock=self.clock,
        )

    async def close(self) -> None:
        await self.store.close()


def build_container(settings: Settings) -> ApplicationContainer:
    store = create_store(settings.redis.backend, settings.redis.url)
    return ApplicationContainer(settings=settings, store=store)


@lru_cache()
def get_container() -> ApplicationContainer:
    container = build_container(get_settings())
    container.init_infrastructure()
    return container


__all__ = ["ApplicationContainer", "build_container", "get_container"]
