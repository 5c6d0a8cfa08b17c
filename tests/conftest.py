"""
Shared fixtures for the dispatch engine test suite.

Everything runs against the in-memory TTL store and a throwaway sqlite
database, so no Redis server is needed.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from autojs_control.core.config import Settings
from autojs_control.core.container import ApplicationContainer
from autojs_control.domain.engine import DispatchEngine
from autojs_control.domain.notifications import NotificationHub
from autojs_control.infrastructure.database import init_db
from autojs_control.infrastructure.database.repositories.script_repository import SqlScriptRepository
from autojs_control.infrastructure.ttl_store import InMemoryTtlStore

from helpers import FakeClock, RecordingNotifier

SECRET_KEY = "test-secret-key"


# ---------------------------------------------------------------------------
# Infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 8, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock):
    return InMemoryTtlStore(clock=clock.timestamp)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        environment="test",
        redis={"backend": "memory"},
        security={"secret_key": SECRET_KEY},
        scheduler={"enabled": False},
    )


@pytest.fixture
def recorder():
    return RecordingNotifier()


@pytest.fixture
def hub(recorder):
    return NotificationHub([recorder])


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def container(settings, store, hub, clock):
    return ApplicationContainer(settings=settings, store=store, notifier=hub, clock=clock)


@pytest.fixture
def engine(session, store, hub, settings, clock) -> DispatchEngine:
    return DispatchEngine.with_session(session, store=store, notifier=hub, settings=settings, clock=clock)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


@pytest.fixture
async def seed(engine, session):
    """Group ``g1`` with dev-1 and dev-2, ungrouped dev-3 and one script."""
    group_id = await engine.devices.create_group(name="g1", description="test group")
    certificates = {}
    for code, group in (("dev-1", group_id), ("dev-2", group_id), ("dev-3", None)):
        device, certificate = await engine.devices.register(
            device_code=code,
            certificate_request=f"csr-{code}",
            auth=engine.auth,
            device_name=f"Device {code}",
            auto_js_version="4.1.1",
            group_id=group,
        )
        certificates[device.device_code] = certificate
    script = await SqlScriptRepository(session).create_script(
        name="collect", content="toast('hi')", version="1.0", timeout=300
    )
    await session.commit()
    return {"group_id": group_id, "certificates": certificates, "script_id": script.id}
