"""Best-effort per-device mutex stored in the TTL store."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from autojs_control.infrastructure.ttl_store import TtlStore

from . import keys

logger = logging.getLogger(__name__)


class DeviceLock:
    """Soft lock on ``device_lock:<deviceCode>``.

    The key expires after ``ttl`` seconds even if the holder never releases it,
    so holders must not rely on exclusivity. If the lock cannot be taken within
    ``wait`` seconds the caller proceeds unlocked.
    """

    def __init__(self, store: TtlStore, *, ttl: int = keys.TTL_LOCK, wait: float = 2.0, retry_delay: float = 0.05) -> None:
        self._store = store
        self._ttl = ttl
        self._wait = wait
        self._retry_delay = retry_delay

    @asynccontextmanager
    async def hold(self, device_code: str) -> AsyncIterator[bool]:
        key = keys.device_lock(device_code)
        token = uuid.uuid4().hex
        acquired = await self._acquire(key, token)
        if not acquired:
            logger.warning("设备锁获取超时，继续执行 deviceCode=%s", device_code)
        try:
            yield acquired
        finally:
            if acquired:
                released = await self._store.delete_if_equals(key, token)
                if not released:
                    logger.info("设备锁已过期或被接管 deviceCode=%s", device_code)

    async def _acquire(self, key: str, token: str) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._wait
        while True:
            if await self._store.set_nx(key, token, ttl=self._ttl):
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self._retry_delay)


__all__ = ["DeviceLock"]
