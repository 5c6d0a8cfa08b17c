"""Online/offline tracking derived from heartbeat cadence."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from autojs_control.core.clock import Clock, utcnow
from autojs_control.domain.instructions import keys
from autojs_control.infrastructure.ttl_store import TtlStore


class DeviceLivenessTracker:
    """Devices go offline passively when ``device_online:<code>`` expires."""

    def __init__(
        self,
        store: TtlStore,
        *,
        online_ttl: int = keys.TTL_ONLINE_STATUS,
        heartbeat_ttl: int = keys.TTL_HEARTBEAT,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._online_ttl = online_ttl
        self._heartbeat_ttl = heartbeat_ttl
        self._clock = clock

    async def record_heartbeat(self, device_code: str, now: Optional[datetime] = None) -> None:
        now = now or self._clock()
        await self._store.set(keys.device_online(device_code), "1", ttl=self._online_ttl)
        await self._store.set(keys.device_last_heartbeat(device_code), str(int(now.timestamp())), ttl=self._heartbeat_ttl)

    async def is_online(self, device_code: str) -> bool:
        return await self._store.exists(keys.device_online(device_code))

    async def last_heartbeat(self, device_code: str) -> Optional[int]:
        raw = await self._store.get(keys.device_last_heartbeat(device_code))
        return int(raw) if raw else None


__all__ = ["DeviceLivenessTracker"]
