"""In-process TTL store used for tests and single-node development."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Collection, Mapping, Optional, Sequence


@dataclass(slots=True)
class _Entry:
    value: Any
    expires_at: float | None = None


class InMemoryTtlStore:
    """Mirrors the subset of Redis semantics the dispatch engine relies on.

    Every operation completes without yielding to the event loop between its
    read and its write, which gives the same per-command atomicity Redis has.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, _Entry] = {}
        self._pushed = asyncio.Event()

    def _live(self, key: str) -> _Entry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    def _expiry(self, ttl: int | None) -> float | None:
        return self._clock() + ttl if ttl else None

    def _list(self, key: str, create: bool = False) -> deque | None:
        entry = self._live(key)
        if entry is None:
            if not create:
                return None
            entry = self._data[key] = _Entry(deque())
        if not isinstance(entry.value, deque):
            raise TypeError(f"WRONGTYPE {key} is not a list")
        return entry.value

    def _hash(self, key: str, create: bool = False) -> dict | None:
        entry = self._live(key)
        if entry is None:
            if not create:
                return None
            entry = self._data[key] = _Entry({})
        if not isinstance(entry.value, dict):
            raise TypeError(f"WRONGTYPE {key} is not a hash")
        return entry.value

    def _drop_if_empty(self, key: str, container: deque) -> None:
        if not container:
            self._data.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        entry = self._live(key)
        if entry is None:
            return None
        if not isinstance(entry.value, str):
            raise TypeError(f"WRONGTYPE {key} is not a string")
        return entry.value

    async def set(self, key: str, value: str, *, ttl: int | None = None) -> None:
        self._data[key] = _Entry(str(value), self._expiry(ttl))

    async def set_nx(self, key: str, value: str, *, ttl: int) -> bool:
        if self._live(key) is not None:
            return False
        self._data[key] = _Entry(str(value), self._expiry(ttl))
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                removed += 1
        return removed

    async def delete_if_equals(self, key: str, value: str) -> bool:
        entry = self._live(key)
        if entry is not None and entry.value == value:
            del self._data[key]
            return True
        return False

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def expire(self, key: str, ttl: int) -> None:
        entry = self._live(key)
        if entry is not None:
            entry.expires_at = self._expiry(ttl)

    async def incr(self, key: str, *, ttl: int | None = None) -> int:
        entry = self._live(key)
        if entry is None:
            self._data[key] = _Entry("1", self._expiry(ttl))
            return 1
        value = int(entry.value) + 1
        entry.value = str(value)
        return value

    async def compare_and_set(
        self,
        key: str,
        expected: Collection[Optional[str]],
        value: str,
        *,
        ttl: int | None = None,
    ) -> tuple[bool, str | None]:
        entry = self._live(key)
        current = entry.value if entry is not None else None
        if current in expected:
            self._data[key] = _Entry(str(value), self._expiry(ttl))
            return True, current
        return False, current

    async def rpush(self, key: str, *values: str) -> int:
        items = self._list(key, create=True)
        items.extend(str(value) for value in values)
        self._pushed.set()
        return len(items)

    async def lpop(self, key: str, count: int) -> list[str]:
        items = self._list(key)
        if not items:
            return []
        popped = [items.popleft() for _ in range(min(count, len(items)))]
        self._drop_if_empty(key, items)
        return popped

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        items = self._list(key)
        if not items:
            return []
        snapshot = list(items)
        stop = len(snapshot) if stop == -1 else stop + 1
        return snapshot[start:stop]

    async def llen(self, key: str) -> int:
        items = self._list(key)
        return len(items) if items else 0

    async def lrem(self, key: str, value: str, count: int = 1) -> int:
        items = self._list(key)
        if not items:
            return 0
        removed = 0
        while value in items and (count == 0 or removed < count):
            items.remove(value)
            removed += 1
        self._drop_if_empty(key, items)
        return removed

    async def blpop(self, keys: Sequence[str], timeout: float) -> tuple[str, str] | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            for key in keys:
                popped = await self.lpop(key, 1)
                if popped:
                    return key, popped[0]
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            self._pushed.clear()
            try:
                await asyncio.wait_for(self._pushed.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                return None

    async def hset(self, key: str, mapping: Mapping[str, str], *, ttl: int | None = None) -> None:
        fields = self._hash(key, create=True)
        fields.update({name: str(value) for name, value in mapping.items()})
        if ttl:
            self._data[key].expires_at = self._expiry(ttl)

    async def hgetall(self, key: str) -> dict[str, str]:
        fields = self._hash(key)
        return dict(fields) if fields else {}

    async def hincrby(self, key: str, field: str, amount: int = 1, *, ttl: int | None = None) -> int:
        fields = self._hash(key, create=True)
        value = int(fields.get(field, "0")) + amount
        fields[field] = str(value)
        if ttl:
            self._data[key].expires_at = self._expiry(ttl)
        return value

    async def close(self) -> None:
        self._data.clear()


__all__ = ["InMemoryTtlStore"]
