"""TTL store adapters (Redis in production, in-memory for tests)."""

from __future__ import annotations

from .base import MISSING, StoreUnavailableError, TtlStore
from .memory_store import InMemoryTtlStore
from .redis_store import RedisTtlStore


def create_store(backend: str, url: str) -> TtlStore:
    if backend == "memory":
        return InMemoryTtlStore()
    return RedisTtlStore.from_url(url)


__all__ = [
    "MISSING",
    "StoreUnavailableError",
    "TtlStore",
    "InMemoryTtlStore",
    "RedisTtlStore",
    "create_store",
]
