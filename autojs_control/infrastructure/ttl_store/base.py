"""Protocol for the expiring key-value store backing queues, liveness and locks."""

from __future__ import annotations

from typing import Collection, Mapping, Optional, Protocol, Sequence

# Placeholder accepted by compare_and_set meaning "the key does not exist".
MISSING: Optional[str] = None


class StoreUnavailableError(Exception):
    """Raised when the TTL store cannot be reached or rejects a command.

    Always a retryable infrastructure failure, never a business rejection.
    """


class TtlStore(Protocol):
    async def ping(self) -> bool:
        ...

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str, *, ttl: int | None = None) -> None:
        ...

    async def set_nx(self, key: str, value: str, *, ttl: int) -> bool:
        ...

    async def delete(self, *keys: str) -> int:
        ...

    async def delete_if_equals(self, key: str, value: str) -> bool:
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def expire(self, key: str, ttl: int) -> None:
        ...

    async def incr(self, key: str, *, ttl: int | None = None) -> int:
        """Atomically increment; ``ttl`` is applied when the counter is created."""
        ...

    async def compare_and_set(
        self,
        key: str,
        expected: Collection[Optional[str]],
        value: str,
        *,
        ttl: int | None = None,
    ) -> tuple[bool, str | None]:
        """Set ``value`` only if the current value is one of ``expected``.

        ``MISSING`` inside ``expected`` matches an absent key. Returns whether the
        write happened and the value observed before it.
        """
        ...

    async def rpush(self, key: str, *values: str) -> int:
        ...

    async def lpop(self, key: str, count: int) -> list[str]:
        ...

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        ...

    async def llen(self, key: str) -> int:
        ...

    async def lrem(self, key: str, value: str, count: int = 1) -> int:
        ...

    async def blpop(self, keys: Sequence[str], timeout: float) -> tuple[str, str] | None:
        ...

    async def hset(self, key: str, mapping: Mapping[str, str], *, ttl: int | None = None) -> None:
        ...

    async def hgetall(self, key: str) -> dict[str, str]:
        ...

    async def hincrby(self, key: str, field: str, amount: int = 1, *, ttl: int | None = None) -> int:
        ...

    async def close(self) -> None:
        ...
