"""Redis implementation of the TTL store."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Collection, Mapping, Optional, Sequence

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from .base import StoreUnavailableError

logger = logging.getLogger(__name__)

_MISSING_TOKEN = "__missing__"

# KEYS[1] key; ARGV[1] new value; ARGV[2] ttl (0 = none); ARGV[3..] allowed current values
_COMPARE_AND_SET = """
local current = redis.call('GET', KEYS[1])
local allowed = false
for i = 3, #ARGV do
    if ARGV[i] == '__missing__' then
        if not current then allowed = true end
    elseif current == ARGV[i] then
        allowed = true
    end
end
if allowed then
    if tonumber(ARGV[2]) > 0 then
        redis.call('SET', KEYS[1], ARGV[1], 'EX', ARGV[2])
    else
        redis.call('SET', KEYS[1], ARGV[1])
    end
    return {1, current}
end
return {0, current}
"""

_INCR_WITH_TTL = """
local value = redis.call('INCR', KEYS[1])
if value == 1 and tonumber(ARGV[1]) > 0 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return value
"""

_HINCRBY_WITH_TTL = """
local value = redis.call('HINCRBY', KEYS[1], ARGV[1], ARGV[2])
if tonumber(ARGV[3]) > 0 then
    redis.call('EXPIRE', KEYS[1], ARGV[3])
end
return value
"""

_DELETE_IF_EQUALS = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class RedisTtlStore:
    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client
        self._cas = client.register_script(_COMPARE_AND_SET)
        self._incr = client.register_script(_INCR_WITH_TTL)
        self._hincrby = client.register_script(_HINCRBY_WITH_TTL)
        self._delete_if_equals = client.register_script(_DELETE_IF_EQUALS)

    @classmethod
    def from_url(cls, url: str) -> "RedisTtlStore":
        return cls(aioredis.Redis.from_url(url, decode_responses=True))

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except RedisError as exc:
            logger.error("Redis 操作失败 op=%s: %s", operation, exc)
            raise StoreUnavailableError(f"ttl store {operation} failed: {exc}") from exc

    async def ping(self) -> bool:
        async with self._guard("ping"):
            return bool(await self._client.ping())

    async def get(self, key: str) -> str | None:
        async with self._guard("get"):
            return await self._client.get(key)

    async def set(self, key: str, value: str, *, ttl: int | None = None) -> None:
        async with self._guard("set"):
            await self._client.set(key, value, ex=ttl)

    async def set_nx(self, key: str, value: str, *, ttl: int) -> bool:
        async with self._guard("set_nx"):
            return bool(await self._client.set(key, value, ex=ttl, nx=True))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        async with self._guard("delete"):
            return int(await self._client.delete(*keys))

    async def delete_if_equals(self, key: str, value: str) -> bool:
        async with self._guard("delete_if_equals"):
            return bool(await self._delete_if_equals(keys=[key], args=[value]))

    async def exists(self, key: str) -> bool:
        async with self._guard("exists"):
            return bool(await self._client.exists(key))

    async def expire(self, key: str, ttl: int) -> None:
        async with self._guard("expire"):
            await self._client.expire(key, ttl)

    async def incr(self, key: str, *, ttl: int | None = None) -> int:
        async with self._guard("incr"):
            return int(await self._incr(keys=[key], args=[ttl or 0]))

    async def compare_and_set(
        self,
        key: str,
        expected: Collection[Optional[str]],
        value: str,
        *,
        ttl: int | None = None,
    ) -> tuple[bool, str | None]:
        allowed = [_MISSING_TOKEN if item is None else item for item in expected]
        async with self._guard("compare_and_set"):
            swapped, previous = await self._cas(keys=[key], args=[value, ttl or 0, *allowed])
        return bool(swapped), previous

    async def rpush(self, key: str, *values: str) -> int:
        async with self._guard("rpush"):
            return int(await self._client.rpush(key, *values))

    async def lpop(self, key: str, count: int) -> list[str]:
        async with self._guard("lpop"):
            popped = await self._client.lpop(key, count)
        return list(popped or [])

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        async with self._guard("lrange"):
            return list(await self._client.lrange(key, start, stop))

    async def llen(self, key: str) -> int:
        async with self._guard("llen"):
            return int(await self._client.llen(key))

    async def lrem(self, key: str, value: str, count: int = 1) -> int:
        async with self._guard("lrem"):
            return int(await self._client.lrem(key, count, value))

    async def blpop(self, keys: Sequence[str], timeout: float) -> tuple[str, str] | None:
        async with self._guard("blpop"):
            result = await self._client.blpop(list(keys), timeout=timeout)
        if result is None:
            return None
        key, value = result
        return key, value

    async def hset(self, key: str, mapping: Mapping[str, str], *, ttl: int | None = None) -> None:
        async with self._guard("hset"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=dict(mapping))
                if ttl:
                    pipe.expire(key, ttl)
                await pipe.execute()

    async def hgetall(self, key: str) -> dict[str, str]:
        async with self._guard("hgetall"):
            return dict(await self._client.hgetall(key))

    async def hincrby(self, key: str, field: str, amount: int = 1, *, ttl: int | None = None) -> int:
        async with self._guard("hincrby"):
            return int(await self._hincrby(keys=[key], args=[field, amount, ttl or 0]))

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["RedisTtlStore"]
