"""Redis implementation of the moderation counter store."""

from __future__ import annotations

from typing import Any, Optional

from chatguard.infra.redis import redis_client


class RedisCounterStore:
    """Counter and marker primitives over ``redis.asyncio``.

    Defaults to the process-wide proxy so tests can swap in FakeRedis.
    """

    def __init__(self, redis: Any = None) -> None:
        self._redis = redis if redis is not None else redis_client

    async def increment(self, key: str, ttl_seconds: int) -> int:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl_seconds)
            count, _ = await pipe.execute()
        return int(count)

    async def expire(self, key: str, seconds: int) -> None:
        await self._redis.expire(key, seconds)

    async def exists(self, key: str) -> bool:
        return bool(await self._redis.exists(key))

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.set(key, value, ex=ttl_seconds)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        return bool(await self._redis.set(key, value, nx=True, ex=ttl_seconds))

    async def get(self, key: str) -> Optional[str]:
        value = await self._redis.get(key)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)
