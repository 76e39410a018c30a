"""Key/TTL stores backing the price cache."""

from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def scan(self, prefix: str) -> list[str]: ...

    async def close(self) -> None: ...


class MemoryCacheStore:
    """Dict-backed store; expired entries are dropped when read."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self._data[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def scan(self, prefix: str) -> list[str]:
        now = self._clock()
        return sorted(key for key, (_, expires_at) in self._data.items() if key.startswith(prefix) and expires_at > now)

    async def close(self) -> None:
        self._data.clear()


class RedisCacheStore:
    def __init__(self, url: str, *, client: redis.Redis | None = None, namespace: str = "pricehub") -> None:
        self._client = client or redis.from_url(url, decode_responses=True)
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> str | None:
        return await self._client.get(self._key(key))

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client.setex(self._key(key), ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def scan(self, prefix: str) -> list[str]:
        offset = len(self._namespace) + 1
        keys = [key[offset:] async for key in self._client.scan_iter(match=f"{self._key(prefix)}*")]
        return sorted(keys)

    async def close(self) -> None:
        await self._client.aclose()


def create_store(backend: str, redis_url: str) -> CacheStore:
    if backend == "redis":
        logger.info("Using redis cache at %s", redis_url)
        return RedisCacheStore(redis_url)
    if backend != "memory":
        logger.warning("Unknown cache backend %r; using memory", backend)
    return MemoryCacheStore()
