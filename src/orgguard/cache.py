from __future__ import annotations

import fnmatch
import json
import time
from collections import OrderedDict
from typing import Any, Protocol, runtime_checkable

import redis.asyncio as aioredis
import structlog

from orgguard.config import Settings
from orgguard.core.errors import ConfigurationError

logger = structlog.get_logger()


@runtime_checkable
class CacheProvider(Protocol):
    """Key/value store with TTLs and glob-pattern deletion."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: int = 3600) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_pattern(self, pattern: str) -> int: ...

    async def close(self) -> None: ...


@runtime_checkable
class LockingCacheProvider(CacheProvider, Protocol):
    async def acquire_lock(self, key: str, ttl: int = 60) -> bool: ...

    async def release_lock(self, key: str) -> None: ...


class RedisCache:
    """Redis-based caching and distributed locking."""

    def __init__(
        self,
        redis_url: str,
        max_connections: int = 50,
        redis_client: aioredis.Redis | None = None,
        scan_count: int = 100,
    ) -> None:
        self._redis_url = redis_url
        self._pool: aioredis.ConnectionPool | None = None
        self._client: aioredis.Redis | None = redis_client
        self._scan_count = scan_count

        if redis_client is None:
            self._pool = aioredis.ConnectionPool.from_url(
                redis_url,
                max_connections=max_connections,
                decode_responses=True,
            )

    async def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.Redis(connection_pool=self._pool)
        return self._client

    async def get(self, key: str) -> Any | None:
        """Get value from cache."""
        client = await self._get_client()
        value = await client.get(key)
        if value:
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value
        return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> None:
        """Set value in cache with TTL in seconds."""
        client = await self._get_client()
        serialized = json.dumps(value) if not isinstance(value, str) else value
        await client.setex(key, ttl, serialized)

    async def delete(self, key: str) -> None:
        """Delete key from cache."""
        client = await self._get_client()
        await client.delete(key)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Uses SCAN, never KEYS."""
        client = await self._get_client()
        deleted = 0
        batch: list[str] = []
        async for key in client.scan_iter(match=pattern, count=self._scan_count):
            batch.append(key)
            if len(batch) >= self._scan_count:
                deleted += await client.delete(*batch)
                batch = []
        if batch:
            deleted += await client.delete(*batch)
        return deleted

    async def acquire_lock(self, key: str, ttl: int = 60) -> bool:
        """Acquire distributed lock. Returns True if lock acquired."""
        client = await self._get_client()
        return bool(await client.set(key, "locked", nx=True, ex=ttl))

    async def release_lock(self, key: str) -> None:
        """Release distributed lock."""
        await self.delete(key)

    async def ping(self) -> bool:
        client = await self._get_client()
        return bool(await client.ping())

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
        if self._pool is not None:
            await self._pool.disconnect()


class MemoryCache:
    """
    In-process cache with TTL expiry and LRU eviction.

    Not shared across processes: suitable for a single API worker, the CLI
    and tests. Locks are process-local as well.
    """

    def __init__(self, max_size: int = 1000, clock: Any = time.monotonic) -> None:
        self._max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, tuple[Any, float | None]] = OrderedDict()

    def _expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    async def set(self, key: str, value: Any, ttl: int | None = 3600) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        if key not in self._entries and len(self._entries) >= self._max_size:
            self._entries.popitem(last=False)
        self._entries[key] = (value, expires_at)
        self._entries.move_to_end(key)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_pattern(self, pattern: str) -> int:
        matched = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            del self._entries[key]
        return len(matched)

    async def acquire_lock(self, key: str, ttl: int = 60) -> bool:
        if await self.get(key) is not None:
            return False
        await self.set(key, "locked", ttl=ttl)
        return True

    async def release_lock(self, key: str) -> None:
        await self.delete(key)

    async def clear(self) -> None:
        self._entries.clear()

    async def close(self) -> None:
        self._entries.clear()


def build_cache_provider(settings: Settings) -> CacheProvider | None:
    """Create the configured cache provider; ``None`` disables caching."""
    backend = settings.cache_backend.lower()
    if backend == "redis":
        return RedisCache(settings.redis_url, settings.redis_max_connections)
    if backend == "memory":
        return MemoryCache(max_size=settings.cache_max_size)
    if backend == "none":
        logger.warning("authz_cache_disabled")
        return None
    raise ConfigurationError(
        f"Unsupported cache backend: {settings.cache_backend}",
        details={"supported": "redis, memory, none"},
    )
