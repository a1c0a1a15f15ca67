import fnmatch
from typing import Any

import pytest

from orgguard.authz.cache import (
    AuthorizationCache,
    build_authz_key,
    build_org_pattern,
    build_user_pattern,
)
from orgguard.cache import MemoryCache, RedisCache, build_cache_provider
from orgguard.config import Settings
from orgguard.core.errors import ConfigurationError


class StubRedisClient:
    """Just enough of redis.asyncio.Redis for the cache wrapper."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.delete_calls: list[tuple[str, ...]] = []

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self.data[key] = value
        self.ttls[key] = ttl

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        self.delete_calls.append(keys)
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match: str, count: int = 10) -> Any:
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestKeyLayout:
    def test_decision_key(self):
        assert build_authz_key("u1", "org1", "posts", "read") == "authz:u1:org1:posts:read"

    def test_user_pattern_all_orgs(self):
        assert build_user_pattern("u1") == "authz:u1:*"

    def test_user_pattern_single_org(self):
        assert build_user_pattern("u1", "org1") == "authz:u1:org1:*"

    def test_org_pattern(self):
        assert build_org_pattern("org1") == "authz:*:org1:*"

    def test_glob_characters_in_ids_are_escaped(self):
        assert build_org_pattern("acme[eu]") == "authz:*:acme[[]eu]:*"
        assert build_user_pattern("u*", "org?") == "authz:u[*]:org[?]:*"


class TestRedisCache:
    @pytest.mark.asyncio
    async def test_boolean_round_trip_distinguishes_false_from_miss(self):
        client = StubRedisClient()
        cache = RedisCache("redis://test", redis_client=client)

        await cache.set("k", False, ttl=30)

        assert await cache.get("k") is False
        assert await cache.get("missing") is None
        assert client.ttls["k"] == 30

    @pytest.mark.asyncio
    async def test_delete_pattern_batches_scanned_keys(self):
        client = StubRedisClient()
        cache = RedisCache("redis://test", redis_client=client, scan_count=2)
        for user in ("a", "b", "c"):
            await cache.set(f"authz:{user}:org1:posts:read", True)
        await cache.set("authz:a:org2:posts:read", True)

        deleted = await cache.delete_pattern("authz:*:org1:*")

        assert deleted == 3
        assert list(client.data) == ["authz:a:org2:posts:read"]
        assert [len(call) for call in client.delete_calls] == [2, 1]

    @pytest.mark.asyncio
    async def test_lock_is_exclusive_until_released(self):
        cache = RedisCache("redis://test", redis_client=StubRedisClient())

        assert await cache.acquire_lock("lock:x", ttl=10)
        assert not await cache.acquire_lock("lock:x", ttl=10)
        await cache.release_lock("lock:x")
        assert await cache.acquire_lock("lock:x", ttl=10)


class TestMemoryCache:
    @pytest.mark.asyncio
    async def test_entries_expire(self):
        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        await cache.set("k", True, ttl=5)

        clock.now += 4
        assert await cache.get("k") is True
        clock.now += 2
        assert await cache.get("k") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_least_recently_used_entry_is_evicted(self):
        cache = MemoryCache(max_size=2)
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.get("a")
        await cache.set("c", 3)

        assert await cache.get("a") == 1
        assert await cache.get("b") is None
        assert await cache.get("c") == 3

    @pytest.mark.asyncio
    async def test_delete_pattern(self):
        cache = MemoryCache()
        await cache.set("authz:u1:org1:posts:read", True)
        await cache.set("authz:u1:org2:posts:read", True)
        await cache.set("authz:u2:org1:posts:read", False)

        assert await cache.delete_pattern("authz:u1:*") == 2
        assert await cache.get("authz:u2:org1:posts:read") is False


class TestBuildCacheProvider:
    def test_memory_backend(self):
        provider = build_cache_provider(Settings(cache_backend="memory", cache_max_size=5))
        assert isinstance(provider, MemoryCache)

    def test_none_backend_disables_caching(self):
        assert build_cache_provider(Settings(cache_backend="none")) is None

    def test_unknown_backend_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            build_cache_provider(Settings(cache_backend="memcached"))


class TestAuthorizationCache:
    @pytest.mark.asyncio
    async def test_miss_then_hit(self):
        cache = AuthorizationCache(MemoryCache(), ttl=60)

        assert await cache.get("u1", "org1", "posts", "read") is None
        await cache.set("u1", "org1", "posts", "read", False)
        assert await cache.get("u1", "org1", "posts", "read") is False

    @pytest.mark.asyncio
    async def test_invalidate_user_scoped_to_org(self):
        cache = AuthorizationCache(MemoryCache())
        await cache.set("u1", "org1", "posts", "read", True)
        await cache.set("u1", "org2", "posts", "read", True)

        assert await cache.invalidate_user("u1", "org1") == 1
        assert await cache.get("u1", "org1", "posts", "read") is None
        assert await cache.get("u1", "org2", "posts", "read") is True

    @pytest.mark.asyncio
    async def test_invalidate_org_drops_every_user(self):
        cache = AuthorizationCache(MemoryCache())
        await cache.set("u1", "org1", "posts", "read", True)
        await cache.set("u2", "org1", "files", "create", True)
        await cache.set("u1", "org2", "posts", "read", True)

        assert await cache.invalidate_org("org1") == 2
        assert await cache.get("u1", "org2", "posts", "read") is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("org_id", ["acme[eu]", "acme*", "what?", "back\\slash", "[!x]"])
    async def test_invalidation_with_glob_characters_in_ids(self, org_id):
        cache = AuthorizationCache(MemoryCache())
        await cache.set("u[1]", org_id, "posts", "read", True)
        await cache.set("u2", org_id, "posts", "read", True)
        await cache.set("u2", "acmeX", "posts", "read", True)

        assert await cache.invalidate_user("u[1]", org_id) == 1
        assert await cache.invalidate_org(org_id) == 1
        assert await cache.get("u2", "acmeX", "posts", "read") is True

    @pytest.mark.asyncio
    async def test_redis_invalidation_with_bracketed_org(self):
        client = StubRedisClient()
        cache = AuthorizationCache(RedisCache("redis://test", redis_client=client))
        await cache.set("u1", "acme[eu]", "posts", "read", True)

        assert await cache.invalidate_org("acme[eu]") == 1
        assert client.data == {}

    @pytest.mark.asyncio
    async def test_without_provider_everything_misses(self):
        cache = AuthorizationCache(None)
        await cache.set("u1", "org1", "posts", "read", True)

        assert not cache.enabled
        assert await cache.get("u1", "org1", "posts", "read") is None
        assert await cache.invalidate_org("org1") == 0
