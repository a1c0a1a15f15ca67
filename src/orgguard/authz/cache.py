"""
Authorization decision cache.

Decisions are keyed ``authz:{user}:{org}:{resource}:{action}`` so that a
whole user, a user within one org, or a whole org can be dropped with one
glob pattern delete. Without a provider every lookup misses.
"""

from __future__ import annotations

import structlog

from orgguard.cache import CacheProvider

logger = structlog.get_logger()

KEY_PREFIX = "authz"

# Bracket classes read the same under fnmatch and Redis MATCH.
_GLOB_ESCAPES = str.maketrans({"[": "[[]", "*": "[*]", "?": "[?]", "\\": "[\\\\]"})


def escape_glob(value: str) -> str:
    """Make ``value`` match itself literally inside a glob pattern."""
    return value.translate(_GLOB_ESCAPES)


def build_authz_key(user_id: str, org_id: str, resource: str, action: str) -> str:
    return f"{KEY_PREFIX}:{user_id}:{org_id}:{resource}:{action}"


def build_user_pattern(user_id: str, org_id: str | None = None) -> str:
    if org_id:
        return f"{KEY_PREFIX}:{escape_glob(user_id)}:{escape_glob(org_id)}:*"
    return f"{KEY_PREFIX}:{escape_glob(user_id)}:*"


def build_org_pattern(org_id: str) -> str:
    return f"{KEY_PREFIX}:*:{escape_glob(org_id)}:*"


class AuthorizationCache:
    """Caches boolean authorization decisions with a TTL."""

    def __init__(self, provider: CacheProvider | None, ttl: int = 300) -> None:
        self.provider = provider
        self.ttl = ttl

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    async def get(self, user_id: str, org_id: str, resource: str, action: str) -> bool | None:
        """Return the cached decision, or ``None`` on a miss."""
        if self.provider is None:
            return None
        key = build_authz_key(user_id, org_id, resource, action)
        value = await self.provider.get(key)
        if value is None:
            return None
        logger.debug("authz_cache_hit", cache_key=key)
        return bool(value)

    async def set(
        self,
        user_id: str,
        org_id: str,
        resource: str,
        action: str,
        value: bool,
        ttl: int | None = None,
    ) -> None:
        if self.provider is None:
            return
        key = build_authz_key(user_id, org_id, resource, action)
        await self.provider.set(key, bool(value), ttl=ttl or self.ttl)
        logger.debug("authz_cached", cache_key=key, allowed=value)

    async def invalidate_user(self, user_id: str, org_id: str | None = None) -> int:
        if self.provider is None:
            return 0
        count = await self.provider.delete_pattern(build_user_pattern(user_id, org_id))
        logger.info("authz_cache_invalidated", scope="user", user_id=user_id, org_id=org_id, count=count)
        return count

    async def invalidate_org(self, org_id: str) -> int:
        if self.provider is None:
            return 0
        count = await self.provider.delete_pattern(build_org_pattern(org_id))
        logger.info("authz_cache_invalidated", scope="org", org_id=org_id, count=count)
        return count
