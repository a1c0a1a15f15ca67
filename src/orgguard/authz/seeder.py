"""
Default policy seeding for newly created organizations.

Must run once per organization, before any member is assigned a role in
it. Re-running is harmless: existing grants are skipped.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from orgguard.authz.audit import AuditLog
from orgguard.authz.cache import AuthorizationCache
from orgguard.authz.store import PolicyStore
from orgguard.domain.models import WILDCARD, AuditContext, Effect, Grant

logger = structlog.get_logger()

CONTENT_ACTIONS = ["read", "create", "update", "delete"]

DEFAULT_ROLE_PERMISSIONS: dict[str, list[tuple[str, list[str]]]] = {
    "owner": [
        (WILDCARD, [WILDCARD]),
    ],
    "admin": [
        ("posts", [*CONTENT_ACTIONS, "manage"]),
        ("comments", [*CONTENT_ACTIONS, "manage"]),
        ("files", CONTENT_ACTIONS),
        ("reports", CONTENT_ACTIONS),
        ("notifications", ["read", "create"]),
        ("members", CONTENT_ACTIONS),
        ("roles", ["read", "manage"]),
        ("settings", ["read", "manage"]),
        ("billing", ["read"]),
    ],
    "member": [
        ("posts", ["read", "create", "update"]),
        ("comments", ["read", "create", "update"]),
        ("files", ["read", "create"]),
        ("reports", ["read", "create"]),
        ("notifications", ["read"]),
        ("members", ["read"]),
        ("settings", ["read"]),
    ],
    "viewer": [
        ("posts", ["read"]),
        ("comments", ["read"]),
        ("files", ["read"]),
        ("reports", ["read"]),
        ("members", ["read"]),
    ],
}


def default_grants(org_id: str) -> list[Grant]:
    return [
        Grant(role=role, domain=org_id, resource=resource, action=action)
        for role, permissions in DEFAULT_ROLE_PERMISSIONS.items()
        for resource, actions in permissions
        for action in actions
    ]


class DefaultPolicySeeder:
    def __init__(
        self,
        session: AsyncSession,
        store: PolicyStore,
        audit: AuditLog,
        cache: AuthorizationCache,
    ) -> None:
        self.session = session
        self.store = store
        self.audit = audit
        self.cache = cache

    async def seed_default_policies(self, org_id: str, context: AuditContext | None = None) -> int:
        """Add the built-in role grants for ``org_id``. Returns how many were new."""
        context = context or AuditContext()
        added = 0
        try:
            for grant in default_grants(org_id):
                if not await self.store.add_grant(grant):
                    continue
                added += 1
                await self.audit.log_policy_added(
                    org_id=org_id,
                    role=grant.role,
                    resource=grant.resource,
                    action=grant.action,
                    effect=Effect.allow.value,
                    context=context,
                    details={"source": "default_seed"},
                )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        if added:
            await self.cache.invalidate_org(org_id)
        logger.info("default_policies_seeded", org_id=org_id, added=added)
        return added
