"""
Policy sync.

Projects organization membership (the source of truth) into role
assignments. Assignment is last-write-wins: a user holds at most one role
per domain, so every sync removes what was there before adding the new
role.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from orgguard.authz.audit import AuditLog
from orgguard.authz.cache import AuthorizationCache
from orgguard.authz.members import MemberDirectory
from orgguard.authz.store import PolicyStore
from orgguard.cache import CacheProvider, LockingCacheProvider
from orgguard.core.errors import SyncInProgressError
from orgguard.domain.models import AuditContext, RoleAssignment

logger = structlog.get_logger()

SYNC_LOCK_PREFIX = "lock:authz-sync"


@dataclass
class OrgSyncResult:
    org_id: str
    assignments: list[RoleAssignment] = field(default_factory=list)
    removed: list[RoleAssignment] = field(default_factory=list)


class PolicySync:
    """Reconciles membership roles into the policy store."""

    def __init__(
        self,
        session: AsyncSession,
        store: PolicyStore,
        audit: AuditLog,
        cache: AuthorizationCache,
        members: MemberDirectory,
        lock_provider: CacheProvider | None = None,
        lock_ttl: int = 120,
    ) -> None:
        self.session = session
        self.store = store
        self.audit = audit
        self.cache = cache
        self.members = members
        self.lock_provider = lock_provider
        self.lock_ttl = lock_ttl

    async def sync_member_role(
        self,
        user_id: str,
        org_id: str,
        role: str,
        context: AuditContext | None = None,
    ) -> RoleAssignment:
        context = context or AuditContext()
        assignment = RoleAssignment(user_id=user_id, role=role, domain=org_id)
        try:
            removed = await self.store.remove_role_assignments(user_id, org_id)
            await self.store.add_role_assignment(assignment)
            await self._audit_delta(org_id, removed, [assignment], context)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.cache.invalidate_user(user_id, org_id)
        logger.info(
            "member_role_synced",
            user_id=user_id,
            org_id=org_id,
            role=role,
            previous=[r.role for r in removed],
        )
        return assignment

    async def remove_member_roles(
        self,
        user_id: str,
        org_id: str,
        context: AuditContext | None = None,
    ) -> list[RoleAssignment]:
        context = context or AuditContext()
        try:
            removed = await self.store.remove_role_assignments(user_id, org_id)
            await self._audit_delta(org_id, removed, [], context)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.cache.invalidate_user(user_id, org_id)
        logger.info("member_roles_removed", user_id=user_id, org_id=org_id, count=len(removed))
        return removed

    async def sync_all_org_members(
        self,
        org_id: str,
        context: AuditContext | None = None,
    ) -> OrgSyncResult:
        """Rebuild every role assignment of ``org_id`` from membership rows.

        Not safe to run concurrently with itself for the same org; when the
        cache provider supports locking a per-org lock enforces that.
        """
        lock_key = f"{SYNC_LOCK_PREFIX}:{org_id}"
        locking = isinstance(self.lock_provider, LockingCacheProvider)
        if locking and not await self.lock_provider.acquire_lock(lock_key, ttl=self.lock_ttl):
            raise SyncInProgressError(
                f"Full resync already running for organization {org_id}",
                details={"org_id": org_id},
            )
        try:
            return await self._sync_all(org_id, context or AuditContext())
        finally:
            if locking:
                await self.lock_provider.release_lock(lock_key)

    async def _sync_all(self, org_id: str, context: AuditContext) -> OrgSyncResult:
        # One role per user; a duplicated membership row keeps its last role.
        desired: dict[str, str] = {}
        for member in await self.members.list_members(org_id):
            desired[member.user_id] = member.role
        assignments = [
            RoleAssignment(user_id=user_id, role=role, domain=org_id)
            for user_id, role in sorted(desired.items())
        ]

        try:
            removed = await self.store.clear_role_assignments(org_id)
            for assignment in assignments:
                await self.store.add_role_assignment(assignment)
            await self._audit_delta(
                org_id, removed, assignments, context, details={"source": "full_resync"}
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.cache.invalidate_org(org_id)
        logger.info(
            "org_members_synced",
            org_id=org_id,
            assigned=len(assignments),
            previous=len(removed),
        )
        return OrgSyncResult(org_id=org_id, assignments=assignments, removed=removed)

    async def _audit_delta(
        self,
        org_id: str,
        before: list[RoleAssignment],
        after: list[RoleAssignment],
        context: AuditContext,
        details: dict[str, str] | None = None,
    ) -> None:
        before_set = {(a.user_id, a.role) for a in before}
        after_set = {(a.user_id, a.role) for a in after}
        for user_id, role in sorted(before_set - after_set):
            await self.audit.log_role_removed(
                user_id=user_id, org_id=org_id, role=role, context=context, details=details
            )
        for user_id, role in sorted(after_set - before_set):
            await self.audit.log_role_assigned(
                user_id=user_id, org_id=org_id, role=role, context=context, details=details
            )
