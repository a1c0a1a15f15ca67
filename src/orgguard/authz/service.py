"""
Request-path authorization.

Flow for a check:
1. Cached decision, if any
2. Enforcer evaluation (violations first, then grants)
3. Audit the outcome (best effort)
4. Cache the decision

Any failure along the way denies.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from orgguard.authz.audit import AuditLog
from orgguard.authz.cache import AuthorizationCache
from orgguard.authz.enforcer import Enforcer
from orgguard.domain.models import AuditContext

logger = structlog.get_logger()


class AuthorizationService:
    """Cached, audited, fail-closed permission checks."""

    def __init__(
        self,
        session: AsyncSession,
        enforcer: Enforcer,
        cache: AuthorizationCache,
        audit: AuditLog | None = None,
        audit_denials: bool = True,
        audit_grants: bool = False,
    ) -> None:
        self.session = session
        self.enforcer = enforcer
        self.cache = cache
        self.audit = audit
        self.audit_denials = audit_denials
        self.audit_grants = audit_grants

    async def authorize(
        self,
        user_id: str,
        org_id: str,
        resource: str,
        action: str,
        context: AuditContext | None = None,
    ) -> bool:
        try:
            cached = await self.cache.get(user_id, org_id, resource, action)
            if cached is not None:
                return cached

            allowed = await self.enforcer.enforce(user_id, org_id, resource, action)
            await self._audit_decision(user_id, org_id, resource, action, allowed, context)
            await self.cache.set(user_id, org_id, resource, action, allowed)
        except Exception:
            logger.error(
                "authorization_check_failed",
                user_id=user_id,
                org_id=org_id,
                resource=resource,
                action=action,
                exc_info=True,
            )
            return False

        if not allowed:
            logger.info(
                "permission_denied",
                user_id=user_id,
                org_id=org_id,
                resource=resource,
                action=action,
            )
        return allowed

    async def invalidate_user(self, user_id: str, org_id: str | None = None) -> int:
        return await self.cache.invalidate_user(user_id, org_id)

    async def invalidate_org(self, org_id: str) -> int:
        return await self.cache.invalidate_org(org_id)

    async def _audit_decision(
        self,
        user_id: str,
        org_id: str,
        resource: str,
        action: str,
        allowed: bool,
        context: AuditContext | None,
    ) -> None:
        """Record the outcome. Audit failures are logged, never raised."""
        if self.audit is None:
            return
        if allowed and not self.audit_grants:
            return
        if not allowed and not self.audit_denials:
            return

        context = context or AuditContext(actor_id=user_id)
        log = self.audit.log_permission_granted if allowed else self.audit.log_permission_denied
        try:
            await log(
                user_id=user_id,
                org_id=org_id,
                resource=resource,
                action=action,
                context=context,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.warning(
                "authz_audit_record_failed",
                user_id=user_id,
                org_id=org_id,
                allowed=allowed,
                exc_info=True,
            )
