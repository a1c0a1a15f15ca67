"""
Violation management.

Suspensions are deny overlays: they apply to every role in the org and
win over any grant. Severity and reason are recorded in the audit log
only; they never influence a decision.

Every mutation writes the store and the audit record in one transaction,
commits, and only then invalidates the org's cached decisions.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from orgguard.authz.audit import AuditLog
from orgguard.authz.cache import AuthorizationCache
from orgguard.authz.store import PolicyStore
from orgguard.core.errors import ValidationError
from orgguard.domain.models import (
    LOCKDOWN_ACTION,
    LOCKDOWN_RESOURCE,
    WILDCARD,
    AuditContext,
    Deny,
    Effect,
    ViolationSeverity,
)

logger = structlog.get_logger()


def parse_severity(value: ViolationSeverity | str) -> ViolationSeverity:
    try:
        return ViolationSeverity(value)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid severity: {value}",
            details={"allowed": ", ".join(s.value for s in ViolationSeverity)},
        ) from exc


class ViolationManager:
    """Creates and removes deny overlays for an organization."""

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

    async def suspend_permission(
        self,
        org_id: str,
        resource: str,
        action: str,
        severity: ViolationSeverity | str,
        reason: str,
        context: AuditContext | None = None,
    ) -> bool:
        """Deny ``resource``/``action`` for every role in ``org_id``.

        Returns False when the same suspension is already active.
        """
        deny = Deny(org_id, resource, action, parse_severity(severity), reason)
        return await self._suspend(deny, context)

    async def restore_permission(
        self,
        org_id: str,
        resource: str,
        action: str,
        context: AuditContext | None = None,
    ) -> bool:
        """Lift a suspension. Returns False when there was nothing to restore."""
        return await self._restore(org_id, resource, action, context)

    async def suspend_resource(
        self,
        org_id: str,
        resource: str,
        severity: ViolationSeverity | str,
        reason: str,
        context: AuditContext | None = None,
    ) -> bool:
        """Deny every action on ``resource`` in ``org_id``."""
        deny = Deny(org_id, resource, WILDCARD, parse_severity(severity), reason)
        return await self._suspend(deny, context)

    async def restore_resource(
        self,
        org_id: str,
        resource: str,
        context: AuditContext | None = None,
    ) -> bool:
        return await self._restore(org_id, resource, WILDCARD, context)

    async def suspend_organization(
        self,
        org_id: str,
        severity: ViolationSeverity | str,
        reason: str,
        context: AuditContext | None = None,
    ) -> bool:
        """Emergency lockdown: deny every resource and action in ``org_id``."""
        deny = Deny.lockdown(org_id, parse_severity(severity), reason)
        return await self._suspend(deny, context)

    async def restore_organization(
        self,
        org_id: str,
        context: AuditContext | None = None,
    ) -> bool:
        """Lift a lockdown. Returns False when the org was not locked down."""
        return await self._restore(org_id, LOCKDOWN_RESOURCE, LOCKDOWN_ACTION, context)

    async def get_violations(self, org_id: str) -> list[dict[str, str]]:
        return [deny.to_dict() for deny in await self.store.list_denies(org_id)]

    async def has_violations(self, org_id: str) -> bool:
        return bool(await self.store.list_denies(org_id))

    async def _suspend(self, deny: Deny, context: AuditContext | None) -> bool:
        context = context or AuditContext()
        try:
            added = await self.store.add_deny(deny)
            if not added:
                logger.warning(
                    "violation_already_active",
                    org_id=deny.domain,
                    resource=deny.resource,
                    action=deny.action,
                )
                return False
            await self.audit.log_policy_added(
                org_id=deny.domain,
                role=WILDCARD,
                resource=deny.resource,
                action=deny.action,
                effect=Effect.deny.value,
                context=context,
                details={
                    "severity": deny.severity.value if deny.severity else None,
                    "reason": deny.reason,
                },
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.cache.invalidate_org(deny.domain)
        logger.warning(
            "violation_suspended",
            org_id=deny.domain,
            resource=deny.resource,
            action=deny.action,
            severity=deny.severity,
            lockdown=deny.is_lockdown,
            actor_id=context.actor_id,
        )
        return True

    async def _restore(
        self,
        org_id: str,
        resource: str,
        action: str,
        context: AuditContext | None,
    ) -> bool:
        context = context or AuditContext()
        try:
            removed = await self.store.remove_deny(org_id, resource, action)
            if removed is None:
                logger.info(
                    "violation_not_found",
                    org_id=org_id,
                    resource=resource,
                    action=action,
                )
                return False
            await self.audit.log_policy_removed(
                org_id=org_id,
                role=WILDCARD,
                resource=resource,
                action=action,
                effect=Effect.deny.value,
                context=context,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.cache.invalidate_org(org_id)
        logger.info(
            "violation_restored",
            org_id=org_id,
            resource=resource,
            action=action,
            actor_id=context.actor_id,
        )
        return True
