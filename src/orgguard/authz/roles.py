"""
Role permission management.

Grants are added and revoked per role within an organization. Each
change writes the store and one audit record per grant in the same
transaction, commits, and then drops the org's cached decisions.

The built-in roles can have their grants customized but cannot be
deleted.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from orgguard.authz.audit import AuditLog
from orgguard.authz.cache import AuthorizationCache
from orgguard.authz.seeder import DEFAULT_ROLE_PERMISSIONS
from orgguard.authz.store import PolicyStore
from orgguard.core.errors import ValidationError
from orgguard.domain.models import WILDCARD, AuditContext, Effect, Grant

logger = structlog.get_logger()

SYSTEM_ROLES = frozenset(DEFAULT_ROLE_PERMISSIONS)


@dataclass
class PermissionChange:
    added: list[Grant]
    removed: list[Grant]

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def _grant(org_id: str, role: str, resource: str, action: str) -> Grant:
    if not role or role == WILDCARD:
        raise ValidationError("Role name is required", details={"role": role})
    missing = [name for name, value in (("resource", resource), ("action", action)) if not value]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )
    return Grant(role=role, domain=org_id, resource=resource, action=action)


class RolePermissionService:
    """Audited grant and revoke operations on an organization's roles."""

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

    async def get_permissions(self, org_id: str, role: str) -> list[Grant]:
        return await self.store.list_grants(org_id, role)

    async def grant_permission(
        self,
        org_id: str,
        role: str,
        resource: str,
        action: str,
        context: AuditContext | None = None,
    ) -> bool:
        """Allow ``role`` to perform ``action`` on ``resource``.

        Returns False when the grant already exists.
        """
        grant = _grant(org_id, role, resource, action)
        change = await self._apply(org_id, [grant], [], context)
        return change.changed

    async def revoke_permission(
        self,
        org_id: str,
        role: str,
        resource: str,
        action: str,
        context: AuditContext | None = None,
    ) -> bool:
        """Remove a grant. Returns False when there was nothing to revoke."""
        grant = _grant(org_id, role, resource, action)
        change = await self._apply(org_id, [], [grant], context)
        return change.changed

    async def set_permissions(
        self,
        org_id: str,
        role: str,
        permissions: Iterable[tuple[str, str]],
        context: AuditContext | None = None,
    ) -> PermissionChange:
        """Replace the grants of ``role`` with ``permissions`` (resource, action pairs)."""
        wanted = {_grant(org_id, role, resource, action) for resource, action in permissions}
        current = set(await self.store.list_grants(org_id, role))
        return await self._apply(
            org_id,
            sorted(wanted - current, key=_sort_key),
            sorted(current - wanted, key=_sort_key),
            context,
        )

    async def delete_role(
        self,
        org_id: str,
        role: str,
        context: AuditContext | None = None,
    ) -> bool:
        """Remove every grant and assignment of a custom role.

        Returns False when the role holds neither grants nor members.
        """
        if role in SYSTEM_ROLES:
            raise ValidationError("Cannot delete system roles", details={"role": role})
        context = context or AuditContext()
        try:
            grants = await self.store.list_grants(org_id, role)
            for grant in grants:
                await self.store.remove_grant(grant)
                await self._log(self.audit.log_policy_removed, grant, context)
            holders = await self.store.remove_role_holders(role, org_id)
            for assignment in holders:
                await self.audit.log_role_removed(
                    user_id=assignment.user_id,
                    org_id=org_id,
                    role=role,
                    context=context,
                    details={"source": "role_deleted"},
                )
            if not grants and not holders:
                return False
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.cache.invalidate_org(org_id)
        logger.info(
            "role_deleted",
            org_id=org_id,
            role=role,
            grants=len(grants),
            members=len(holders),
            actor_id=context.actor_id,
        )
        return True

    async def _apply(
        self,
        org_id: str,
        to_add: list[Grant],
        to_remove: list[Grant],
        context: AuditContext | None,
    ) -> PermissionChange:
        context = context or AuditContext()
        change = PermissionChange(added=[], removed=[])
        try:
            for grant in to_remove:
                if await self.store.remove_grant(grant):
                    change.removed.append(grant)
                    await self._log(self.audit.log_policy_removed, grant, context)
            for grant in to_add:
                if await self.store.add_grant(grant):
                    change.added.append(grant)
                    await self._log(self.audit.log_policy_added, grant, context)
            if not change.changed:
                return change
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.cache.invalidate_org(org_id)
        logger.info(
            "role_permissions_changed",
            org_id=org_id,
            added=[f"{g.role}:{g.resource}:{g.action}" for g in change.added],
            removed=[f"{g.role}:{g.resource}:{g.action}" for g in change.removed],
            actor_id=context.actor_id,
        )
        return change

    @staticmethod
    async def _log(write, grant: Grant, context: AuditContext) -> None:
        await write(
            org_id=grant.domain,
            role=grant.role,
            resource=grant.resource,
            action=grant.action,
            effect=Effect.allow.value,
            context=context,
        )


def _sort_key(grant: Grant) -> tuple[str, str]:
    return grant.resource, grant.action
