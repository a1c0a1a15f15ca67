"""
Policy store.

Persists grants, deny overlays and role assignments. All writes are
flushed but never committed: the caller owns the unit of work, so a
mutation and its audit record land in the same transaction.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgguard.db.models import PolicyDenyModel, PolicyGrantModel, RoleAssignmentModel
from orgguard.domain.models import (
    LOCKDOWN_ACTION,
    LOCKDOWN_RESOURCE,
    WILDCARD,
    Deny,
    Grant,
    RoleAssignment,
    ViolationSeverity,
)


class PolicyStore:
    """Repository for policy rules and role assignments."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # -- Grants --

    async def add_grant(self, grant: Grant) -> bool:
        """Insert a grant. Returns False if it already exists."""
        if await self._find_grant(grant) is not None:
            return False
        self.session.add(
            PolicyGrantModel(
                role=grant.role,
                domain=grant.domain,
                resource=grant.resource,
                action=grant.action,
            )
        )
        await self.session.flush()
        return True

    async def remove_grant(self, grant: Grant) -> bool:
        """Delete a grant. Returns False if there was nothing to delete."""
        model = await self._find_grant(grant)
        if model is None:
            return False
        await self.session.delete(model)
        await self.session.flush()
        return True

    async def list_grants(self, domain: str, role: str | None = None) -> list[Grant]:
        stmt = select(PolicyGrantModel).where(PolicyGrantModel.domain == domain)
        if role is not None:
            stmt = stmt.where(PolicyGrantModel.role == role)
        result = await self.session.execute(stmt.order_by(PolicyGrantModel.id))
        return [self._grant_to_domain(m) for m in result.scalars().all()]

    async def grants_for_roles(
        self, domain: str, roles: Iterable[str], resource: str, action: str
    ) -> list[Grant]:
        """Grants held by any of ``roles`` that cover ``resource``/``action``."""
        roles = list(roles)
        if not roles:
            return []
        result = await self.session.execute(
            select(PolicyGrantModel).where(
                PolicyGrantModel.domain == domain,
                PolicyGrantModel.role.in_(roles),
                PolicyGrantModel.resource.in_((resource, WILDCARD)),
                PolicyGrantModel.action.in_((action, WILDCARD)),
            )
        )
        return [self._grant_to_domain(m) for m in result.scalars().all()]

    async def _find_grant(self, grant: Grant) -> PolicyGrantModel | None:
        result = await self.session.execute(
            select(PolicyGrantModel).where(
                PolicyGrantModel.role == grant.role,
                PolicyGrantModel.domain == grant.domain,
                PolicyGrantModel.resource == grant.resource,
                PolicyGrantModel.action == grant.action,
            )
        )
        return result.scalar_one_or_none()

    # -- Deny overlays --

    async def add_deny(self, deny: Deny) -> bool:
        """Insert a deny overlay. Returns False if an identical one is active."""
        if await self._find_deny(deny.domain, deny.resource, deny.action) is not None:
            return False
        self.session.add(
            PolicyDenyModel(
                domain=deny.domain,
                resource=deny.resource,
                action=deny.action,
                severity=deny.severity.value if deny.severity else None,
                reason=deny.reason,
            )
        )
        await self.session.flush()
        return True

    async def remove_deny(self, domain: str, resource: str, action: str) -> Deny | None:
        """Delete a deny overlay, returning it, or None if none matched."""
        model = await self._find_deny(domain, resource, action)
        if model is None:
            return None
        deny = self._deny_to_domain(model)
        await self.session.delete(model)
        await self.session.flush()
        return deny

    async def list_denies(self, domain: str) -> list[Deny]:
        result = await self.session.execute(
            select(PolicyDenyModel)
            .where(PolicyDenyModel.domain == domain)
            .order_by(PolicyDenyModel.id)
        )
        return [self._deny_to_domain(m) for m in result.scalars().all()]

    async def find_blocking_deny(self, domain: str, resource: str, action: str) -> Deny | None:
        """First deny in ``domain`` that blocks ``resource``/``action``.

        Matches the exact pair, a resource-wide deny (action ``*``) and the
        org lockdown pair.
        """
        result = await self.session.execute(
            select(PolicyDenyModel)
            .where(
                PolicyDenyModel.domain == domain,
                or_(
                    (PolicyDenyModel.resource == LOCKDOWN_RESOURCE)
                    & (PolicyDenyModel.action == LOCKDOWN_ACTION),
                    (PolicyDenyModel.resource == resource)
                    & PolicyDenyModel.action.in_((action, WILDCARD)),
                ),
            )
            .limit(1)
        )
        model = result.scalars().first()
        return self._deny_to_domain(model) if model else None

    async def _find_deny(self, domain: str, resource: str, action: str) -> PolicyDenyModel | None:
        result = await self.session.execute(
            select(PolicyDenyModel).where(
                PolicyDenyModel.domain == domain,
                PolicyDenyModel.resource == resource,
                PolicyDenyModel.action == action,
            )
        )
        return result.scalar_one_or_none()

    # -- Role assignments --

    async def get_roles(self, user_id: str, domain: str) -> list[str]:
        result = await self.session.execute(
            select(RoleAssignmentModel.role).where(
                RoleAssignmentModel.user_id == user_id,
                RoleAssignmentModel.domain == domain,
            )
        )
        return list(result.scalars().all())

    async def add_role_assignment(self, assignment: RoleAssignment) -> None:
        self.session.add(
            RoleAssignmentModel(
                user_id=assignment.user_id,
                role=assignment.role,
                domain=assignment.domain,
            )
        )
        await self.session.flush()

    async def remove_role_assignments(self, user_id: str, domain: str) -> list[RoleAssignment]:
        """Delete every assignment of ``user_id`` in ``domain`` and return them."""
        removed = [
            RoleAssignment(user_id=user_id, role=role, domain=domain)
            for role in await self.get_roles(user_id, domain)
        ]
        if removed:
            await self.session.execute(
                delete(RoleAssignmentModel).where(
                    RoleAssignmentModel.user_id == user_id,
                    RoleAssignmentModel.domain == domain,
                )
            )
            await self.session.flush()
        return removed

    async def list_role_assignments(self, domain: str) -> list[RoleAssignment]:
        result = await self.session.execute(
            select(RoleAssignmentModel)
            .where(RoleAssignmentModel.domain == domain)
            .order_by(RoleAssignmentModel.user_id)
        )
        return [
            RoleAssignment(user_id=m.user_id, role=m.role, domain=m.domain)
            for m in result.scalars().all()
        ]

    async def remove_role_holders(self, role: str, domain: str) -> list[RoleAssignment]:
        """Delete every assignment of ``role`` in ``domain`` and return them."""
        removed = [a for a in await self.list_role_assignments(domain) if a.role == role]
        if removed:
            await self.session.execute(
                delete(RoleAssignmentModel).where(
                    RoleAssignmentModel.role == role,
                    RoleAssignmentModel.domain == domain,
                )
            )
            await self.session.flush()
        return removed

    async def clear_role_assignments(self, domain: str) -> list[RoleAssignment]:
        removed = await self.list_role_assignments(domain)
        if removed:
            await self.session.execute(
                delete(RoleAssignmentModel).where(RoleAssignmentModel.domain == domain)
            )
            await self.session.flush()
        return removed

    # -- Model-to-domain converters --

    @staticmethod
    def _grant_to_domain(model: PolicyGrantModel) -> Grant:
        return Grant(
            role=model.role,
            domain=model.domain,
            resource=model.resource,
            action=model.action,
        )

    @staticmethod
    def _deny_to_domain(model: PolicyDenyModel) -> Deny:
        return Deny(
            domain=model.domain,
            resource=model.resource,
            action=model.action,
            severity=ViolationSeverity(model.severity) if model.severity else None,
            reason=model.reason,
        )
