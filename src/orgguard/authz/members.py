"""Organization membership: the source of truth that role assignments project."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgguard.db.models import OrganizationMemberModel
from orgguard.domain.models import Member


class MemberDirectory(Protocol):
    async def list_members(self, org_id: str) -> list[Member]: ...


class MembershipRepository:
    """Reads membership rows owned by the organization subsystem."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_members(self, org_id: str) -> list[Member]:
        result = await self.session.execute(
            select(OrganizationMemberModel)
            .where(OrganizationMemberModel.organization_id == org_id)
            .order_by(OrganizationMemberModel.user_id)
        )
        return [Member(user_id=m.user_id, role=m.role) for m in result.scalars().all()]
