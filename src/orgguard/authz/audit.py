"""
Authorization audit log.

Append-only, hash-chained records of policy mutations, role changes and
permission check outcomes. Each domain has its own chain::

    hash = sha256(prev_hash + "|" + canonical_json(record))

where ``canonical_json`` is ``json.dumps(fields, sort_keys=True,
separators=(",", ":"))`` over the record fields listed in
``_CHAINED_FIELDS`` and ``prev_hash`` of a domain's first record is
``GENESIS_HASH``. Verification recomputes every hash from the stored
fields; a stored hash is never trusted on its own.
"""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgguard.db.models import AuthorizationAuditLogModel
from orgguard.domain.models import (
    GENESIS_HASH,
    AuditContext,
    AuditEventType,
    AuditRecord,
    ChainVerification,
)

logger = structlog.get_logger()

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"

_CHAINED_FIELDS = (
    "domain",
    "sequence_no",
    "timestamp",
    "event_type",
    "actor_id",
    "actor_ip",
    "actor_user_agent",
    "user_id",
    "role",
    "resource",
    "operation_action",
    "effect",
    "details",
)

MAX_PAGE_SIZE = 100


def naive_utc(value: datetime) -> datetime:
    """Convert to the naive UTC form audit timestamps are stored in."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None)


def _event_type(value: str) -> AuditEventType | str:
    """Known event types as the enum; anything else stays as stored."""
    try:
        return AuditEventType(value)
    except ValueError:
        return value


def canonical_serialization(record: AuditRecord | AuthorizationAuditLogModel) -> str:
    """Field-order-independent JSON of the chained fields of ``record``.

    Accepts a stored row as well, so verification hashes column values
    exactly as persisted.
    """
    fields: dict[str, Any] = {}
    for name in _CHAINED_FIELDS:
        value = getattr(record, name)
        if isinstance(value, datetime):
            value = value.strftime(TIMESTAMP_FORMAT)
        elif name == "event_type":
            value = str(value)
        fields[name] = value
    return json.dumps(fields, sort_keys=True, separators=(",", ":"), default=str)


def compute_hash(prev_hash: str, record: AuditRecord | AuthorizationAuditLogModel) -> str:
    payload = f"{prev_hash}|{canonical_serialization(record)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass
class AuditFilters:
    event_type: str | None = None
    actor_id: str | None = None
    user_id: str | None = None
    resource_prefix: str | None = None
    actor_ip: str | None = None
    timestamp_after: datetime | None = None
    timestamp_before: datetime | None = None


@dataclass
class AuditPage:
    records: list[AuditRecord]
    page: int
    page_size: int
    total_items: int
    total_pages: int = field(init=False)
    has_more: bool = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = math.ceil(self.total_items / self.page_size) if self.page_size else 0
        self.has_more = self.page < self.total_pages


class AuditLog:
    """Append-only hash-chained audit log backed by the audit table.

    ``append`` flushes but does not commit; it joins the caller's
    transaction so a policy mutation and its record commit together.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def append(self, record: AuditRecord) -> AuditRecord:
        """Chain ``record`` onto its domain's log and persist it."""
        last = await self._last_record(record.domain)
        prev_hash = last.hash if last else GENESIS_HASH
        sequence_no = last.sequence_no + 1 if last else 1

        # Stored as naive UTC; the chain covers the value exactly as persisted.
        timestamp = naive_utc(record.timestamp)
        chained = replace(
            record,
            timestamp=timestamp,
            sequence_no=sequence_no,
            prev_hash=prev_hash,
            details=dict(record.details),
        )
        chained = replace(chained, hash=compute_hash(prev_hash, chained))

        self.session.add(
            AuthorizationAuditLogModel(
                domain=chained.domain,
                sequence_no=sequence_no,
                timestamp=timestamp,
                event_type=str(chained.event_type),
                actor_id=chained.actor_id,
                actor_ip=chained.actor_ip,
                actor_user_agent=chained.actor_user_agent,
                user_id=chained.user_id,
                role=chained.role,
                resource=chained.resource,
                operation_action=chained.operation_action,
                effect=chained.effect,
                details=chained.details,
                prev_hash=prev_hash,
                hash=chained.hash,
            )
        )
        await self.session.flush()
        return chained

    # -- Entry points --

    async def log_policy_added(
        self,
        *,
        org_id: str,
        role: str,
        resource: str,
        action: str,
        effect: str,
        context: AuditContext,
        details: dict[str, Any] | None = None,
    ) -> AuditRecord:
        return await self.append(
            self._record(
                AuditEventType.policy_added,
                org_id,
                context,
                role=role,
                resource=resource,
                operation_action=action,
                effect=effect,
                details=details,
            )
        )

    async def log_policy_removed(
        self,
        *,
        org_id: str,
        role: str,
        resource: str,
        action: str,
        effect: str,
        context: AuditContext,
        details: dict[str, Any] | None = None,
    ) -> AuditRecord:
        return await self.append(
            self._record(
                AuditEventType.policy_removed,
                org_id,
                context,
                role=role,
                resource=resource,
                operation_action=action,
                effect=effect,
                details=details,
            )
        )

    async def log_permission_denied(
        self,
        *,
        user_id: str,
        org_id: str,
        resource: str,
        action: str,
        context: AuditContext,
        details: dict[str, Any] | None = None,
    ) -> AuditRecord:
        return await self.append(
            self._record(
                AuditEventType.permission_denied,
                org_id,
                context,
                user_id=user_id,
                resource=resource,
                operation_action=action,
                effect="deny",
                details=details,
            )
        )

    async def log_permission_granted(
        self,
        *,
        user_id: str,
        org_id: str,
        resource: str,
        action: str,
        context: AuditContext,
        details: dict[str, Any] | None = None,
    ) -> AuditRecord:
        return await self.append(
            self._record(
                AuditEventType.permission_granted,
                org_id,
                context,
                user_id=user_id,
                resource=resource,
                operation_action=action,
                effect="allow",
                details=details,
            )
        )

    async def log_role_assigned(
        self,
        *,
        user_id: str,
        org_id: str,
        role: str,
        context: AuditContext,
        details: dict[str, Any] | None = None,
    ) -> AuditRecord:
        return await self.append(
            self._record(
                AuditEventType.role_assigned,
                org_id,
                context,
                user_id=user_id,
                role=role,
                details=details,
            )
        )

    async def log_role_removed(
        self,
        *,
        user_id: str,
        org_id: str,
        role: str,
        context: AuditContext,
        details: dict[str, Any] | None = None,
    ) -> AuditRecord:
        return await self.append(
            self._record(
                AuditEventType.role_removed,
                org_id,
                context,
                user_id=user_id,
                role=role,
                details=details,
            )
        )

    # -- Verification --

    async def verify_chain_integrity(self, domain: str | None = None) -> ChainVerification:
        """Recompute the chain(s) and report the first broken record, if any."""
        if domain is not None:
            return await self._verify_domain(domain)

        result = await self.session.execute(
            select(AuthorizationAuditLogModel.domain)
            .distinct()
            .order_by(AuthorizationAuditLogModel.domain)
        )
        checked = 0
        for chain_domain in result.scalars().all():
            verification = await self._verify_domain(chain_domain)
            checked += verification.records_checked
            if not verification.valid:
                return ChainVerification(
                    valid=False,
                    domain=chain_domain,
                    broken_at_sequence=verification.broken_at_sequence,
                    records_checked=checked,
                )
        return ChainVerification(valid=True, records_checked=checked)

    async def _verify_domain(self, domain: str) -> ChainVerification:
        result = await self.session.execute(
            select(AuthorizationAuditLogModel)
            .where(AuthorizationAuditLogModel.domain == domain)
            .order_by(AuthorizationAuditLogModel.sequence_no)
        )
        expected_prev = GENESIS_HASH
        expected_sequence = 1
        checked = 0
        for model in result.scalars().all():
            checked += 1
            recomputed = compute_hash(expected_prev, model)
            if (
                model.sequence_no != expected_sequence
                or model.prev_hash != expected_prev
                or model.hash != recomputed
            ):
                logger.error(
                    "audit_chain_broken",
                    domain=domain,
                    sequence_no=model.sequence_no,
                    expected_sequence=expected_sequence,
                )
                return ChainVerification(
                    valid=False,
                    domain=domain,
                    broken_at_sequence=model.sequence_no,
                    records_checked=checked,
                )
            expected_prev = model.hash
            expected_sequence += 1
        return ChainVerification(valid=True, domain=domain, records_checked=checked)

    # -- Queries --

    async def query(
        self,
        domain: str,
        *,
        page: int = 1,
        page_size: int = 50,
        filters: AuditFilters | None = None,
    ) -> AuditPage:
        """Newest-first page of a domain's records matching ``filters``."""
        page = max(1, page)
        page_size = min(MAX_PAGE_SIZE, max(1, page_size))
        conditions = self._conditions(domain, filters)

        total = await self.count(domain, filters)
        result = await self.session.execute(
            select(AuthorizationAuditLogModel)
            .where(*conditions)
            .order_by(AuthorizationAuditLogModel.sequence_no.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        records = [self._to_domain(m) for m in result.scalars().all()]
        return AuditPage(records=records, page=page, page_size=page_size, total_items=total)

    async def count(self, domain: str, filters: AuditFilters | None = None) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(AuthorizationAuditLogModel)
            .where(*self._conditions(domain, filters))
        )
        return int(result.scalar_one())

    async def get(self, domain: str, sequence_no: int) -> AuditRecord | None:
        result = await self.session.execute(
            select(AuthorizationAuditLogModel).where(
                AuthorizationAuditLogModel.domain == domain,
                AuthorizationAuditLogModel.sequence_no == sequence_no,
            )
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def _last_record(self, domain: str) -> AuthorizationAuditLogModel | None:
        result = await self.session.execute(
            select(AuthorizationAuditLogModel)
            .where(AuthorizationAuditLogModel.domain == domain)
            .order_by(AuthorizationAuditLogModel.sequence_no.desc())
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    def _conditions(domain: str, filters: AuditFilters | None) -> list[Any]:
        model = AuthorizationAuditLogModel
        conditions: list[Any] = [model.domain == domain]
        if filters is None:
            return conditions
        if filters.event_type:
            conditions.append(model.event_type == filters.event_type)
        if filters.actor_id:
            conditions.append(model.actor_id == filters.actor_id)
        if filters.user_id:
            conditions.append(model.user_id == filters.user_id)
        if filters.resource_prefix:
            conditions.append(model.resource.startswith(filters.resource_prefix, autoescape=True))
        if filters.actor_ip:
            conditions.append(model.actor_ip == filters.actor_ip)
        if filters.timestamp_after:
            conditions.append(model.timestamp >= naive_utc(filters.timestamp_after))
        if filters.timestamp_before:
            conditions.append(model.timestamp <= naive_utc(filters.timestamp_before))
        return conditions

    @staticmethod
    def _record(
        event_type: AuditEventType,
        org_id: str,
        context: AuditContext,
        *,
        details: dict[str, Any] | None = None,
        **fields: Any,
    ) -> AuditRecord:
        return AuditRecord(
            domain=org_id,
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            actor_id=context.actor_id,
            actor_ip=context.actor_ip,
            actor_user_agent=context.actor_user_agent,
            details=dict(details or {}),
            **fields,
        )

    @staticmethod
    def _to_domain(model: AuthorizationAuditLogModel) -> AuditRecord:
        return AuditRecord(
            domain=model.domain,
            event_type=_event_type(model.event_type),
            timestamp=model.timestamp,
            actor_id=model.actor_id,
            actor_ip=model.actor_ip,
            actor_user_agent=model.actor_user_agent,
            user_id=model.user_id,
            role=model.role,
            resource=model.resource,
            operation_action=model.operation_action,
            effect=model.effect,
            details=model.details or {},
            sequence_no=model.sequence_no,
            prev_hash=model.prev_hash,
            hash=model.hash,
        )
