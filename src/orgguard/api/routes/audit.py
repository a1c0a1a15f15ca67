from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status

from orgguard.api.deps import get_authz, require_permission
from orgguard.api.responses import envelope
from orgguard.authz.audit import MAX_PAGE_SIZE, TIMESTAMP_FORMAT, AuditFilters
from orgguard.authz.context import AuthzContext
from orgguard.core.errors import NotFoundError
from orgguard.domain.models import AuditRecord

router = APIRouter()

manage_settings = require_permission("settings", "manage")

EVENT_ID_PREFIX = "evt_"


def serialize_record(record: AuditRecord) -> dict[str, Any]:
    return {
        "id": record.event_id,
        "event_type": str(record.event_type),
        "timestamp": record.timestamp.strftime(TIMESTAMP_FORMAT),
        "actor": {
            "id": record.actor_id,
            "ip": record.actor_ip,
            "user_agent": record.actor_user_agent,
        },
        "user_id": record.user_id,
        "role": record.role,
        "resource": record.resource,
        "action": record.operation_action,
        "effect": record.effect,
        "details": record.details,
        "sequence_no": record.sequence_no,
        "prev_hash": record.prev_hash,
        "hash": record.hash,
    }


def parse_event_id(event_id: str) -> int | None:
    if not event_id.startswith(EVENT_ID_PREFIX):
        return None
    raw = event_id[len(EVENT_ID_PREFIX) :]
    if not raw.isdigit():
        return None
    return int(raw)


@router.get(
    "/orgs/{org_id}/audit-logs",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(manage_settings)],
)
async def list_audit_logs(
    org_id: str,
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    event_type: str | None = None,
    actor_id: str | None = None,
    user_id: str | None = None,
    resource: str | None = Query(None, description="Resource prefix"),
    actor_ip: str | None = None,
    after: datetime | None = None,
    before: datetime | None = None,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
) -> dict[str, Any]:
    filters = AuditFilters(
        event_type=event_type,
        actor_id=actor_id,
        user_id=user_id,
        resource_prefix=resource,
        actor_ip=actor_ip,
        timestamp_after=after,
        timestamp_before=before,
    )
    result = await authz.audit.query(org_id, page=page, page_size=page_size, filters=filters)
    return envelope(
        request,
        [serialize_record(record) for record in result.records],
        pagination={
            "page": result.page,
            "page_size": result.page_size,
            "total_items": result.total_items,
            "total_pages": result.total_pages,
            "has_more": result.has_more,
        },
    )


@router.get(
    "/orgs/{org_id}/audit-logs/verify",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(manage_settings)],
)
async def verify_audit_chain(
    org_id: str,
    request: Request,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
) -> dict[str, Any]:
    verification = await authz.audit.verify_chain_integrity(org_id)
    return envelope(
        request,
        {
            "valid": verification.valid,
            "broken_at_sequence": verification.broken_at_sequence,
            "records_checked": verification.records_checked,
        },
    )


@router.get(
    "/orgs/{org_id}/audit-logs/{event_id}",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(manage_settings)],
)
async def get_audit_log(
    org_id: str,
    event_id: str,
    request: Request,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
) -> dict[str, Any]:
    sequence_no = parse_event_id(event_id)
    record = await authz.audit.get(org_id, sequence_no) if sequence_no is not None else None
    if record is None:
        raise NotFoundError(f"Audit log {event_id} not found", details={"event_id": event_id})
    return envelope(request, serialize_record(record))
