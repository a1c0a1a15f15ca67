from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel

from orgguard.api.deps import get_audit_context, get_authz, require_permission
from orgguard.api.responses import envelope
from orgguard.authz.context import AuthzContext
from orgguard.core.errors import ValidationError, ViolationError
from orgguard.domain.models import LOCKDOWN_ACTION, LOCKDOWN_RESOURCE, AuditContext

router = APIRouter()
logger = structlog.get_logger()

manage_settings = require_permission("settings", "manage")


class SuspendRequest(BaseModel):
    resource: str | None = None
    action: str | None = None
    severity: str | None = None
    reason: str | None = None


class RestoreRequest(BaseModel):
    resource: str | None = None
    action: str | None = None


class LockdownRequest(BaseModel):
    severity: str | None = None
    reason: str | None = None


def _require(payload: BaseModel | None, *fields: str) -> dict[str, str]:
    """Return the named fields, raising 400 if any is missing or blank."""
    values = payload.model_dump() if payload is not None else {}
    missing = [name for name in fields if not values.get(name)]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )
    return {name: values[name] for name in fields}


def _mutation(org_id: str, resource: str, action: str, state: str) -> dict[str, Any]:
    return {"orgId": org_id, "resource": resource, "action": action, "status": state}


@router.post(
    "/orgs/{org_id}/violations/suspend",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(manage_settings)],
)
async def suspend_permission(
    org_id: str,
    request: Request,
    payload: SuspendRequest | None = None,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
    context: AuditContext = Depends(get_audit_context),  # noqa: B008
) -> dict[str, Any]:
    fields = _require(payload, "resource", "action", "severity", "reason")
    suspended = await authz.violations.suspend_permission(
        org_id,
        fields["resource"],
        fields["action"],
        fields["severity"],
        fields["reason"],
        context=context,
    )
    if not suspended:
        raise ViolationError(
            "Failed to suspend permission: violation already active",
            details={"resource": fields["resource"], "action": fields["action"]},
        )
    return envelope(
        request, _mutation(org_id, fields["resource"], fields["action"], "suspended")
    )


@router.post(
    "/orgs/{org_id}/violations/restore",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(manage_settings)],
)
async def restore_permission(
    org_id: str,
    request: Request,
    payload: RestoreRequest | None = None,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
    context: AuditContext = Depends(get_audit_context),  # noqa: B008
) -> dict[str, Any]:
    fields = _require(payload, "resource", "action")
    restored = await authz.violations.restore_permission(
        org_id, fields["resource"], fields["action"], context=context
    )
    if not restored:
        raise ViolationError(
            "Failed to restore permission: no violations found",
            details={"resource": fields["resource"], "action": fields["action"]},
        )
    return envelope(request, _mutation(org_id, fields["resource"], fields["action"], "restored"))


@router.post(
    "/orgs/{org_id}/violations/lockdown",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(manage_settings)],
)
async def lockdown_organization(
    org_id: str,
    request: Request,
    payload: LockdownRequest | None = None,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
    context: AuditContext = Depends(get_audit_context),  # noqa: B008
) -> dict[str, Any]:
    fields = _require(payload, "severity", "reason")
    locked = await authz.violations.suspend_organization(
        org_id, fields["severity"], fields["reason"], context=context
    )
    if not locked:
        raise ViolationError("Failed to lock down organization: lockdown already active")
    return envelope(request, _mutation(org_id, LOCKDOWN_RESOURCE, LOCKDOWN_ACTION, "suspended"))


@router.post(
    "/orgs/{org_id}/violations/unlock",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(manage_settings)],
)
async def unlock_organization(
    org_id: str,
    request: Request,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
    context: AuditContext = Depends(get_audit_context),  # noqa: B008
) -> dict[str, Any]:
    unlocked = await authz.violations.restore_organization(org_id, context=context)
    if not unlocked:
        raise ViolationError("Failed to unlock organization: no violations found")
    return envelope(request, _mutation(org_id, LOCKDOWN_RESOURCE, LOCKDOWN_ACTION, "restored"))


@router.get(
    "/orgs/{org_id}/violations",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(manage_settings)],
)
async def list_violations(
    org_id: str,
    request: Request,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
) -> dict[str, Any]:
    violations = await authz.violations.get_violations(org_id)
    return envelope(request, violations)
