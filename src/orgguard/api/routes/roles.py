from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel

from orgguard.api.deps import get_audit_context, get_authz, require_permission
from orgguard.api.responses import envelope
from orgguard.authz.context import AuthzContext
from orgguard.core.errors import NotFoundError, ValidationError
from orgguard.domain.models import AuditContext, Grant

router = APIRouter()

read_roles = require_permission("roles", "read")
manage_roles = require_permission("roles", "manage")


class PermissionRequest(BaseModel):
    resource: str | None = None
    action: str | None = None


class ReplacePermissionsRequest(BaseModel):
    permissions: list[PermissionRequest] | None = None


def _serialize(grant: Grant) -> dict[str, str]:
    return {
        "role": grant.role,
        "resource": grant.resource,
        "action": grant.action,
        "effect": grant.effect.value,
    }


@router.get(
    "/orgs/{org_id}/roles/{role}/permissions",
    dependencies=[Depends(read_roles)],
)
async def list_role_permissions(
    org_id: str,
    role: str,
    request: Request,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
) -> dict[str, Any]:
    grants = await authz.roles.get_permissions(org_id, role)
    return envelope(request, [_serialize(g) for g in grants])


@router.post(
    "/orgs/{org_id}/roles/{role}/permissions",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(manage_roles)],
)
async def grant_role_permission(
    org_id: str,
    role: str,
    request: Request,
    response: Response,
    payload: PermissionRequest | None = None,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
    context: AuditContext = Depends(get_audit_context),  # noqa: B008
) -> dict[str, Any]:
    payload = payload or PermissionRequest()
    granted = await authz.roles.grant_permission(
        org_id, role, payload.resource or "", payload.action or "", context=context
    )
    if not granted:
        response.status_code = status.HTTP_200_OK
    return envelope(
        request,
        {
            "orgId": org_id,
            "role": role,
            "resource": payload.resource,
            "action": payload.action,
            "status": "granted" if granted else "unchanged",
        },
    )


@router.put(
    "/orgs/{org_id}/roles/{role}/permissions",
    dependencies=[Depends(manage_roles)],
)
async def replace_role_permissions(
    org_id: str,
    role: str,
    request: Request,
    payload: ReplacePermissionsRequest | None = None,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
    context: AuditContext = Depends(get_audit_context),  # noqa: B008
) -> dict[str, Any]:
    if payload is None or payload.permissions is None:
        raise ValidationError(
            "Missing required fields: permissions", details={"missing": ["permissions"]}
        )
    change = await authz.roles.set_permissions(
        org_id,
        role,
        [(p.resource or "", p.action or "") for p in payload.permissions],
        context=context,
    )
    return envelope(
        request,
        {
            "orgId": org_id,
            "role": role,
            "added": [_serialize(g) for g in change.added],
            "removed": [_serialize(g) for g in change.removed],
        },
    )


@router.delete(
    "/orgs/{org_id}/roles/{role}/permissions/{resource}/{action}",
    dependencies=[Depends(manage_roles)],
)
async def revoke_role_permission(
    org_id: str,
    role: str,
    resource: str,
    action: str,
    request: Request,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
    context: AuditContext = Depends(get_audit_context),  # noqa: B008
) -> dict[str, Any]:
    revoked = await authz.roles.revoke_permission(org_id, role, resource, action, context=context)
    if not revoked:
        raise NotFoundError(
            f"Role {role} has no {resource}:{action} grant",
            details={"role": role, "resource": resource, "action": action},
        )
    return envelope(
        request,
        {
            "orgId": org_id,
            "role": role,
            "resource": resource,
            "action": action,
            "status": "revoked",
        },
    )


@router.delete(
    "/orgs/{org_id}/roles/{role}",
    dependencies=[Depends(manage_roles)],
)
async def delete_role(
    org_id: str,
    role: str,
    request: Request,
    authz: AuthzContext = Depends(get_authz),  # noqa: B008
    context: AuditContext = Depends(get_audit_context),  # noqa: B008
) -> dict[str, Any]:
    if not await authz.roles.delete_role(org_id, role, context=context):
        raise NotFoundError(f"Role {role} not found", details={"role": role})
    return envelope(request, {"orgId": org_id, "role": role, "status": "deleted"})
