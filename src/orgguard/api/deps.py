from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Callable

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from orgguard.api.auth import get_current_user
from orgguard.authz.context import AuthzContext, build_authz_context
from orgguard.cache import CacheProvider
from orgguard.config import Settings, get_settings
from orgguard.core.errors import PermissionDeniedError
from orgguard.db.session import get_session
from orgguard.domain.models import AuditContext


async def session_dependency() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


def get_cache_provider(request: Request) -> CacheProvider | None:
    """The process-wide cache provider created at startup, if any."""
    return getattr(request.app.state, "cache_provider", None)


def get_authz(
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    cache_provider: CacheProvider | None = Depends(get_cache_provider),  # noqa: B008
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> AuthzContext:
    return build_authz_context(session, cache_provider, settings)


def get_audit_context(
    request: Request,
    principal: dict[str, Any] = Depends(get_current_user),  # noqa: B008
) -> AuditContext:
    return AuditContext.from_request(request, principal)


def require_permission(resource: str, action: str) -> Callable[..., Any]:
    """Dependency factory: the caller must hold ``resource:action`` in the path's org."""

    async def dependency(
        org_id: str,
        principal: dict[str, Any] = Depends(get_current_user),  # noqa: B008
        authz: AuthzContext = Depends(get_authz),  # noqa: B008
        context: AuditContext = Depends(get_audit_context),  # noqa: B008
    ) -> dict[str, Any]:
        user_id = str(principal.get("sub", "anonymous"))
        structlog.contextvars.bind_contextvars(org_id=org_id, principal=user_id)
        allowed = await authz.service.authorize(user_id, org_id, resource, action, context)
        if not allowed:
            raise PermissionDeniedError(
                f"Missing permission {resource}:{action}",
                details={"org_id": org_id, "resource": resource, "action": action},
            )
        return principal

    return dependency
