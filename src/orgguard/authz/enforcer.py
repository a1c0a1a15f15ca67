"""
Decision core.

Deny overlays are evaluated before any grant and short-circuit the
decision; grants are only consulted when no overlay blocks the request.
"""

from __future__ import annotations

import structlog

from orgguard.authz.store import PolicyStore

logger = structlog.get_logger()


class Enforcer:
    """Evaluates (subject, domain, resource, action) against the policy store.

    Store errors propagate; callers on a security path must treat them as a
    denial.
    """

    def __init__(self, store: PolicyStore) -> None:
        self.store = store

    async def enforce(self, subject: str, domain: str, resource: str, action: str) -> bool:
        deny = await self.store.find_blocking_deny(domain, resource, action)
        if deny is not None:
            logger.debug(
                "enforce_blocked_by_violation",
                subject=subject,
                domain=domain,
                resource=resource,
                action=action,
                lockdown=deny.is_lockdown,
            )
            return False

        roles = await self.store.get_roles(subject, domain)
        if not roles:
            logger.debug("enforce_no_role", subject=subject, domain=domain)
            return False

        grants = await self.store.grants_for_roles(domain, roles, resource, action)
        return any(grant.matches(resource, action) for grant in grants)
