"""
Explicit wiring of the authorization components.

One ``AuthzContext`` is built per unit of work (an API request, a CLI
command) around a single database session. Nothing here is global.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from orgguard.authz.audit import AuditLog
from orgguard.authz.cache import AuthorizationCache
from orgguard.authz.enforcer import Enforcer
from orgguard.authz.members import MemberDirectory, MembershipRepository
from orgguard.authz.roles import RolePermissionService
from orgguard.authz.seeder import DefaultPolicySeeder
from orgguard.authz.service import AuthorizationService
from orgguard.authz.store import PolicyStore
from orgguard.authz.sync import PolicySync
from orgguard.authz.violations import ViolationManager
from orgguard.cache import CacheProvider
from orgguard.config import Settings, get_settings


@dataclass
class AuthzContext:
    session: AsyncSession
    store: PolicyStore
    enforcer: Enforcer
    cache: AuthorizationCache
    audit: AuditLog
    service: AuthorizationService
    violations: ViolationManager
    roles: RolePermissionService
    sync: PolicySync
    seeder: DefaultPolicySeeder


def build_authz_context(
    session: AsyncSession,
    cache_provider: CacheProvider | None = None,
    settings: Settings | None = None,
    members: MemberDirectory | None = None,
) -> AuthzContext:
    settings = settings or get_settings()
    store = PolicyStore(session)
    enforcer = Enforcer(store)
    cache = AuthorizationCache(cache_provider, ttl=settings.authz_cache_ttl_seconds)
    audit = AuditLog(session)

    return AuthzContext(
        session=session,
        store=store,
        enforcer=enforcer,
        cache=cache,
        audit=audit,
        service=AuthorizationService(
            session,
            enforcer,
            cache,
            audit,
            audit_denials=settings.audit_permission_denials,
            audit_grants=settings.audit_permission_grants,
        ),
        violations=ViolationManager(session, store, audit, cache),
        roles=RolePermissionService(session, store, audit, cache),
        sync=PolicySync(
            session,
            store,
            audit,
            cache,
            members or MembershipRepository(session),
            lock_provider=cache_provider,
            lock_ttl=settings.sync_lock_ttl_seconds,
        ),
        seeder=DefaultPolicySeeder(session, store, audit, cache),
    )
