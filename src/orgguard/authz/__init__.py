"""
Tenant-scoped authorization.

Role grants per organization, deny overlays for emergency suspension,
a decision cache with scoped invalidation, and a hash-chained audit log.
"""

from orgguard.authz.audit import AuditFilters, AuditLog, AuditPage
from orgguard.authz.cache import AuthorizationCache
from orgguard.authz.context import AuthzContext, build_authz_context
from orgguard.authz.enforcer import Enforcer
from orgguard.authz.members import MemberDirectory, MembershipRepository
from orgguard.authz.roles import SYSTEM_ROLES, PermissionChange, RolePermissionService
from orgguard.authz.seeder import DEFAULT_ROLE_PERMISSIONS, DefaultPolicySeeder
from orgguard.authz.service import AuthorizationService
from orgguard.authz.store import PolicyStore
from orgguard.authz.sync import OrgSyncResult, PolicySync
from orgguard.authz.violations import ViolationManager

__all__ = [
    "AuditFilters",
    "AuditLog",
    "AuditPage",
    "AuthorizationCache",
    "AuthorizationService",
    "AuthzContext",
    "DEFAULT_ROLE_PERMISSIONS",
    "DefaultPolicySeeder",
    "Enforcer",
    "MemberDirectory",
    "MembershipRepository",
    "OrgSyncResult",
    "PermissionChange",
    "PolicyStore",
    "PolicySync",
    "RolePermissionService",
    "SYSTEM_ROLES",
    "ViolationManager",
    "build_authz_context",
]
