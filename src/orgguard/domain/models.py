"""
Authorization domain models.

Policy rules are a tagged union of ``Grant`` (allow) and ``Deny``
(violation overlay). A deny has no subject: it applies to every role in its
domain, which is what makes it win over any grant.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Mapping, Union

WILDCARD = "*"
LOCKDOWN_RESOURCE = "organization"
LOCKDOWN_ACTION = "lockdown"
GENESIS_HASH = "0" * 64


class Effect(StrEnum):
    allow = "allow"
    deny = "deny"


class ViolationSeverity(StrEnum):
    """Severity of a violation. Audit metadata only, never part of a decision."""

    warning = "warning"
    minor = "minor"
    major = "major"
    critical = "critical"


class AuditEventType(StrEnum):
    policy_added = "policy_added"
    policy_removed = "policy_removed"
    permission_denied = "permission_denied"
    permission_granted = "permission_granted"
    role_assigned = "role_assigned"
    role_removed = "role_removed"


@dataclass(frozen=True, slots=True)
class Grant:
    """Allows ``role`` to perform ``action`` on ``resource`` within ``domain``."""

    role: str
    domain: str
    resource: str
    action: str

    effect = Effect.allow

    def matches(self, resource: str, action: str) -> bool:
        return self.resource in (resource, WILDCARD) and self.action in (action, WILDCARD)


@dataclass(frozen=True, slots=True)
class Deny:
    """Blocks ``action`` on ``resource`` for everyone in ``domain``."""

    domain: str
    resource: str
    action: str
    severity: ViolationSeverity | None = field(default=None, compare=False)
    reason: str | None = field(default=None, compare=False)

    effect = Effect.deny

    @classmethod
    def lockdown(
        cls,
        domain: str,
        severity: ViolationSeverity | None = None,
        reason: str | None = None,
    ) -> Deny:
        return cls(domain, LOCKDOWN_RESOURCE, LOCKDOWN_ACTION, severity, reason)

    @property
    def is_lockdown(self) -> bool:
        return self.resource == LOCKDOWN_RESOURCE and self.action == LOCKDOWN_ACTION

    def to_dict(self) -> dict[str, str]:
        """External shape of a violation: wildcard subject, deny effect."""
        return {
            "role": WILDCARD,
            "resource": self.resource,
            "action": self.action,
            "effect": self.effect.value,
        }


PolicyRule = Union[Grant, Deny]


@dataclass(frozen=True, slots=True)
class RoleAssignment:
    user_id: str
    role: str
    domain: str


@dataclass(frozen=True, slots=True)
class Member:
    """A membership row owned by the organization subsystem."""

    user_id: str
    role: str


@dataclass(frozen=True, slots=True)
class AuditContext:
    """Who performed an audited operation, and from where."""

    actor_id: str = "system"
    actor_ip: str | None = None
    actor_user_agent: str | None = None

    @classmethod
    def from_request(cls, request: Any, principal: Mapping[str, Any] | None = None) -> AuditContext:
        """Extract actor identity from an HTTP request and its authenticated principal."""
        actor_id = "system"
        if principal and principal.get("sub"):
            actor_id = str(principal["sub"])
        client = getattr(request, "client", None)
        return cls(
            actor_id=actor_id,
            actor_ip=client.host if client else None,
            actor_user_agent=request.headers.get("user-agent"),
        )


@dataclass(frozen=True)
class AuditRecord:
    """Immutable, hash-chained entry of the authorization audit log."""

    domain: str
    event_type: AuditEventType | str
    timestamp: datetime
    actor_id: str
    actor_ip: str | None = None
    actor_user_agent: str | None = None
    user_id: str | None = None
    role: str | None = None
    resource: str | None = None
    operation_action: str | None = None
    effect: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    sequence_no: int | None = None
    prev_hash: str | None = None
    hash: str | None = None

    @property
    def event_id(self) -> str:
        return f"evt_{self.sequence_no}"


@dataclass(frozen=True, slots=True)
class ChainVerification:
    valid: bool
    domain: str | None = None
    broken_at_sequence: int | None = None
    records_checked: int = 0
