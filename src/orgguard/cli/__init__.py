"""
CLI commands for OrgGuard.
"""

from orgguard.cli.main import (
    build_parser,
    main,
    seed_command,
    sync_org_command,
    unlock_command,
    verify_audit_command,
    violations_command,
)

__all__ = [
    "build_parser",
    "main",
    "seed_command",
    "sync_org_command",
    "unlock_command",
    "verify_audit_command",
    "violations_command",
]
