"""Core modules for OrgGuard - centralized error definitions."""

from orgguard.core.errors import (
    AuditIntegrityError,
    ConfigurationError,
    ExitCode,
    NotFoundError,
    OrgGuardError,
    PermissionDeniedError,
    StoreError,
    SyncInProgressError,
    ValidationError,
    ViolationError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "OrgGuardError",
    "ConfigurationError",
    "StoreError",
    "ValidationError",
    "ViolationError",
    "NotFoundError",
    "PermissionDeniedError",
    "SyncInProgressError",
    "AuditIntegrityError",
    "main_with_error_handling",
    "format_error_message",
]
