"""
Unified error handling for OrgGuard.

Every error carries both a CLI exit code and an HTTP status code so the
same exception can surface through the operator CLI and the admin API.

Exit Codes:
- 0: Success
- 2: Blocked (permission denied, resync already running)
- 10: Configuration error
- 11: Store error (policy store or cache unavailable)
- 12: Validation error
- 13: Violation error (nothing to suspend or restore)
- 14: Audit chain integrity failure
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    BLOCKED = 2
    CONFIG_ERROR = 10
    STORE_ERROR = 11
    VALIDATION_ERROR = 12
    VIOLATION_ERROR = 13
    INTEGRITY_ERROR = 14
    UNKNOWN_ERROR = 127


class OrgGuardError(Exception):
    """Base exception for OrgGuard errors with exit code and HTTP status support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    status_code: int = 500
    code: str = "internalError"
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(OrgGuardError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR
    code = "configurationError"


class StoreError(OrgGuardError):
    """Raised when the policy store or the cache cannot be reached."""

    exit_code = ExitCode.STORE_ERROR
    status_code = 503
    code = "storeUnavailable"


class ValidationError(OrgGuardError):
    """Raised for missing or malformed input on a mutating call."""

    exit_code = ExitCode.VALIDATION_ERROR
    status_code = 400
    code = "validationError"


class ViolationError(OrgGuardError):
    """Raised when a suspension or restoration had no effect.

    Reported as a server error: "nothing to undo" is treated as an
    operational failure rather than a client mistake.
    """

    exit_code = ExitCode.VIOLATION_ERROR
    status_code = 500
    code = "violationError"


class NotFoundError(OrgGuardError):
    """Raised when a requested record does not exist."""

    exit_code = ExitCode.VALIDATION_ERROR
    status_code = 404
    code = "notFound"


class PermissionDeniedError(OrgGuardError):
    """Raised when the caller lacks the permission an operation requires."""

    exit_code = ExitCode.BLOCKED
    status_code = 403
    code = "forbidden"


class SyncInProgressError(OrgGuardError):
    """Raised when a full-org resync is already running for the same org."""

    exit_code = ExitCode.BLOCKED
    status_code = 409
    code = "syncInProgress"


class AuditIntegrityError(OrgGuardError):
    """Raised when the audit hash chain fails verification."""

    exit_code = ExitCode.INTEGRITY_ERROR
    status_code = 500
    code = "auditIntegrityError"


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Exit codes:
        - OrgGuardError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except OrgGuardError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130  # Standard exit code for SIGINT
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: OrgGuardError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
