"""Error Hierarchy: typed, categorized exceptions for every tenancy failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Caller errors (4xx) are surfaced verbatim and never retried
    - UpstreamUnavailableError (503) is the only error a service may retry
    - to_response() produces the REST envelope; no internal details leak

Design Decisions:
    - Single hierarchy with TenancyError base: the FastAPI global handler catches all
    - ErrorContext carries tenancy identifiers for log correlation, not for the client
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    UPSTREAM = "upstream"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Identifiers attached to an error for observability."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    identity_id: str | None = None
    organization_id: str | None = None
    business_id: str | None = None
    operation: str | None = None
    debug_info: dict[str, Any] | None = None


class TenancyError(Exception):
    """Base exception for all membership and access errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def retryable(self) -> bool:
        return self.category is ErrorCategory.UPSTREAM

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "organization_id": self.context.organization_id,
                    "business_id": self.context.business_id,
                    "operation": self.context.operation,
                },
            }
        }


# ─── Caller Errors (400-level) ──────────────────────────────────

class NotAuthenticatedError(TenancyError):
    """No authenticated identity accompanies the call."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "An authenticated identity is required",
            "NOT_AUTHENTICATED", ErrorCategory.AUTHENTICATION,
            ErrorSeverity.WARNING, context, 401,
        )


class NotAuthorizedError(TenancyError):
    """Identity lacks the role required for the operation."""
    def __init__(self, action: str, context: ErrorContext | None = None):
        super().__init__(
            f"Not authorized to {action}",
            "NOT_AUTHORIZED", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )
        self.action = action


class ResourceNotFoundError(TenancyError):
    """Referenced entity does not exist or is not visible to the caller."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class InviteExpiredError(TenancyError):
    """Invite code is past its expiry."""
    def __init__(self, expires_at: datetime, context: ErrorContext | None = None):
        super().__init__(
            f"Invite expired at {expires_at.isoformat()}",
            "INVITE_EXPIRED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 410,
        )
        self.expires_at = expires_at


class InviteAlreadyUsedError(TenancyError):
    """Invite code was already redeemed."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Invite has already been redeemed",
            "INVITE_ALREADY_USED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 409,
        )


class AlreadyDecidedError(TenancyError):
    """Access request is no longer pending."""
    def __init__(self, status: str, context: ErrorContext | None = None):
        super().__init__(
            f"Access request already {status}",
            "ALREADY_DECIDED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 409,
        )
        self.status = status


class ConflictError(TenancyError):
    """Duplicate pending request, or duplicate row where a novel one was expected."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


class InputValidationError(TenancyError):
    """Malformed or missing input field."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


# ─── Infrastructure Errors (500-level) ──────────────────────────

class UpstreamUnavailableError(TenancyError):
    """Data store call failed or exceeded its timeout."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.operation = ctx.operation or operation
        super().__init__(
            f"Data store {operation} failed: {message}",
            "UPSTREAM_UNAVAILABLE", ErrorCategory.UPSTREAM,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.operation = operation
