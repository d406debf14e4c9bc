"""Error Hierarchy — typed, categorized exceptions for all Engage failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are recoverable; infrastructure errors (500-level) are critical
    - to_response() produces the REST envelope
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with EngageError base: FastAPI global handler catches all
    - ErrorContext as dataclass: tenant/user/resource ids travel with the error
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
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    FORBIDDEN = "forbidden"
    DATABASE = "database"
    INTERNAL = "internal"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"


@dataclass
class ErrorContext:
    """Context attached to an error for observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    organization_id: int | None = None
    user_id: int | None = None
    resource_id: str | None = None
    debug_info: dict[str, Any] | None = None


class EngageError(Exception):
    """Base exception for all Engage errors."""

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
                    "user_id": self.context.user_id,
                    "resource_id": self.context.resource_id,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class SocialValidationError(EngageError):
    """Input failed a social business validation rule."""
    def __init__(
        self, message: str, field: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class OrganizationMismatchError(EngageError):
    """Caller tried to act on an entity from another organization."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "ORGANIZATION_MISMATCH", ErrorCategory.FORBIDDEN,
            ErrorSeverity.WARNING, context, 403,
        )


class PermissionDeniedError(EngageError):
    """Caller lacks the role required for the action."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "PERMISSION_DENIED", ErrorCategory.FORBIDDEN,
            ErrorSeverity.WARNING, context, 403,
        )


class ResourceNotFoundError(EngageError):
    """Requested resource does not exist (or has been soft-deleted)."""
    def __init__(
        self, resource_type: str, resource_id: str,
        context: ErrorContext | None = None, message: str | None = None,
    ):
        super().__init__(
            message or f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class NotAPollError(EngageError):
    """Vote attempted on a post that is not a poll."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Can only vote on poll posts",
            "NOT_A_POLL", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 400,
        )


class PollClosedError(EngageError):
    """Vote attempted after the poll expired."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "This poll has expired",
            "POLL_EXPIRED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 400,
        )


class InvalidPollOptionError(EngageError):
    """Vote for an option the poll does not offer."""
    def __init__(self, option: str, context: ErrorContext | None = None):
        super().__init__(
            f"Invalid poll option: '{option}'",
            "INVALID_POLL_OPTION", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 400,
        )
        self.option = option


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(EngageError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class InvalidEventError(EngageError):
    """Event envelope failed structural validation before dispatch."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Invalid event structure: {message}",
            "INVALID_EVENT", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )
