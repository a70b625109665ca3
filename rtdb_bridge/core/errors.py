"""Error Hierarchy: typed, categorized exceptions for every rtdb-bridge failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - ValidationError is raised locally and synchronously, before any backend call
    - BackendError wraps whatever the database reported; the message is passed through
    - to_dict() produces a JSON-safe envelope for logging and diagnostics

Design Decisions:
    - Single hierarchy with RTDBBridgeError base so callers can catch everything at once
    - ErrorContext as dataclass: carries path/method/listener without coupling to logging
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories."""
    VALIDATION = "validation"
    BACKEND = "backend"
    SESSION = "session"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Where the failure happened, for logs and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    path: str | None = None
    method: str | None = None
    listener: str | None = None
    debug_info: dict[str, Any] | None = None


class RTDBBridgeError(Exception):
    """Base exception for all rtdb-bridge errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "path": self.context.path,
                    "method": self.context.method,
                    "listener": self.context.listener,
                },
            }
        }


# ─── Local Errors ────────────────────────────────────────────────

class ValidationError(RTDBBridgeError):
    """Caller input failed a structural check. Never retried."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context,
        )
        self.field = field


class ClientError(RTDBBridgeError):
    """Session lifecycle used out of order (double sign-in, sign-out before sign-in...)."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CLIENT_ERROR", ErrorCategory.SESSION,
            ErrorSeverity.ERROR, context,
        )


class RTDBError(RTDBBridgeError):
    """Query engine wired to a session that cannot serve it."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "RTDB_ERROR", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context,
        )


# ─── Remote Errors ───────────────────────────────────────────────

class BackendError(RTDBBridgeError):
    """The database reported a failure (network, permission, listener cancel)."""
    def __init__(
        self,
        message: str,
        operation: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "BACKEND_ERROR", ErrorCategory.BACKEND,
            ErrorSeverity.CRITICAL, context,
        )
        self.operation = operation
        self.status_code = status_code
        self.cause = cause

    @property
    def is_permission_denied(self) -> bool:
        return self.status_code in (401, 403)
