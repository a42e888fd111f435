"""
Exception hierarchy for the BI context backend.

Provides layered exception structure for domain-specific errors.
All exceptions include context for observability and debugging.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the application
"""

from typing import Any


class BIContextException(Exception):
    """Base exception for all BI context application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging

        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(BIContextException):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            details: Additional context
        """
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class SessionNotFoundError(BIContextException):
    """Raised when a session is not registered or not persisted."""

    def __init__(self, session_id: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize session not found error.

        Args:
            session_id: ID of the missing session
            details: Additional context
        """
        details = details or {}
        details["session_id"] = session_id
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}", details)


class ContextStoreError(BIContextException):
    """Raised when a durable context store operation fails."""

    def __init__(
        self,
        message: str,
        component: str | None = None,
        operation: str | None = None,
        session_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize context store error.

        Args:
            message: Error message
            component: Component that issued the failing call
            operation: Operation that failed (store_user_context, ...)
            session_id: Session the operation was keyed by
            details: Additional context
        """
        details = details or {}
        if component:
            details["component"] = component
        if operation:
            details["operation"] = operation
        if session_id:
            details["session_id"] = session_id
        super().__init__(message, details)


class RecoveryLimitExceededError(BIContextException):
    """Raised when a session has used up its recovery attempts."""

    def __init__(
        self,
        session_id: str,
        attempts: int,
        max_attempts: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize recovery limit error.

        Args:
            session_id: Session whose recovery was refused
            attempts: Attempts already made
            max_attempts: Ceiling in force for this call
            details: Additional context
        """
        details = details or {}
        details.update(
            {"session_id": session_id, "attempts": attempts, "max_attempts": max_attempts}
        )
        self.session_id = session_id
        self.attempts = attempts
        self.max_attempts = max_attempts
        super().__init__(
            f"Recovery attempts exhausted for session {session_id} ({attempts}/{max_attempts})",
            details,
        )


class TokenRefreshError(BIContextException):
    """Raised when a scheduled token refresh fails (non-critical)."""

    def __init__(self, session_id: str, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize token refresh error.

        Args:
            session_id: Session whose token could not be refreshed
            message: Underlying failure description
            details: Additional context
        """
        details = details or {}
        details["session_id"] = session_id
        super().__init__(f"Token refresh failed for session {session_id}: {message}", details)
