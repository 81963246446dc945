"""
Exceptions for reactive-auth.

The adapter forwards whatever error the wrapped client reports. The classes
below only cover what the adapter itself can detect, plus the error type
raised by the in-memory client.
"""

from enum import Enum
from typing import Any


class AuthStreamError(Exception):
    """Base exception for all reactive-auth errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, details={self.details})"


class AuthOperationError(AuthStreamError):
    """The wrapped client reported an error value that is not an exception.

    The original value is kept untouched on ``error``.
    """

    def __init__(self, error: Any, operation: str | None = None) -> None:
        super().__init__(
            f"Auth operation failed: {error!r}",
            details={"operation": operation} if operation else None,
        )
        self.error = error
        self.operation = operation


class ContextUnavailableError(AuthStreamError):
    """The wrapped client was released before the operation was activated."""

    def __init__(self, operation: str | None = None) -> None:
        super().__init__(
            "Auth client is no longer available",
            details={"operation": operation} if operation else None,
        )
        self.operation = operation


class EmptyResultError(AuthStreamError):
    """The wrapped client reported success without a result payload."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"{operation} completed without a result",
            details={"operation": operation},
        )
        self.operation = operation


class AuthErrorCode(str, Enum):
    """Error codes reported by the in-memory identity client."""

    INVALID_EMAIL = "invalid-email"
    EMAIL_ALREADY_IN_USE = "email-already-in-use"
    WEAK_PASSWORD = "weak-password"
    WRONG_PASSWORD = "wrong-password"
    USER_NOT_FOUND = "user-not-found"
    USER_DISABLED = "user-disabled"
    OPERATION_NOT_ALLOWED = "operation-not-allowed"
    INVALID_ACTION_CODE = "invalid-action-code"
    EXPIRED_ACTION_CODE = "expired-action-code"
    MISSING_CONTINUE_URI = "missing-continue-uri"
    MISSING_ANDROID_PACKAGE_NAME = "missing-android-package-name"
    ARGUMENT_ERROR = "argument-error"
    INTERNAL_ERROR = "internal-error"


class IdentityError(AuthStreamError):
    """Error raised by the in-memory identity client."""

    def __init__(
        self,
        code: AuthErrorCode,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or code.value, details=details)
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["code"] = self.code.value
        return data
