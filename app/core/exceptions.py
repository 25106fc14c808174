"""
Application error taxonomy shared by every domain service.

Services raise these typed failures; the two delivery boundaries translate
them:
- The REST boundary (core.exception_handler) renders ``to_dict()`` with the
  class ``status_code``.
- The realtime boundary (chat.consumers) sends an ``error`` event and keeps
  the connection open.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed or out-of-policy input (400)
    ├── AuthenticationError - Missing or invalid credential (401)
    ├── PermissionDeniedError - Authenticated but not allowed (403)
    ├── NotFoundError - Referenced entity absent (404)
    ├── ConflictError - Duplicate where uniqueness is required (409)
    └── ExternalServiceError - Storage backend or remote API failure (502)

Usage:
    from core.exceptions import NotFoundError, PermissionDeniedError

    raise NotFoundError("Chat not found", error_code="CHAT_NOT_FOUND")

    raise PermissionDeniedError(
        "Only admins can add participants",
        error_code="NOT_CHAT_ADMIN",
        details={"chat_id": chat_id},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, field errors)
        status_code: HTTP status the REST boundary responds with
    """

    default_error_code: str = "APPLICATION_ERROR"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API responses and error events.

        Example:
            {
                "error": "Chat not found",
                "error_code": "CHAT_NOT_FOUND",
                "details": {"chat_id": "65f0c2..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input is malformed or violates a policy.

    Use for:
    - Editing a non-text message
    - Disallowed attachment type or size
    - Search terms shorter than the minimum
    - Reply-to references outside the chat
    """

    default_error_code: str = "VALIDATION_ERROR"
    status_code: int = 400


class AuthenticationError(BaseApplicationError):
    """Raised when a credential is missing, invalid or expired."""

    default_error_code: str = "AUTHENTICATION_FAILED"
    status_code: int = 401


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when an authenticated identity is not allowed to act.

    Use for:
    - Non-participants touching a chat
    - Members performing admin-only group changes
    - Editing or deleting someone else's message
    """

    default_error_code: str = "PERMISSION_DENIED"
    status_code: int = 403


class NotFoundError(BaseApplicationError):
    """
    Raised when a referenced entity does not exist.

    Use for single-entity lookups where existence is expected. List
    queries return empty results instead.
    """

    default_error_code: str = "NOT_FOUND"
    status_code: int = 404


class ConflictError(BaseApplicationError):
    """
    Raised when an operation collides with existing state.

    Use for:
    - Duplicate email at registration
    - Duplicate contact entry
    - Adding someone who is already a participant
    - Changing a message that is already deleted
    """

    default_error_code: str = "CONFLICT"
    status_code: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when the storage backend or a remote API fails.

    The REST boundary logs the details and, outside DEBUG, substitutes a
    generic message so backend errors never reach clients verbatim.

    Example:
        raise ExternalServiceError(
            "Data API request failed",
            error_code="DATA_API_ERROR",
            details={"action": "insertOne", "status": 500},
        )
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    status_code: int = 502
