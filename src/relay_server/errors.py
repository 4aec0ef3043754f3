"""Domain errors with a stable code and HTTP status.

Services raise these; the HTTP layer renders them as
``{"error": {"code": ..., "message": ...}}``. Only validation errors
carry ``details``.
"""

from __future__ import annotations

from typing import Any, ClassVar


class RelayError(Exception):
    """Base class for every error the server reports to a caller."""

    code: ClassVar[str] = "internal"
    status_code: ClassVar[int] = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(RelayError):
    """Raised for malformed input. Never reaches lifecycle or claim logic."""

    code = "validation"
    status_code = 400


class UnauthorizedError(RelayError):
    """Raised when a bearer credential is missing or does not resolve."""

    code = "unauthorized"
    status_code = 401


class ForbiddenError(RelayError):
    """Raised when the caller is authenticated but not the owner or lacks the role."""

    code = "forbidden"
    status_code = 403


class NotFoundError(RelayError):
    """Raised when a referenced command, agent or intent does not exist."""

    code = "not_found"
    status_code = 404


class ConflictError(RelayError):
    """Raised for illegal lifecycle transitions and lost claims."""

    code = "conflict"
    status_code = 409


class ExpiredError(RelayError):
    """Raised when a one-time setup code is past its expiry."""

    code = "expired"
    status_code = 410


class InternalError(RelayError):
    """Raised when the store fails in a way the caller cannot fix."""
