"""
Error taxonomy.

Every error carries the HTTP status it maps to and a message that is safe
to show to the caller. Handlers in `forgeguard.api.app` render them.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class DenialReason(str, Enum):
    """Why the authorization engine refused an operation."""

    INSUFFICIENT_ROLE = "insufficient_role"
    NOT_PERMITTED = "not_permitted"
    SELF_TARGET = "self_target"


class ForgeguardError(Exception):
    """Base exception for all expected failures."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# =============================================================================
# 401 - Authentication
# =============================================================================


class AuthenticationError(ForgeguardError):
    """Missing, malformed, expired or otherwise unacceptable credentials."""

    status_code = 401
    default_message = "Invalid credentials"


class TokenError(AuthenticationError):
    """Base exception for token errors."""

    default_message = "Invalid token"


class TokenExpiredError(TokenError):
    """Token has expired."""

    default_message = "Token has expired"


class TokenSignatureError(TokenError):
    """Token signature does not verify."""


class TokenMalformedError(TokenError):
    """Token could not be decoded at all."""


class TokenInvalidError(TokenError):
    """Token decoded but its claims are unacceptable (kind, issuer, audience)."""


class SubjectResolutionError(AuthenticationError):
    """A verified token does not map to a usable subject."""

    default_message = "Invalid token"


class SubjectNotFoundError(SubjectResolutionError):
    pass


class SubjectInactiveError(SubjectResolutionError):
    default_message = "Account is inactive"


class StaleCredentialError(SubjectResolutionError):
    default_message = "Credentials changed. Please login again."


# =============================================================================
# 403 - Authorization / Lock
# =============================================================================


class AuthorizationError(ForgeguardError):
    """Authenticated, but the role or resource gate denied the operation."""

    status_code = 403
    default_message = "Access denied"

    def __init__(self, message: str | None = None, reason: DenialReason = DenialReason.NOT_PERMITTED):
        super().__init__(message)
        self.reason = reason


class LockError(ForgeguardError):
    """Account is temporarily locked after repeated failed logins."""

    status_code = 403
    default_message = "Account is locked due to too many failed login attempts. Please try again later."


# =============================================================================
# 4xx - Input
# =============================================================================


class ValidationError(ForgeguardError):
    """Malformed caller input. Field-level detail is allowed."""

    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: str | None = None, errors: dict[str, Any] | None = None):
        super().__init__(message)
        self.errors = errors or {}


class ConflictError(ValidationError):
    """Input is well-formed but conflicts with current state."""

    status_code = 409
    default_message = "Conflict"


class NotFoundError(ForgeguardError):
    status_code = 404
    default_message = "Not found"


class RateLimitError(ForgeguardError):
    status_code = 429
    default_message = "Too many attempts. Please try again later."
