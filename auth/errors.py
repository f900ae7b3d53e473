"""
auth/errors.py -- Typed failures raised by the auth stores and AuthService.

Every failure a caller can act on has its own class carrying a stable
machine-readable code, a human message, and the HTTP status the API layer
maps it to. api/main.py registers one exception handler for AuthError, so
routes never translate these by hand and nothing below ever leaks a stack
trace or SQL detail to the client.

Layer rule: no imports from api/ or todo/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all auth/session/OTP failures."""

    code = "auth_error"
    status_code = 400
    message = "Request could not be completed."

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.message
        self.detail = detail
        super().__init__(self.message)


class ValidationFailed(AuthError):
    """Malformed input. fields maps each offending field to a message."""

    code = "validation_error"
    status_code = 422
    message = "Request validation failed."

    def __init__(self, fields: dict[str, str], message: str | None = None) -> None:
        super().__init__(message)
        self.fields = fields


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    status_code = 409
    message = "That email is already taken. Please use a different email."


class InvalidCredentials(AuthError):
    """Wrong password and unknown email both land here -- never tell them apart."""

    code = "invalid_credentials"
    status_code = 401
    message = "Invalid email or password."


class RateLimited(AuthError):
    code = "rate_limited"
    status_code = 429
    message = "Please wait before requesting a new code."

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = max(int(retry_after), 1)


class InvalidOrExpiredOTP(AuthError):
    code = "invalid_otp"
    status_code = 400
    message = "Please enter a valid code."


class GenerationTimeout(AuthError):
    """No free code could be found before the generation deadline. Transient."""

    code = "otp_unavailable"
    status_code = 503
    message = "Could not issue a verification code right now. Please try again."


class UnknownUser(AuthError):
    code = "unknown_user"
    status_code = 404
    message = "User not found."


class NotAuthenticated(AuthError):
    code = "unauthorized"
    status_code = 401
    message = "Authentication required."


class StorageFailure(AuthError):
    """Unexpected backend error. The cause is logged, never returned."""

    code = "internal_error"
    status_code = 500
    message = "An unexpected error occurred."
