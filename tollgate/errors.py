"""
Error taxonomy for Tollgate.

Every error surfaced to a client carries a stable ``code``, an HTTP status and
a human readable message. Storage failures are wrapped into the nearest kind
before they leave a component.
"""
import math
from typing import Optional

from fastapi.responses import JSONResponse


class TollgateError(Exception):
    """Base exception for all Tollgate errors."""


class ConfigurationError(TollgateError):
    """Raised when the application cannot start with the given settings."""


class AuthError(TollgateError):
    """Base class for errors that map onto an HTTP response."""

    code = "AUTH_ERROR"
    status_code = 400
    message = "Authentication error"

    def __init__(self, message: Optional[str] = None, *, retry_after: Optional[float] = None):
        self.message = message or self.message
        self.retry_after = retry_after
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.message, "status": self.status_code}
        if self.retry_after is not None:
            body["retry_after"] = retry_after_header(self.retry_after)
        return body


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    status_code = 401
    message = "Incorrect email or password"


class AccountLocked(AuthError):
    code = "ACCOUNT_LOCKED"
    status_code = 423
    message = "Account is temporarily locked. Please try again later."


class AccountInactive(AuthError):
    code = "ACCOUNT_INACTIVE"
    status_code = 400
    message = "Inactive user"


class EmailNotVerified(AuthError):
    code = "EMAIL_NOT_VERIFIED"
    status_code = 400
    message = "Email address has not been verified"


class TokenExpired(AuthError):
    code = "TOKEN_EXPIRED"
    status_code = 401
    message = "Token has expired"


class TokenInvalid(AuthError):
    code = "TOKEN_INVALID"
    status_code = 401
    message = "Could not validate credentials"


class TokenRevoked(AuthError):
    code = "TOKEN_REVOKED"
    status_code = 401
    message = "Token has been revoked"


class Unauthorized(AuthError):
    code = "UNAUTHORIZED"
    status_code = 401
    message = "Not authenticated"


class RateLimited(AuthError):
    code = "RATE_LIMITED"
    status_code = 429
    message = "Too many requests. Please try again later."


class SessionNotFound(AuthError):
    code = "SESSION_NOT_FOUND"
    status_code = 404
    message = "Session not found"


class ServiceUnavailable(AuthError):
    code = "SERVICE_UNAVAILABLE"
    status_code = 503
    message = "Service temporarily unavailable. Please try again later."


def retry_after_header(seconds: float) -> int:
    """Whole seconds a client should wait, never less than one."""
    return max(1, math.ceil(seconds))


def error_response(exc: AuthError) -> JSONResponse:
    """Render an ``AuthError`` as the JSON error body."""
    headers = {}
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    if exc.retry_after is not None:
        headers["Retry-After"] = str(retry_after_header(exc.retry_after))
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)
