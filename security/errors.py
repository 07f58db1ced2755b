"""
Typed failures of the auth core.

The orchestrator hands these back inside an ``AuthOutcome`` instead of raising
them past its boundary, so the HTTP layer maps ``code``/``status`` straight to
a response and never has to read message text.
"""
from datetime import datetime
from typing import Optional


class AuthError(Exception):
    code = "AUTH_ERROR"
    status = 400
    message = "Authentication failed"

    def __init__(self, message: Optional[str] = None, **details):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        out = {"error": self.message, "code": self.code}
        for key, value in self.details.items():
            if value is None:
                continue
            out[key] = value.isoformat() if isinstance(value, datetime) else value
        return out


class ValidationError(AuthError):
    code = "VALIDATION_ERROR"
    status = 400
    message = "Invalid request"


class AuthenticationError(AuthError):
    code = "INVALID_CREDENTIALS"
    status = 401
    message = "Invalid credentials"


class InvalidCodeError(AuthenticationError):
    code = "INVALID_CODE"
    status = 400
    message = "Invalid verification code"


class CodeUsedError(AuthenticationError):
    code = "CODE_USED"
    status = 400
    message = "Verification code has already been used"


class LockedError(AuthError):
    code = "ACCOUNT_LOCKED"
    status = 423
    message = "Account is temporarily locked due to multiple failed attempts"


class RateLimitedError(AuthError):
    code = "RATE_LIMITED"
    status = 429
    message = "Too many requests. Try again later."


class ExpiredError(AuthError):
    code = "EXPIRED"
    status = 400
    message = "Expired"


class ExpiredCodeError(ExpiredError):
    code = "EXPIRED_CODE"
    message = "Verification code has expired"


class SessionExpiredError(ExpiredError):
    code = "SESSION_EXPIRED"
    status = 401
    message = "Session expired or invalid"


class TokenInvalidError(AuthError):
    # Same wire code as an expired session: callers must not learn why a token failed
    code = "SESSION_EXPIRED"
    status = 401
    message = "Session expired or invalid"


class MissingTokenError(AuthError):
    code = "NO_TOKEN"
    status = 401
    message = "No authentication token"


class DeliveryError(AuthError):
    code = "DELIVERY_FAILED"
    status = 502
    message = "Failed to send verification email"


class ForbiddenError(AuthError):
    code = "FORBIDDEN"
    status = 403
    message = "Forbidden"
