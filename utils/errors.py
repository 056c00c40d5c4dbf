"""
Error taxonomy shared by the token codec, the credential store, the services
and the HTTP layer.

Every error carries a stable machine-checkable ``code`` and the HTTP status the
API renders it with (see api/errors.py).
"""
from __future__ import annotations


class AuthServiceError(Exception):
    code = "INTERNAL_ERROR"
    status = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(AuthServiceError):
    code = "INVALID_CREDENTIALS"
    status = 401
    default_message = "Invalid credentials"


class InvalidRefreshToken(AuthServiceError):
    code = "INVALID_REFRESH_TOKEN"
    status = 401
    default_message = "Invalid refresh token"


class TokenError(AuthServiceError):
    """Base for failures raised by the token codec."""
    status = 401


class ExpiredToken(TokenError):
    code = "TOKEN_EXPIRED"
    default_message = "Token expired."


class MalformedToken(TokenError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token."


class Unauthenticated(AuthServiceError):
    code = "UNAUTHENTICATED"
    status = 401
    default_message = "Access denied. No token provided."


class Forbidden(AuthServiceError):
    code = "FORBIDDEN"
    status = 403
    default_message = "Access denied"


class NotFound(AuthServiceError):
    code = "NOT_FOUND"
    status = 404
    default_message = "Resource not found"


class Conflict(AuthServiceError):
    code = "CONFLICT"
    status = 409
    default_message = "Resource already exists"


class Internal(AuthServiceError):
    pass
