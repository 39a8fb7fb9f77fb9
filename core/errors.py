"""
core/errors.py -- Application error taxonomy for CourseGate.

Every failure the auth core can surface to a client is an AppError subclass
carrying its own HTTP status code and a user-facing message. api/main.py
registers one exception handler for AppError that renders the uniform
{"success": false, "message": ...} envelope, so route and dependency code
simply raises.

Messages are written for end users. They must never contain token values,
password material, hashes, or stack traces.

ConfigurationError is deliberately NOT an AppError: it is fatal at startup
and never becomes an HTTP response.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed input, e.g. an empty or too-short password."""

    status_code = 400
    default_message = "Invalid input."


class UnauthenticatedError(AppError):
    status_code = 401
    default_message = "You are not logged in. Please log in to get access."


class InvalidTokenError(UnauthenticatedError):
    """Bad signature, wrong key, malformed token, or an unknown reset token."""

    default_message = "Invalid token. Please log in again."


class ExpiredTokenError(UnauthenticatedError):
    """Token was genuine but its expiry has passed."""

    default_message = "Your token has expired. Please log in again."


class ForbiddenError(AppError):
    status_code = 403
    default_message = "You do not have permission to perform this action."


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found."


class ConflictError(AppError):
    status_code = 409
    default_message = "Resource already exists."


class CredentialHashError(AppError):
    """The stored password hash could not be parsed.

    Signals data corruption, not a wrong password. Rendered as a generic 500.
    """

    status_code = 500
    default_message = "An unexpected error occurred."


class ConfigurationError(Exception):
    """Required configuration is missing or invalid. The process must not serve."""
