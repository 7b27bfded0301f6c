# app/core/errors.py
"""
Error taxonomy shared by the auth core.

Services and strategies raise these; ``app.main`` renders them into the
standard ``{"error": CODE, "message": ...}`` envelope. Messages must never
contain passwords, hashes or raw tokens.
"""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationFailed(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid request payload"


class Unauthorized(AppError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Could not validate credentials"


class TokenError(Unauthorized):
    """Bad signature, malformed token, wrong token type or past expiry."""

    default_message = "Invalid or expired token"


class NotFound(AppError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    code = "CONFLICT"
    status_code = 409
    default_message = "Conflict"


class InternalError(AppError):
    pass


class StorageUnavailable(InternalError):
    code = "SERVICE_UNAVAILABLE"
    status_code = 503
    default_message = "Storage temporarily unavailable"
