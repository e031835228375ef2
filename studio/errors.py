"""
Error taxonomy for the booking API

Every error carries the HTTP status it maps to; main.py renders them as
{"error": message}.
"""

from typing import Optional


class StudioError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(StudioError):
    """Malformed or out-of-range input"""

    status_code = 400


class UnauthorizedError(StudioError):
    status_code = 401


class ForbiddenError(StudioError):
    status_code = 403


class NotFoundError(StudioError):
    status_code = 404


class ConflictError(StudioError):
    """Slot taken, sessions exhausted or package no longer active"""

    status_code = 409


class RateLimitedError(StudioError):
    status_code = 429

    def __init__(self, message: str, limit: int, remaining: int, reset_at: int, retry_after: int):
        super().__init__(message)
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at
        self.retry_after = retry_after
