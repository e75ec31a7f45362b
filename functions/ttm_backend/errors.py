"""
Domain errors raised by the service layer.

Routes translate these into HTTP responses; each carries the status code the
caller should see.
"""

from __future__ import annotations


class PlatformError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(PlatformError):
    status_code = 400


class PermissionDenied(PlatformError):
    status_code = 403


class NotFoundError(PlatformError):
    status_code = 404


class ConflictError(PlatformError):
    status_code = 409


class RateLimitedError(PlatformError):
    status_code = 429


class ExternalServiceError(PlatformError):
    status_code = 502
