"""Error taxonomy for the intake portal.

Services raise these; server.py maps them onto HTTP responses.
Messages are user-facing and must never carry SSN / IP PIN values.
"""
from typing import Any, Dict, List, Optional


class IntakePortalError(Exception):
    """Base class for all domain errors."""
    status_code = 500
    error_code = "SERVER_ERROR"

    def __init__(self, message: str = "Server error.", **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "error_code": self.error_code,
            **self.extra,
        }


class ValidationError(IntakePortalError):
    """Malformed, missing or out-of-range input. Always client-fixable."""
    status_code = 400
    error_code = "VALIDATION_FAILED"

    def __init__(self, message: str, field: Optional[str] = None, **extra: Any):
        if field:
            extra["field"] = field
        super().__init__(message, **extra)
        self.field = field


class Unauthorized(IntakePortalError):
    status_code = 401
    error_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Missing authorization.", **extra: Any):
        super().__init__(message, **extra)


class Forbidden(IntakePortalError):
    status_code = 403
    error_code = "FORBIDDEN"

    def __init__(self, message: str = "Access restricted.", **extra: Any):
        super().__init__(message, **extra)


class NotFound(IntakePortalError):
    status_code = 404
    error_code = "NOT_FOUND"


class ConfigurationError(IntakePortalError):
    """Missing encryption key or external credentials.

    Fatal at startup for the encryption key; for storage / identity it
    degrades the feature to 503 instead of crashing live traffic.
    """
    status_code = 503
    error_code = "NOT_CONFIGURED"


class ScreeningRejected(IntakePortalError):
    """A file failed container or malware screening."""
    status_code = 422
    error_code = "SCREENING_REJECTED"

    def __init__(
        self,
        message: str,
        filename: str,
        results: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message, filename=filename, results=results or [], uploaded=0)
        self.filename = filename
        self.results = results or []


class StorageUnavailable(IntakePortalError):
    """Object store call failed. Files stored before the failure stay stored."""
    status_code = 503
    error_code = "STORAGE_UNAVAILABLE"

    def __init__(self, message: str, uploaded: int = 0, **extra: Any):
        super().__init__(message, uploaded=uploaded, **extra)
        self.uploaded = uploaded


class RateLimited(IntakePortalError):
    status_code = 429
    error_code = "RATE_LIMITED"
