"""
API error definitions and exception classes.

Provides consistent error handling across all API endpoints.
"""

from enum import Enum
from typing import Any

from mapsync.exceptions import (
    AlreadyRunningError,
    ConfigurationError,
    FatalBackendError,
    LogStoreError,
    MapsyncError,
)


class ErrorCode(str, Enum):
    """Standard API error codes."""

    # Client errors (4xx)
    INVALID_REQUEST = "INVALID_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    SCHEDULE_NOT_FOUND = "SCHEDULE_NOT_FOUND"
    RUN_IN_PROGRESS = "RUN_IN_PROGRESS"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"


class APIError(Exception):
    """
    Base API exception with structured error response.

    Usage:
        raise APIError(
            code=ErrorCode.TASK_NOT_FOUND,
            message="Task 'abc' not found",
            status=404,
            details={"task_id": "abc"}
        )
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status: int = 400,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.details = details or {}

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Convert to API response format."""
        error_dict: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.details:
            error_dict["details"] = self.details
        if request_id:
            error_dict["request_id"] = request_id
        return {"error": error_dict}


class NotFoundError(APIError):
    """Resource not found error."""

    def __init__(self, resource_type: str, resource_id: str, code: ErrorCode = ErrorCode.TASK_NOT_FOUND):
        super().__init__(
            code=code,
            message=f"{resource_type} '{resource_id}' not found",
            status=404,
            details={f"{resource_type.lower()}_id": resource_id},
        )


class ValidationError(APIError):
    """Request validation error."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(code=ErrorCode.VALIDATION_ERROR, message=message, status=400, details=details)


class ConflictError(APIError):
    """A run of the requested task type is already in progress."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(code=ErrorCode.RUN_IN_PROGRESS, message=message, status=409, details=details)


class DatabaseError(APIError):
    """Log database could not be queried."""

    def __init__(self, message: str):
        super().__init__(code=ErrorCode.DATABASE_ERROR, message=message, status=503)


class BackendUnavailableError(APIError):
    """The transfer destination could not be reached."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(code=ErrorCode.BACKEND_UNAVAILABLE, message=message, status=503, details=details)


def from_domain_error(error: MapsyncError) -> APIError:
    """Map a mapsync exception raised by a handler to its API error.

    Exceptions without a specific mapping become a 500 that still carries
    the domain message.
    """
    if isinstance(error, AlreadyRunningError):
        return ConflictError(error.message, details=error.details)
    if isinstance(error, ConfigurationError):
        return ValidationError(error.message, details=error.details)
    if isinstance(error, LogStoreError):
        return DatabaseError(error.message)
    if isinstance(error, FatalBackendError):
        return BackendUnavailableError(error.message, details=error.details)
    return APIError(ErrorCode.INTERNAL_ERROR, error.message, status=500, details=error.details)
