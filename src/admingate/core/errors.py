"""Error handling module for admin-gate.

This module defines error codes, exception classes, and response models.

Error Response Format:
{
    "error": "Invalid credentials",
    "code": "UNAUTHORIZED"
}

Authentication failures always carry a generic message. Rate limiting and
storage unavailability carry specific messages because they reveal nothing
about accounts or sessions.

Usage:
    from admingate.core.errors import UnauthorizedError, TooManyRequestsError

    # Raise with default message
    raise UnauthorizedError()

    # Raise with custom message
    raise TooManyRequestsError(retry_after=600, message="Try again in 10 minutes.")
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes."""

    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    SETUP_DISABLED = "SETUP_DISABLED"


class ErrorResponse(BaseModel):
    """Error response format."""

    error: str
    code: str
    retry_after: int | None = None


class AdminGateError(Exception):
    """Base exception for admin-gate.

    All admin-gate specific exceptions inherit from this class.
    This enables centralized exception handling in FastAPI.

    Attributes:
        code: The error code from ErrorCode enum
        message: Human-readable error message
        status_code: HTTP status code to return
    """

    def __init__(self, code: ErrorCode, message: str, status_code: int) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert exception to ErrorResponse model."""
        return ErrorResponse(error=self.message, code=self.code.value)

    def headers(self) -> dict[str, str] | None:
        """Extra response headers for this error."""
        return None


class BadRequestError(AdminGateError):
    """400 Bad Request - Invalid input."""

    def __init__(self, message: str = "Invalid request") -> None:
        super().__init__(ErrorCode.BAD_REQUEST, message, 400)


class UnauthorizedError(AdminGateError):
    """401 Unauthorized - Authentication required or failed."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(ErrorCode.UNAUTHORIZED, message, 401)


class NotFoundError(AdminGateError):
    """404 Not Found."""

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(ErrorCode.NOT_FOUND, message, 404)


class ConflictError(AdminGateError):
    """409 Conflict - Resource already exists."""

    def __init__(self, message: str = "Already exists") -> None:
        super().__init__(ErrorCode.CONFLICT, message, 409)


class TooManyRequestsError(AdminGateError):
    """429 Too Many Requests - Login lockout in effect."""

    def __init__(
        self, retry_after: int, message: str = "Too many failed attempts"
    ) -> None:
        self.retry_after = retry_after
        super().__init__(ErrorCode.TOO_MANY_REQUESTS, message, 429)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=self.message, code=self.code.value, retry_after=self.retry_after
        )

    def headers(self) -> dict[str, str] | None:
        return {"Retry-After": str(self.retry_after)}


class StorageUnavailableError(AdminGateError):
    """503 Service Unavailable - Credential store failed; the client may retry."""

    RETRY_AFTER_SECONDS = 5

    def __init__(
        self, message: str = "Service temporarily unavailable, please retry"
    ) -> None:
        super().__init__(ErrorCode.STORAGE_UNAVAILABLE, message, 503)

    def headers(self) -> dict[str, str] | None:
        return {"Retry-After": str(self.RETRY_AFTER_SECONDS)}


class SetupDisabledError(AdminGateError):
    """503 Service Unavailable - No setup key configured."""

    def __init__(
        self, message: str = "Admin setup is disabled - no setup key configured"
    ) -> None:
        super().__init__(ErrorCode.SETUP_DISABLED, message, 503)
