"""Error taxonomy for Remote Store interactions and user-facing notices."""

from enum import Enum

import httpx
from pydantic import BaseModel


class ErrorCategory(Enum):
    """Categories of errors that can occur while talking to the Remote Store."""

    NETWORK_ERROR = "network_error"
    AUTHORIZATION_FAILED = "authorization_failed"
    NOT_FOUND = "not_found"
    VALIDATION_FAILED = "validation_failed"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_NETWORK_ERROR = "ERR_NETWORK_ERROR"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_VALIDATION_FAILED = "ERR_VALIDATION_FAILED"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class RemoteStoreError(Exception):
    """Base error for a failed Remote Store round-trip or a rejected local action."""

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkError(RemoteStoreError):
    """Transport failure or server-side (5xx) error."""

    category = ErrorCategory.NETWORK_ERROR


class AuthorizationError(RemoteStoreError):
    """Action disallowed for the current role or assignment."""

    category = ErrorCategory.AUTHORIZATION_FAILED


class NotFoundError(RemoteStoreError):
    """Referenced entity is missing."""

    category = ErrorCategory.NOT_FOUND


class ValidationError(RemoteStoreError):
    """A required field is missing or a value is out of range."""

    category = ErrorCategory.VALIDATION_FAILED


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


def classify_error(exception: BaseException) -> ErrorCategory:
    """Map any exception onto the error taxonomy."""
    if isinstance(exception, RemoteStoreError):
        return exception.category
    if isinstance(exception, httpx.TransportError | ConnectionError | TimeoutError):
        return ErrorCategory.NETWORK_ERROR
    if isinstance(exception, PermissionError):
        return ErrorCategory.AUTHORIZATION_FAILED
    if isinstance(exception, LookupError):
        return ErrorCategory.NOT_FOUND
    if isinstance(exception, ValueError):
        return ErrorCategory.VALIDATION_FAILED
    return ErrorCategory.UNKNOWN


def classify_error_with_response(exception: BaseException) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised while performing an action

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    category = classify_error(exception)

    if category is ErrorCategory.NETWORK_ERROR:
        return ErrorResponse(
            code=ErrorCode.ERR_NETWORK_ERROR,
            message="Network error occurred.",
            suggestion="Please check your connection and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if category is ErrorCategory.AUTHORIZATION_FAILED:
        return ErrorResponse(
            code=ErrorCode.ERR_PERMISSION_DENIED,
            message=str(exception) or "You don't have permission for this action.",
            suggestion="Ask a reviewer or the task assignee if you think this is an error.",
            severity=ErrorSeverity.MEDIUM,
        )

    if category is ErrorCategory.NOT_FOUND:
        return ErrorResponse(
            code=ErrorCode.ERR_NOT_FOUND,
            message=str(exception).strip("'\"") or "That item no longer exists.",
            suggestion="Refresh the view to see current items.",
            severity=ErrorSeverity.LOW,
        )

    if category is ErrorCategory.VALIDATION_FAILED:
        return ErrorResponse(
            code=ErrorCode.ERR_VALIDATION_FAILED,
            message=str(exception) or "Some required information is missing.",
            suggestion="Check the values you entered and try again.",
            severity=ErrorSeverity.LOW,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
