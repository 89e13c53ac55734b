"""
Application error taxonomy.

Every failure the core reports to a caller is one of these classes. Each
carries a machine-readable code, a user-safe message, the offending field
(when there is one) and optional details; the HTTP layer maps them to
status codes through ``status_code``.
"""

from enum import Enum
from typing import Any, List, Optional


class ErrorCode(str, Enum):
    """Error codes exposed to API clients."""

    VALIDATION_ERROR = "validationError"
    AUTHENTICATION_REQUIRED = "authenticationRequired"
    UNAUTHORIZED_ACCESS = "unauthorizedAccess"
    RESOURCE_NOT_FOUND = "resourceNotFound"
    DUPLICATE_RESOURCE = "duplicateResource"
    INTERNAL_ERROR = "internalServerError"


class AppError(Exception):
    """Base application error with code and user-safe message."""

    status_code: int = 500
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[List[Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details or []

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "error": True,
            "code": self.code.value,
            "message": self.message,
            "field": self.field,
            "details": self.details,
        }


class ValidationError(AppError):
    """Malformed or out-of-policy input."""

    status_code = 400
    code = ErrorCode.VALIDATION_ERROR


class AuthenticationRequired(AppError):
    """Raised when a protected operation is called without an actor."""

    status_code = 401
    code = ErrorCode.AUTHENTICATION_REQUIRED


class UnauthorizedAccess(AppError):
    """Raised when the permission evaluator denies an operation."""

    status_code = 403
    code = ErrorCode.UNAUTHORIZED_ACCESS


class ResourceNotFound(AppError):
    """Raised when an event, media item or user does not exist."""

    status_code = 404
    code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"{resource} not found", field=resource)
        self.resource = resource


class DuplicateResource(AppError):
    """Raised when an equivalent resource already exists."""

    status_code = 409
    code = ErrorCode.DUPLICATE_RESOURCE


class InternalError(AppError):
    """Unexpected persistence, storage or probe failure."""

    status_code = 500
    code = ErrorCode.INTERNAL_ERROR
