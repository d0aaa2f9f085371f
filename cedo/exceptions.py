from typing import Any, Optional

from fastapi import status


class AppException(Exception):
    """
    Base class for errors rendered as {"error", "message", "detail"}.

    Subclasses only pick the HTTP status; `extra()` adds fields to the body.
    """
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or message

    def extra(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "detail": self.detail,
            **self.extra(),
        }


class NotFoundError(AppException):
    """Draft, proposal or notification absent"""
    status_code = status.HTTP_404_NOT_FOUND


class ValidationError(AppException):
    """Missing or malformed required fields"""
    status_code = status.HTTP_400_BAD_REQUEST


class IdentifierFormatError(AppException):
    """Wrong identifier kind where another kind is required"""
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTransitionError(AppException):
    """(current status, event) has no row in the transition table"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        message: str,
        detail: Optional[str] = None,
        current_status: Optional[str] = None,
        event: Optional[str] = None,
    ):
        super().__init__(message, detail)
        self.current_status = current_status
        self.event = event

    def extra(self) -> dict[str, Any]:
        return {"currentStatus": self.current_status, "event": self.event}


class ConflictError(AppException):
    """Lost a compare-and-swap, or a unique key already exists"""
    status_code = status.HTTP_409_CONFLICT


class ForbiddenError(AppException):
    status_code = status.HTTP_403_FORBIDDEN


class DependencyFailure(AppException):
    """
    Audit write or notification dispatch failed.

    Only raised and caught around side effects; it never unwinds a committed
    primary mutation.
    """
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class DeadlineExceededError(AppException):
    """Request deadline passed before the primary write"""
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class InternalError(AppException):
    pass
