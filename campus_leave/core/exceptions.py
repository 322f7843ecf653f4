"""
Custom Exception Classes

Error kinds raised by the leave lifecycle service. Each one carries the
HTTP status code the API layer renders it with.
"""
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


class LeaveServiceError(Exception):
    """Base exception for the leave service"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class NotFound(LeaveServiceError):
    """Referenced user or leave does not exist"""
    status_code = status.HTTP_404_NOT_FOUND


class InvalidRequest(LeaveServiceError):
    """Business rule violation in the submitted request"""
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidState(LeaveServiceError):
    """Action attempted on a leave that is not in the required status"""
    status_code = status.HTTP_409_CONFLICT


class Conflict(LeaveServiceError):
    """Requested interval overlaps an existing leave"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, conflicting_leave=None, **kwargs):
        self.conflicting_leave = conflicting_leave
        details = kwargs.pop("details", None) or {}
        if conflicting_leave is not None:
            details.setdefault("conflicting_leave_id", conflicting_leave.id)
        super().__init__(message, details=details, **kwargs)


class PermissionDenied(LeaveServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class StoreUnavailable(LeaveServiceError):
    """Underlying document store operation failed"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class IndexBuilding(StoreUnavailable):
    """Query needs an index that is still being built"""


class PreconditionFailed(StoreUnavailable):
    """Conditional write found the document no longer matching"""
    status_code = status.HTTP_409_CONFLICT


class CacheError(LeaveServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def leave_service_exception_handler(request: Request, exc: LeaveServiceError) -> JSONResponse:
    """Render service errors as JSON, same shape as HTTPException"""
    content: Dict[str, Any] = {"detail": exc.message, "error_code": exc.error_code}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)
