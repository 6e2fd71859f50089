"""Custom exceptions."""
from typing import Any, Dict, List, Optional
from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Resource not found exception."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail or "Resource not found")


class UnauthorizedError(HTTPException):
    """Unauthorized exception."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail or "Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(HTTPException):
    """Forbidden exception."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail or "Access denied")


class ValidationError(HTTPException):
    """Validation exception with optional field-level details."""

    def __init__(self, detail: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail or "Validation failed")
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class ConflictError(HTTPException):
    """Conflict exception."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail or "Resource conflict")


class TimerConflictError(HTTPException):
    """Timer state race lost or illegal transition (already running / not running)."""

    ALREADY_RUNNING = "already_running"
    NOT_RUNNING = "not_running"
    TASK_COMPLETED = "task_completed"

    def __init__(self, code: str, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
        self.code = code

    @classmethod
    def already_running(cls) -> "TimerConflictError":
        return cls(cls.ALREADY_RUNNING, "Timer is already running")

    @classmethod
    def not_running(cls) -> "TimerConflictError":
        return cls(cls.NOT_RUNNING, "Timer is not running")

    @classmethod
    def task_completed(cls) -> "TimerConflictError":
        return cls(cls.TASK_COMPLETED, "Cannot start a timer on a completed task")


class DependencyFailureError(HTTPException):
    """Record store unavailable or write failed."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail or "Server error")


class TaskVersionConflict(Exception):
    """Raised by the task store when a conditional write finds a newer version."""

    def __init__(self, task_id):
        super().__init__(f"Task {task_id} was modified concurrently")
        self.task_id = task_id
