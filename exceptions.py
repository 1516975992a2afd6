"""
Scheduling Errors
Exception taxonomy shared by stores, services and the API layer
"""

from typing import Optional


class SchedulingError(Exception):
    """Base class for all scheduling engine errors"""

    status_code: int = 500

    def __init__(self, message: str, *, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(SchedulingError, ValueError):
    """Malformed recurrence rule or time-of-day entry"""

    status_code = 422


class ConflictError(SchedulingError):
    """Duplicate (source, scheduled_time) insert; callers treat it as a no-op"""

    status_code = 409


class NotFoundError(SchedulingError):
    """Requested row does not exist"""

    status_code = 404


class ConcurrencyConflict(SchedulingError):
    """A conditional update lost the race against another writer"""

    status_code = 409


class StorageError(SchedulingError):
    """The underlying store failed"""

    status_code = 503


class NoActiveAlarmError(SchedulingError):
    """Alarm fired but no pending obligation could be resolved"""

    status_code = 404


class LoadTimeoutError(SchedulingError):
    """Alarm resolution did not finish within the allowed wait"""

    status_code = 504


__all__ = [
    "SchedulingError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "ConcurrencyConflict",
    "StorageError",
    "NoActiveAlarmError",
    "LoadTimeoutError",
]
