"""
Domain errors for the scheduling core.

Services raise these; the HTTP layer converts them with ``to_http_exception``.
"""

from typing import Any

from fastapi import HTTPException, status


class SchedulingError(Exception):
    """Base class for all scheduling errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.code = self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                'message': self.message,
                'code': self.code,
                'details': self.details,
            },
        )


class ValidationError(SchedulingError):
    """Malformed input: bad ranges, bad enum values, non-numeric ids."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(SchedulingError):
    """Referenced window or slot is missing or owned by another provider."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(SchedulingError):
    """Slot or window is not in the state the transition requires."""

    status_code = status.HTTP_409_CONFLICT
