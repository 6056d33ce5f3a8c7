from typing import Dict, Optional
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


def error_response(
    message: str,
    field_errors: Dict[str, str],
    code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
) -> HTTPException:
    """Return an HTTPException with a consistent structure and log details."""
    logger.error("%s %s", message, field_errors)
    detail = {"message": message, "field_errors": field_errors}
    return HTTPException(status_code=code, detail=detail)


class BookingError(Exception):
    """Base class for booking/payment domain errors.

    Raised from the crud layer before anything is committed; ``main.py``
    maps each subclass to an HTTP status via ``http_status``.
    """

    http_status: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.field_errors = field_errors or {}

    def to_http(self) -> HTTPException:
        return error_response(self.message, self.field_errors, self.http_status)


class ValidationError(BookingError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFound(BookingError):
    http_status = status.HTTP_404_NOT_FOUND


class ConcurrencyConflict(BookingError):
    """Another caller won the race (e.g. the gig was already claimed)."""

    http_status = status.HTTP_409_CONFLICT


class InvalidTransition(BookingError):
    """The requested state change does not match any allowed transition."""

    http_status = status.HTTP_409_CONFLICT


class AuthenticationError(BookingError):
    http_status = status.HTTP_401_UNAUTHORIZED


class PermissionDenied(BookingError):
    http_status = status.HTTP_403_FORBIDDEN
