from fastapi import status


class BookingError(Exception):
    """Base for seat and booking failures; carries the HTTP status it maps to."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class SeatConflictError(BookingError):
    """Requested seat is already booked or actively locked."""


class LockMissingError(BookingError):
    """Confirm attempted for a seat without a live lock."""


class SeatValidationError(BookingError):
    """Malformed seat list or request field."""


class StorageFailure(BookingError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
