"""Error taxonomy shared by the scheduling core and the route handlers."""

from enum import Enum


class RejectionReason(str, Enum):
    TOO_SOON = 'TOO_SOON'
    TOO_FAR = 'TOO_FAR'
    OUTSIDE_AVAILABILITY = 'OUTSIDE_AVAILABILITY'
    MISALIGNED = 'MISALIGNED'


class BookingError(Exception):
    """Base class for every error raised by the booking core."""


class NotFoundError(BookingError):
    pass


class InvalidArgumentError(BookingError):
    pass


class DurationError(InvalidArgumentError):
    """An interval or appointment with zero or negative length."""


class InvalidTransitionError(InvalidArgumentError):
    pass


class PolicyRejection(BookingError):
    def __init__(self, reason: RejectionReason, message: str | None = None):
        self.reason = reason
        super().__init__(message or reason.value)


class ConflictError(BookingError):
    """The requested slot is already taken for this doctor."""


class TransientStoreError(BookingError):
    """A retryable failure while committing; nothing was written."""


class ReservationCancelled(BookingError):
    pass
