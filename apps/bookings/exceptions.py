"""Typed booking errors surfaced to synchronous callers."""

from __future__ import annotations

from datetime import date

OVERLAP_MESSAGE = (
    "Those dates are currently held by another customer. "
    "Try a different range or wait a few minutes."
)
GENERIC_MESSAGE = "Unexpected server error. Please try again."


class BookingError(Exception):
    """Base class for booking domain errors."""


class BookingValidationError(BookingError):
    """Request rejected with a reason the customer can act on."""


class OverlapError(BookingError):
    """Another active booking holds overlapping dates on the same machine."""

    def __init__(self, machine_id: int, start: date, end: date) -> None:
        super().__init__(OVERLAP_MESSAGE)
        self.machine_id = machine_id
        self.start = start
        self.end = end


class LeadTimeError(BookingValidationError):
    """Start date is inside the heavy-transport lead time."""

    def __init__(self, earliest_allowed_day: date, min_days: int) -> None:
        self.earliest_allowed_day = earliest_allowed_day
        self.min_days = min_days
        super().__init__(
            "This machine requires scheduling a heavy truck. "
            f"Earliest start is {earliest_allowed_day.strftime('%d/%m/%Y')}. "
            "Please choose a later date."
        )


class ServiceAreaError(BookingValidationError):
    """Delivery or pickup address is outside the service area."""
