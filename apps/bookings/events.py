"""
Booking Domain Events

Published after the surrounding transaction commits.
"""

from dataclasses import dataclass

from shared.domain.base import DomainEvent


@dataclass(kw_only=True)
class BookingConfirmed(DomainEvent):
    """
    Event: Booking reached CONFIRMED (paid hold or ops booking)

    Triggers:
    - Kick the side-effect job drain
    - Sync the booking to the operations calendar
    """
    booking_id: int
    machine_id: int
    source: str = "payment"

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            booking_id=self.booking_id,
            machine_id=self.machine_id,
            source=self.source,
        )
        return data
