"""
Booking Event Handlers

Subscribed to the message bus in BookingsConfig.ready(). They run after
commit and only kick follow-up work; failures are logged and never reach
the caller that confirmed the booking.
"""

import logging

from .events import BookingConfirmed

logger = logging.getLogger(__name__)


def kick_booking_jobs(event: BookingConfirmed) -> None:
    """Drain the job queue now instead of waiting for the next beat tick."""
    from .tasks import process_booking_jobs

    try:
        process_booking_jobs.delay()
    except Exception as e:
        logger.warning(f"jobs:kick_failed booking={event.booking_id}: {e}")


def schedule_calendar_sync(event: BookingConfirmed) -> None:
    from .tasks import sync_booking_to_calendar

    try:
        sync_booking_to_calendar.delay(event.booking_id)
    except Exception as e:
        logger.warning(f"calendar:schedule_failed booking={event.booking_id}: {e}")


def register_handlers(bus) -> None:
    bus.register_event_handler(BookingConfirmed, kick_booking_jobs)
    bus.register_event_handler(BookingConfirmed, schedule_calendar_sync)
