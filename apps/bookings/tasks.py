"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from . import calendar, jobs, services

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (scheduled by Celery Beat)
# ============================================================================

@shared_task(name="bookings.expire_stale_holds")
def expire_stale_holds() -> dict[str, int]:
    """
    Cancel PENDING holds past their expiry plus grace.

    Runs every minute through Celery Beat.

    Returns:
        dict: {"cancelled": number of holds cancelled}
    """
    cancelled = services.expire_stale_holds()
    return {"cancelled": cancelled}


@shared_task(name="bookings.process_booking_jobs")
def process_booking_jobs(limit: int | None = None) -> dict[str, int]:
    """Drain one batch of pending side-effect jobs."""

    result = jobs.process_pending_jobs(limit=limit)
    if result.processed or result.failed:
        logger.info(
            f"jobs:drained processed={result.processed} failed={result.failed} "
            f"remaining={result.remaining_pending}"
        )
    return result.as_dict()


@shared_task(name="bookings.reclaim_stale_jobs")
def reclaim_stale_jobs() -> dict[str, int]:
    return {"reclaimed": jobs.reclaim_stale_jobs()}


# ============================================================================
# EVENT-DRIVEN TASKS
# ============================================================================

@shared_task(
    name="bookings.sync_booking_to_calendar",
    autoretry_for=(calendar.CalendarError,),
    retry_backoff=True,
    max_retries=3,
)
def sync_booking_to_calendar(booking_id: int) -> dict:
    """Best-effort calendar event for a confirmed booking."""

    outcome = calendar.sync_booking_to_calendar(booking_id)
    return {"booking_id": booking_id, "outcome": outcome}
