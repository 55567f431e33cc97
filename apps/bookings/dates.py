"""Business-timezone day math (Europe/Lisbon).

Bookings store plain calendar days. "Today", cutoffs and lead times are
always evaluated on the Lisbon wall clock, whatever the server timezone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from django.conf import settings  # type: ignore
from django.utils import timezone  # type: ignore


def business_tz() -> ZoneInfo:
    return ZoneInfo(getattr(settings, "BUSINESS_TIME_ZONE", "Europe/Lisbon"))


def lisbon_now(now: datetime | None = None) -> datetime:
    return (now or timezone.now()).astimezone(business_tz())


def today_lisbon(now: datetime | None = None) -> date:
    return lisbon_now(now).date()


def tomorrow_lisbon(now: datetime | None = None) -> date:
    return today_lisbon(now) + timedelta(days=1)


def lisbon_hour(now: datetime | None = None) -> int:
    return lisbon_now(now).hour


def rental_days_inclusive(start: date, end: date) -> int:
    """Both ends count: a same-day rental is one day."""
    return max(1, (end - start).days + 1)


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Inclusive overlap: back-to-back ranges sharing a day do overlap."""
    return a_start <= b_end and a_end >= b_start


@dataclass(frozen=True)
class LeadTimeCheck:
    ok: bool
    earliest_allowed_day: date
    min_days: int


def required_days_with_cutoff(now: datetime, lead_days: int, cutoff_hour: int) -> int:
    """After the cutoff hour in Lisbon, one extra day of notice is needed."""
    return lead_days + (1 if lisbon_hour(now) >= cutoff_hour else 0)


def validate_lead_time(
    start: date,
    *,
    now: datetime | None = None,
    lead_days: int | None = None,
    cutoff_hour: int | None = None,
) -> LeadTimeCheck:
    now = now or timezone.now()
    if lead_days is None:
        lead_days = settings.LEAD_DAYS
    if cutoff_hour is None:
        cutoff_hour = settings.LEAD_CUTOFF_HOUR

    today = today_lisbon(now)
    min_days = required_days_with_cutoff(now, lead_days, cutoff_hour)
    earliest = today + timedelta(days=min_days)
    return LeadTimeCheck(
        ok=(start - today).days >= min_days,
        earliest_allowed_day=earliest,
        min_days=min_days,
    )
