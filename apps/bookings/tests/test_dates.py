"""Business-day math on the Lisbon clock."""

from __future__ import annotations

from datetime import date, datetime, timezone as dt_timezone

from apps.bookings.dates import (
    ranges_overlap,
    rental_days_inclusive,
    today_lisbon,
    validate_lead_time,
)


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=dt_timezone.utc)


def test_rental_days_are_inclusive() -> None:
    assert rental_days_inclusive(date(2026, 5, 1), date(2026, 5, 1)) == 1
    assert rental_days_inclusive(date(2026, 5, 1), date(2026, 5, 3)) == 3


def test_back_to_back_ranges_sharing_a_day_overlap() -> None:
    assert ranges_overlap(date(2026, 5, 1), date(2026, 5, 3), date(2026, 5, 3), date(2026, 5, 5))
    assert not ranges_overlap(date(2026, 5, 1), date(2026, 5, 3), date(2026, 5, 4), date(2026, 5, 5))


def test_today_follows_lisbon_wall_clock() -> None:
    # 23:30 UTC in July is 00:30 the next day in Lisbon (WEST)
    assert today_lisbon(_utc(2026, 7, 1, 23, 30)) == date(2026, 7, 2)


def test_lead_time_before_cutoff() -> None:
    now = _utc(2026, 3, 10, 10, 0)

    check = validate_lead_time(date(2026, 3, 12), now=now, lead_days=2, cutoff_hour=15)
    assert check.ok
    assert check.min_days == 2

    too_soon = validate_lead_time(date(2026, 3, 11), now=now, lead_days=2, cutoff_hour=15)
    assert not too_soon.ok
    assert too_soon.earliest_allowed_day == date(2026, 3, 12)


def test_lead_time_after_cutoff_needs_an_extra_day() -> None:
    # 14:30 UTC is 15:30 in Lisbon during summer time
    now = _utc(2026, 7, 1, 14, 30)

    check = validate_lead_time(date(2026, 7, 3), now=now, lead_days=2, cutoff_hour=15)

    assert not check.ok
    assert check.min_days == 3
    assert check.earliest_allowed_day == date(2026, 7, 4)
