"""Google Calendar sync for confirmed bookings.

A service account signs an RS256 assertion (PyJWT + cryptography), swaps it
for an access token and inserts one all-day event per booking. Calendar
all-day events use an exclusive end date, so the inclusive rental end is
shifted by one day.
"""

from __future__ import annotations

import logging
import time
from datetime import date, timedelta
from urllib.parse import quote

import jwt
import requests
from django.conf import settings  # type: ignore
from django.utils import timezone  # type: ignore

from .models import Booking

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/{calendar_id}/events"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
REQUEST_TIMEOUT = 10


class CalendarError(Exception):
    """Calendar API call failed."""


def calendar_configured() -> bool:
    return bool(
        settings.GOOGLE_CALENDAR_ID
        and settings.GOOGLE_SERVICE_ACCOUNT_EMAIL
        and settings.GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY
    )


def all_day_range(start: date, end: date) -> tuple[str, str]:
    """Inclusive booking days to Google's (start, exclusive end) pair."""
    return start.isoformat(), (end + timedelta(days=1)).isoformat()


def _service_account_assertion(now: int | None = None) -> str:
    issued_at = now or int(time.time())
    claims = {
        "iss": settings.GOOGLE_SERVICE_ACCOUNT_EMAIL,
        "scope": CALENDAR_SCOPE,
        "aud": TOKEN_URL,
        "iat": issued_at,
        "exp": issued_at + 3600,
    }
    return jwt.encode(claims, settings.GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY, algorithm="RS256")


def fetch_access_token() -> str:
    try:
        response = requests.post(
            TOKEN_URL,
            data={
                "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                "assertion": _service_account_assertion(),
            },
            timeout=REQUEST_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        raise CalendarError(f"Token exchange failed: {e}") from e

    if response.status_code >= 400:
        raise CalendarError(f"Token exchange failed: {response.status_code} {response.text[:200]}")
    token = response.json().get("access_token")
    if not token:
        raise CalendarError("Token exchange returned no access_token")
    return token


def event_body(booking: Booking) -> dict:
    start, end_exclusive = all_day_range(booking.start_date, booking.end_date)
    addons = [
        label
        for label, enabled in (
            ("operator", booking.operator_selected),
            ("insurance", booking.insurance_selected),
            ("delivery", booking.delivery_selected),
            ("pickup", booking.pickup_selected),
        )
        if enabled
    ]
    description = [
        f"Booking #{booking.pk}",
        f"Customer: {booking.customer_name} ({booking.customer_phone})",
        f"Add-ons: {', '.join(addons) if addons else 'none'}",
    ]
    if booking.ops_notes:
        description.append(f"Notes: {booking.ops_notes}")

    body = {
        "summary": f"{booking.machine.name} - {booking.customer_name}",
        "description": "\n".join(description),
        "start": {"date": start},
        "end": {"date": end_exclusive},
    }
    location = ", ".join(part for part in (booking.site_address_line1, booking.site_address_city) if part)
    if location:
        body["location"] = location
    return body


def create_all_day_event(body: dict) -> str:
    url = EVENTS_URL.format(calendar_id=quote(settings.GOOGLE_CALENDAR_ID, safe=""))
    try:
        response = requests.post(
            url,
            json=body,
            headers={"Authorization": f"Bearer {fetch_access_token()}"},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        raise CalendarError(f"Failed to create calendar event: {e}") from e

    if response.status_code >= 400:
        raise CalendarError(f"Failed to create calendar event: {response.status_code} {response.text[:200]}")
    event_id = response.json().get("id")
    if not event_id:
        raise CalendarError("Calendar API returned no event id")
    return event_id


def sync_booking_to_calendar(booking_id: int) -> str:
    """
    Create the calendar event for a CONFIRMED booking once.

    Returns:
        str: "created", or "skipped:<reason>"
    """
    if not calendar_configured():
        return "skipped:not_configured"

    booking = Booking.objects.select_related("machine").filter(pk=booking_id).first()
    if booking is None:
        return "skipped:not_found"
    if booking.status != Booking.Status.CONFIRMED:
        return "skipped:not_confirmed"
    if booking.google_calendar_event_id:
        return "skipped:already_synced"

    event_id = create_all_day_event(event_body(booking))
    Booking.objects.filter(pk=booking.pk, google_calendar_event_id__isnull=True).update(
        google_calendar_event_id=event_id,
        updated_at=timezone.now(),
    )
    logger.info(f"calendar:created booking={booking.pk} event={event_id}")
    return "created"
