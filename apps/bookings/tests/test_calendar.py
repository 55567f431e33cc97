"""Google Calendar sync."""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock, patch

from django.test import TestCase, override_settings

from apps.bookings import calendar
from apps.bookings.models import Booking
from apps.bookings.tasks import sync_booking_to_calendar

from .factories import make_booking, make_machine

CALENDAR_SETTINGS = {
    "GOOGLE_CALENDAR_ID": "ops@group.calendar.google.com",
    "GOOGLE_SERVICE_ACCOUNT_EMAIL": "sync@project.iam.gserviceaccount.com",
    "GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY": "unused-in-tests",
}


def test_all_day_end_is_exclusive() -> None:
    assert calendar.all_day_range(date(2026, 5, 1), date(2026, 5, 3)) == ("2026-05-01", "2026-05-04")


class CalendarSyncTests(TestCase):
    def setUp(self) -> None:
        self.machine = make_machine()
        self.booking = make_booking(
            self.machine,
            date(2026, 11, 2),
            date(2026, 11, 4),
            status=Booking.Status.CONFIRMED,
            hold_expires_at=None,
            delivery_selected=True,
            site_address_line1="Rua das Flores 1",
            site_address_city="Faro",
        )

    def test_not_configured_is_skipped(self) -> None:
        self.assertEqual(calendar.sync_booking_to_calendar(self.booking.pk), "skipped:not_configured")

    def test_event_body(self) -> None:
        body = calendar.event_body(self.booking)

        self.assertEqual(body["summary"], "Mini Excavator - Ana Silva")
        self.assertEqual(body["start"], {"date": "2026-11-02"})
        self.assertEqual(body["end"], {"date": "2026-11-05"})
        self.assertEqual(body["location"], "Rua das Flores 1, Faro")
        self.assertIn("Add-ons: delivery", body["description"])

    @override_settings(**CALENDAR_SETTINGS)
    @patch("apps.bookings.calendar.fetch_access_token", return_value="token")
    @patch("apps.bookings.calendar.requests.post")
    def test_creates_event_once(self, mock_post, mock_token) -> None:
        mock_post.return_value = MagicMock(status_code=200, json=MagicMock(return_value={"id": "evt_1"}))

        self.assertEqual(calendar.sync_booking_to_calendar(self.booking.pk), "created")
        self.assertEqual(calendar.sync_booking_to_calendar(self.booking.pk), "skipped:already_synced")

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.google_calendar_event_id, "evt_1")
        self.assertEqual(mock_post.call_count, 1)
        self.assertIn("ops%40group.calendar.google.com", mock_post.call_args.args[0])

    @override_settings(**CALENDAR_SETTINGS)
    def test_pending_bookings_are_not_synced(self) -> None:
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.Status.PENDING)

        self.assertEqual(calendar.sync_booking_to_calendar(self.booking.pk), "skipped:not_confirmed")

    @override_settings(**CALENDAR_SETTINGS)
    @patch("apps.bookings.calendar.fetch_access_token", return_value="token")
    @patch("apps.bookings.calendar.requests.post")
    def test_api_error_raises(self, mock_post, mock_token) -> None:
        mock_post.return_value = MagicMock(status_code=500, text="backend error")

        with self.assertRaises(calendar.CalendarError):
            calendar.create_all_day_event(calendar.event_body(self.booking))

    def test_task_reports_outcome(self) -> None:
        result = sync_booking_to_calendar.apply(args=[self.booking.pk]).get()

        self.assertEqual(result, {"booking_id": self.booking.pk, "outcome": "skipped:not_configured"})
