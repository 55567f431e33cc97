"""Booking emails are sent at most once each."""

from __future__ import annotations

from unittest.mock import patch

from django.core import mail
from django.test import TestCase, override_settings

from apps.bookings.models import Booking
from apps.bookings.tests.factories import future_day, make_booking, make_machine
from apps.notifications.services import NotificationError, send_booking_confirmed, send_invoice_ready


class BookingEmailTests(TestCase):
    def setUp(self) -> None:
        self.machine = make_machine()
        self.booking = make_booking(
            self.machine,
            future_day(10),
            future_day(12),
            status=Booking.Status.CONFIRMED,
            hold_expires_at=None,
            operator_selected=True,
            discounted_subtotal_ex_vat_cents=33930,
        )

    def test_customer_confirmation(self) -> None:
        self.assertEqual(send_booking_confirmed(self.booking.pk), "sent")

        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ["ana@example.com"])
        self.assertEqual(message.subject, "Your booking is confirmed: next steps")
        html = message.alternatives[0][0]
        self.assertIn("339.30", html)
        self.assertIn("417.34", html)

    def test_customer_confirmation_is_sent_once(self) -> None:
        send_booking_confirmed(self.booking.pk)

        self.assertEqual(send_booking_confirmed(self.booking.pk), "skipped:already_sent")
        self.assertEqual(len(mail.outbox), 1)

    @override_settings(EMAIL_ADMIN_TO=["ops@example.com", "owner@example.com"])
    def test_internal_confirmation(self) -> None:
        self.assertEqual(send_booking_confirmed(self.booking.pk, audience="ops"), "sent")

        message = mail.outbox[0]
        self.assertEqual(message.to, ["ops@example.com", "owner@example.com"])
        self.assertTrue(message.subject.startswith(f"New CONFIRMED booking #{self.booking.pk}"))
        self.assertIn("Operator", message.alternatives[0][0])

    @override_settings(EMAIL_ADMIN_TO=["ops@example.com"])
    def test_customer_text_is_escaped(self) -> None:
        Booking.objects.filter(pk=self.booking.pk).update(
            customer_name="<b>Ana</b>",
            ops_notes="<script>alert(1)</script>",
            site_address_line1="Rua <i>Nova</i>",
        )

        send_booking_confirmed(self.booking.pk)
        send_booking_confirmed(self.booking.pk, audience="ops")

        customer_html = mail.outbox[0].alternatives[0][0]
        ops_html = mail.outbox[1].alternatives[0][0]
        self.assertIn("Hello &lt;b&gt;Ana&lt;/b&gt;", customer_html)
        self.assertNotIn("<b>Ana</b>", customer_html)
        self.assertIn("Rua &lt;i&gt;Nova&lt;/i&gt;", customer_html)
        self.assertIn("&lt;script&gt;alert(1)&lt;/script&gt;", ops_html)
        self.assertNotIn("<script>", ops_html)

    @override_settings(EMAIL_ADMIN_TO=[])
    def test_internal_confirmation_without_recipients(self) -> None:
        self.assertEqual(send_booking_confirmed(self.booking.pk, audience="ops"), "skipped:no_recipients")

    def test_placeholder_customer_is_not_emailed(self) -> None:
        Booking.objects.filter(pk=self.booking.pk).update(customer_email="ops@internal.local")

        self.assertEqual(send_booking_confirmed(self.booking.pk), "skipped:internal_address")
        self.assertEqual(len(mail.outbox), 0)

    def test_confirmation_with_invoice_also_covers_invoice_email(self) -> None:
        Booking.objects.filter(pk=self.booking.pk).update(
            invoice_number="FR T01/7",
            invoice_pdf_url="https://www.vendus.pt/ws/v1.1/documents/7.pdf",
        )

        send_booking_confirmed(self.booking.pk)

        self.assertIn("FR T01/7", mail.outbox[0].alternatives[0][0])
        self.assertEqual(send_invoice_ready(self.booking.pk), "skipped:already_sent")
        self.assertEqual(len(mail.outbox), 1)

    def test_invoice_ready_requires_invoice(self) -> None:
        with self.assertRaises(NotificationError):
            send_invoice_ready(self.booking.pk)

    @patch("apps.notifications.services.send_email_notification", return_value=False)
    def test_failed_send_releases_claim(self, mock_send) -> None:
        with self.assertRaises(NotificationError):
            send_booking_confirmed(self.booking.pk)

        self.booking.refresh_from_db()
        self.assertIsNone(self.booking.confirmation_email_sent_at)

    def test_unknown_booking(self) -> None:
        self.assertEqual(send_booking_confirmed(999999), "skipped:not_found")
