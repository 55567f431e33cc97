"""Idempotent promotion of paid holds."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase

from apps.bookings.models import Booking, BookingJob
from apps.bookings.services import (
    ConfirmedTotals,
    PromotionOutcome,
    promote_booking_to_confirmed,
)

from .factories import future_day, make_booking, make_machine


class PromotionTests(TestCase):
    def setUp(self) -> None:
        self.machine = make_machine()
        self.start = future_day(15)
        self.end = self.start + timedelta(days=2)
        self.booking = make_booking(self.machine, self.start, self.end)

    def test_promotes_and_enqueues_confirmation_jobs(self) -> None:
        result = promote_booking_to_confirmed(self.booking.pk, "pi_123")

        self.assertEqual(result.outcome, PromotionOutcome.PROMOTED)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        self.assertTrue(self.booking.deposit_paid)
        self.assertTrue(self.booking.total_paid)
        self.assertIsNone(self.booking.hold_expires_at)
        self.assertEqual(self.booking.stripe_payment_intent_id, "pi_123")
        self.assertEqual(
            set(self.booking.jobs.values_list("type", flat=True)),
            {
                BookingJob.JobType.ISSUE_INVOICE,
                BookingJob.JobType.SEND_CUSTOMER_CONFIRMATION,
                BookingJob.JobType.SEND_INTERNAL_CONFIRMATION,
            },
        )
        invoice_job = self.booking.jobs.get(type=BookingJob.JobType.ISSUE_INVOICE)
        self.assertEqual(invoice_job.payload, {"stripe_payment_intent_id": "pi_123"})

    def test_second_promotion_is_a_noop(self) -> None:
        promote_booking_to_confirmed(self.booking.pk, "pi_123")

        again = promote_booking_to_confirmed(self.booking.pk, "pi_other")

        self.assertEqual(again.outcome, PromotionOutcome.ALREADY_CONFIRMED)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.stripe_payment_intent_id, "pi_123")
        self.assertEqual(self.booking.jobs.count(), 3)

    def test_first_payment_intent_wins(self) -> None:
        Booking.objects.filter(pk=self.booking.pk).update(stripe_payment_intent_id="pi_first")

        promote_booking_to_confirmed(self.booking.pk, "pi_second")

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.stripe_payment_intent_id, "pi_first")

    def test_provider_totals_overwrite_local_estimate(self) -> None:
        totals = ConfirmedTotals(
            total_cost=Decimal("339.30"),
            discount_percentage=Decimal("10"),
            original_subtotal_ex_vat_cents=37700,
            discounted_subtotal_ex_vat_cents=33930,
        )

        promote_booking_to_confirmed(self.booking.pk, "pi_123", totals)

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.total_cost, Decimal("339.30"))
        self.assertEqual(self.booking.discount_percentage, Decimal("10.00"))
        self.assertEqual(self.booking.discounted_subtotal_ex_vat_cents, 33930)

    def test_unknown_booking(self) -> None:
        result = promote_booking_to_confirmed(999999, "pi_123")

        self.assertEqual(result.outcome, PromotionOutcome.NOT_FOUND)

    def test_late_payment_revives_cancelled_hold(self) -> None:
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.Status.CANCELLED, hold_expires_at=None)

        result = promote_booking_to_confirmed(self.booking.pk, "pi_late")

        self.assertEqual(result.outcome, PromotionOutcome.PROMOTED)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)

    def test_late_payment_for_a_taken_slot(self) -> None:
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.Status.CANCELLED, hold_expires_at=None)
        make_booking(self.machine, self.start, self.end, customer_email="rui@example.com")

        result = promote_booking_to_confirmed(self.booking.pk, "pi_late")

        self.assertEqual(result.outcome, PromotionOutcome.SLOT_TAKEN)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)
        self.assertFalse(self.booking.jobs.exists())

    @patch("apps.bookings.tasks.sync_booking_to_calendar.delay")
    @patch("apps.bookings.tasks.process_booking_jobs.delay")
    def test_confirmation_kicks_follow_ups_after_commit(self, mock_jobs, mock_calendar) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            promote_booking_to_confirmed(self.booking.pk, "pi_123")

        mock_jobs.assert_called_once_with()
        mock_calendar.assert_called_once_with(self.booking.pk)

    @patch("apps.bookings.tasks.process_booking_jobs.delay")
    def test_noop_promotion_publishes_nothing(self, mock_jobs) -> None:
        promote_booking_to_confirmed(self.booking.pk, "pi_123")

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            promote_booking_to_confirmed(self.booking.pk, "pi_123")

        self.assertEqual(callbacks, [])
        mock_jobs.assert_not_called()
