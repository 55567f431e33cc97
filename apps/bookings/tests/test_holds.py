"""Hold placement, reuse, overlap protection and expiry."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import patch

from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings
from django.utils import timezone

from apps.bookings.exceptions import BookingValidationError, LeadTimeError, OverlapError, ServiceAreaError
from apps.bookings.models import Booking, CompanyDiscount
from apps.bookings.services import (
    cancel_pending_booking,
    create_or_reuse_hold,
    expire_stale_holds,
    is_overlap_violation,
)

from .factories import future_day, hold_request, make_addon, make_booking, make_machine


class HoldCreationTests(TestCase):
    def setUp(self) -> None:
        self.machine = make_machine()
        self.start = future_day(30)
        self.end = self.start + timedelta(days=2)

    def test_creates_pending_hold_with_priced_snapshot(self) -> None:
        request = hold_request(self.machine, self.start, self.end, delivery_selected=True, pickup_selected=True)

        result = create_or_reuse_hold(request)

        self.assertFalse(result.reused)
        booking = Booking.objects.get(pk=result.booking_id)
        self.assertEqual(booking.status, Booking.Status.PENDING)
        self.assertEqual(booking.total_cost, Decimal("377.00"))
        self.assertEqual(booking.original_subtotal_ex_vat_cents, 37700)
        self.assertEqual(booking.discounted_subtotal_ex_vat_cents, 37700)
        self.assertEqual(len(booking.price_lines), 3)
        self.assertTrue(booking.price_lines[0]["is_primary"])
        self.assertIsNotNone(booking.hold_expires_at)

    def test_same_customer_same_dates_reuses_hold(self) -> None:
        t0 = timezone.now()
        first = create_or_reuse_hold(hold_request(self.machine, self.start, self.end), now=t0)

        later = create_or_reuse_hold(
            hold_request(self.machine, self.start, self.end, customer_email="ANA@example.com"),
            now=t0 + timedelta(minutes=5),
        )

        self.assertTrue(later.reused)
        self.assertEqual(later.booking_id, first.booking_id)
        self.assertGreater(later.hold_expires_at, first.hold_expires_at)
        self.assertEqual(Booking.objects.count(), 1)

    def test_reuse_never_shortens_the_hold(self) -> None:
        t0 = timezone.now()
        first = create_or_reuse_hold(hold_request(self.machine, self.start, self.end), now=t0)

        again = create_or_reuse_hold(hold_request(self.machine, self.start, self.end), now=t0 - timedelta(minutes=10))

        self.assertEqual(again.hold_expires_at, first.hold_expires_at)

    def test_other_customer_overlapping_dates_is_rejected(self) -> None:
        create_or_reuse_hold(hold_request(self.machine, self.start, self.end))

        with self.assertRaises(OverlapError):
            create_or_reuse_hold(
                hold_request(
                    self.machine,
                    self.end,
                    self.end + timedelta(days=2),
                    customer_email="rui@example.com",
                )
            )

    def test_adjacent_dates_are_free(self) -> None:
        create_or_reuse_hold(hold_request(self.machine, self.start, self.end))

        result = create_or_reuse_hold(
            hold_request(self.machine, self.end + timedelta(days=1), self.end + timedelta(days=3), customer_email="rui@example.com")
        )

        self.assertFalse(result.reused)
        self.assertEqual(Booking.objects.active().count(), 2)

    def test_cancelled_bookings_do_not_block(self) -> None:
        make_booking(self.machine, self.start, self.end, status=Booking.Status.CANCELLED, hold_expires_at=None)

        result = create_or_reuse_hold(hold_request(self.machine, self.start, self.end, customer_email="rui@example.com"))

        self.assertFalse(result.reused)

    def test_minimum_rental_days(self) -> None:
        machine = make_machine(code="excavator-5t", name="Excavator 5t", min_days=3)

        with self.assertRaises(BookingValidationError):
            create_or_reuse_hold(hold_request(machine, self.start, self.start + timedelta(days=1)))

    def test_addons_cannot_be_booked_alone(self) -> None:
        addon = make_addon()

        with self.assertRaises(BookingValidationError):
            create_or_reuse_hold(hold_request(addon, self.start, self.end))

    def test_equipment_addons_are_priced(self) -> None:
        make_addon()

        result = create_or_reuse_hold(
            hold_request(
                self.machine,
                self.start,
                self.end,
                equipment_addons=[{"code": "breaker-hammer", "quantity": 1}],
            )
        )

        # 3 days x (99 + 25)
        self.assertEqual(result.totals.total, Decimal("372.00"))

    def test_unknown_addon_is_rejected(self) -> None:
        with self.assertRaises(BookingValidationError):
            create_or_reuse_hold(
                hold_request(self.machine, self.start, self.end, equipment_addons=[{"code": "laser-level"}])
            )

    def test_company_discount_comes_from_the_nif(self) -> None:
        CompanyDiscount.objects.create(nif="509999999", discount_percentage=Decimal("10"))
        request = hold_request(
            self.machine,
            self.start,
            self.end,
            delivery_selected=True,
            pickup_selected=True,
            customer_nif="509999999",
        )

        result = create_or_reuse_hold(request)

        booking = Booking.objects.get(pk=result.booking_id)
        self.assertEqual(booking.discount_percentage, Decimal("10.00"))
        self.assertEqual(booking.total_cost, Decimal("339.30"))
        self.assertEqual(booking.original_subtotal_ex_vat_cents, 37700)
        self.assertEqual(booking.discounted_subtotal_ex_vat_cents, 33930)

    def test_hold_request_has_no_discount_input(self) -> None:
        with self.assertRaises(TypeError):
            hold_request(self.machine, self.start, self.end, discount_percentage=Decimal("100"))

    def test_heavy_transport_lead_time(self) -> None:
        machine = make_machine(code="excavator-20t", name="Excavator 20t", requires_heavy_transport=True)
        now = datetime(2026, 3, 10, 10, 0, tzinfo=dt_timezone.utc)
        start = now.date() + timedelta(days=1)

        with self.assertRaises(LeadTimeError) as ctx:
            create_or_reuse_hold(hold_request(machine, start, start + timedelta(days=1)), now=now)

        self.assertEqual(ctx.exception.earliest_allowed_day, now.date() + timedelta(days=2))
        self.assertEqual(Booking.objects.count(), 0)

    @override_settings(ENABLE_GEOFENCE=True)
    @patch("apps.bookings.services.check_service_area", return_value="Outside")
    def test_service_area_rejection(self, mock_check) -> None:
        with self.assertRaises(ServiceAreaError):
            create_or_reuse_hold(
                hold_request(self.machine, self.start, self.end, delivery_selected=True, site_address_line1="Rua X")
            )

        self.assertEqual(Booking.objects.count(), 0)
        mock_check.assert_called_once()


class OverlapConstraintTests(TestCase):
    """The database refuses overlapping active rows even without the service layer."""

    def setUp(self) -> None:
        self.machine = make_machine()
        self.start = future_day(40)
        self.end = self.start + timedelta(days=3)
        make_booking(self.machine, self.start, self.end)

    def test_overlapping_insert_fails(self) -> None:
        with self.assertRaises(IntegrityError) as ctx, transaction.atomic():
            make_booking(self.machine, self.end, self.end + timedelta(days=1), customer_email="rui@example.com")

        self.assertTrue(is_overlap_violation(ctx.exception))

    def test_overlapping_cancelled_insert_is_allowed(self) -> None:
        make_booking(self.machine, self.start, self.end, status=Booking.Status.CANCELLED, hold_expires_at=None)

        self.assertEqual(Booking.objects.count(), 2)

    def test_reactivating_into_a_taken_slot_fails(self) -> None:
        cancelled = make_booking(
            self.machine, self.start, self.end, status=Booking.Status.CANCELLED, hold_expires_at=None
        )
        cancelled.status = Booking.Status.CONFIRMED

        with self.assertRaises(IntegrityError), transaction.atomic():
            cancelled.save()


class HoldExpiryTests(TestCase):
    def setUp(self) -> None:
        self.machine = make_machine()
        self.now = timezone.now()

    def test_expires_only_past_grace(self) -> None:
        stale = make_booking(
            self.machine, future_day(10), future_day(11), hold_expires_at=self.now - timedelta(minutes=10)
        )
        in_grace = make_booking(
            self.machine,
            future_day(20),
            future_day(21),
            hold_expires_at=self.now - timedelta(minutes=1),
        )
        fresh = make_booking(
            self.machine, future_day(30), future_day(31), hold_expires_at=self.now + timedelta(minutes=20)
        )
        confirmed = make_booking(
            self.machine,
            future_day(40),
            future_day(41),
            status=Booking.Status.CONFIRMED,
            hold_expires_at=self.now - timedelta(hours=1),
        )

        cancelled = expire_stale_holds(now=self.now, grace=timedelta(minutes=2))

        self.assertEqual(cancelled, 1)
        for booking in (stale, in_grace, fresh, confirmed):
            booking.refresh_from_db()
        self.assertEqual(stale.status, Booking.Status.CANCELLED)
        self.assertIsNone(stale.hold_expires_at)
        self.assertEqual(in_grace.status, Booking.Status.PENDING)
        self.assertEqual(fresh.status, Booking.Status.PENDING)
        self.assertEqual(confirmed.status, Booking.Status.CONFIRMED)

    def test_expired_slot_can_be_booked_again(self) -> None:
        start, end = future_day(10), future_day(12)
        make_booking(self.machine, start, end, hold_expires_at=self.now - timedelta(hours=1))

        expire_stale_holds(now=self.now)
        result = create_or_reuse_hold(hold_request(self.machine, start, end, customer_email="rui@example.com"))

        self.assertFalse(result.reused)

    def test_cancel_pending_only_touches_pending(self) -> None:
        pending = make_booking(self.machine, future_day(10), future_day(11))
        confirmed = make_booking(self.machine, future_day(20), future_day(21), status=Booking.Status.CONFIRMED)

        self.assertTrue(cancel_pending_booking(pending.pk, reason="test"))
        self.assertFalse(cancel_pending_booking(confirmed.pk))
        self.assertFalse(cancel_pending_booking(pending.pk))

        confirmed.refresh_from_db()
        self.assertEqual(confirmed.status, Booking.Status.CONFIRMED)
