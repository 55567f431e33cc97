"""Small builders shared by the booking test modules."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from django.utils import timezone

from apps.bookings.models import Booking
from apps.bookings.services import HoldRequest
from apps.machines.models import Machine


def make_machine(**overrides) -> Machine:
    defaults = {
        "code": "mini-excavator",
        "name": "Mini Excavator",
        "daily_rate": Decimal("99.00"),
        "delivery_charge": Decimal("40.00"),
        "pickup_charge": Decimal("40.00"),
    }
    defaults.update(overrides)
    return Machine.objects.create(**defaults)


def make_addon(**overrides) -> Machine:
    defaults = {
        "code": "breaker-hammer",
        "name": "Breaker hammer",
        "item_type": Machine.ItemType.ADDON,
        "charge_model": Machine.ChargeModel.PER_DAY,
        "daily_rate": Decimal("25.00"),
    }
    defaults.update(overrides)
    return Machine.objects.create(**defaults)


def future_day(offset: int = 30) -> date:
    return date.today() + timedelta(days=offset)


def make_booking(machine: Machine, start: date, end: date, **overrides) -> Booking:
    defaults = {
        "machine": machine,
        "start_date": start,
        "end_date": end,
        "status": Booking.Status.PENDING,
        "hold_expires_at": timezone.now() + timedelta(minutes=30),
        "customer_name": "Ana Silva",
        "customer_email": "ana@example.com",
        "customer_phone": "+351910000000",
        "total_cost": Decimal("377.00"),
        "original_subtotal_ex_vat_cents": 37700,
        "discounted_subtotal_ex_vat_cents": 37700,
    }
    defaults.update(overrides)
    return Booking.objects.create(**defaults)


def hold_request(machine: Machine, start: date, end: date, **overrides) -> HoldRequest:
    fields = {
        "machine_id": machine.pk,
        "start_date": start,
        "end_date": end,
        "customer_name": "Ana Silva",
        "customer_email": "ana@example.com",
        "customer_phone": "+351910000000",
    }
    fields.update(overrides)
    return HoldRequest(**fields)
