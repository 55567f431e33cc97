"""Staff-created ("ops") bookings.

Ops bookings are CONFIRMED straight away with zero totals. They skip
payment and the heavy-transport lead time, but never the no-overlap rule.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from django.db import IntegrityError, transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.machines.models import Machine
from shared.application.uow import DjangoUnitOfWork

from .dates import lisbon_now, validate_lead_time
from .events import BookingConfirmed
from .jobs import JobSpec, enqueue_booking_jobs
from .models import Booking, BookingJob
from .services import _lock_queryset_if_possible, is_overlap_violation, lock_machine

logger = logging.getLogger(__name__)

OPS_CUSTOMER_NAME = "OPS Booking"
OPS_CUSTOMER_EMAIL = "ops@internal.local"
OPS_CUSTOMER_PHONE = "OPS"

OVERLAP = "OVERLAP"
UNKNOWN = "UNKNOWN"


@dataclass
class OpsBookingCommand:
    machine_id: int
    start_date: date
    end_date: date
    manager_name: str
    site_address_line1: str
    customer_name: str | None = None
    site_address_city: str | None = None
    site_address_notes: str | None = None


@dataclass(frozen=True)
class OpsBookingResult:
    ok: bool
    booking_id: int | None = None
    reason: str | None = None
    message: str = ""
    promoted_hold: bool = False

    def as_dict(self) -> dict:
        if self.ok:
            return {"ok": True, "booking_id": self.booking_id, "promoted_hold": self.promoted_hold}
        return {"ok": False, "reason": self.reason, "message": self.message}


def merge_notes(*parts: str | None) -> str:
    return " | ".join(part.strip() for part in parts if part and part.strip())


def lead_time_override_note(machine: Machine, start: date, now: datetime | None = None) -> str | None:
    """Audit note for a heavy-transport booking placed inside the lead time."""

    if not machine.requires_heavy_transport:
        return None
    check = validate_lead_time(start, now=now)
    if check.ok:
        return None
    stamp = lisbon_now(now).strftime("%d/%m/%Y, %H:%M:%S")
    earliest = check.earliest_allowed_day.strftime("%d/%m/%Y")
    return f"[OPS OVERRIDE] Heavy-transport lead time bypassed on {stamp}. Earliest allowed was {earliest}."


def has_confirmed_overlap(machine_id: int, start: date, end: date) -> bool:
    return (
        Booking.objects.filter(machine_id=machine_id, status=Booking.Status.CONFIRMED)
        .overlapping(start, end)
        .exists()
    )


def _confirm_pending_hold(booking: Booking, command: OpsBookingCommand, override_note: str | None) -> None:
    booking.status = Booking.Status.CONFIRMED
    booking.hold_expires_at = None
    booking.total_cost = Decimal("0.00")
    booking.site_address_line1 = booking.site_address_line1 or command.site_address_line1
    booking.site_address_city = booking.site_address_city or command.site_address_city
    booking.site_address_notes = merge_notes(booking.site_address_notes, command.site_address_notes) or None
    booking.ops_notes = merge_notes(booking.ops_notes, f"Confirmed by {command.manager_name}", override_note)
    booking.save(
        update_fields=[
            "status",
            "hold_expires_at",
            "total_cost",
            "site_address_line1",
            "site_address_city",
            "site_address_notes",
            "ops_notes",
            "updated_at",
        ]
    )


def _create_confirmed(machine: Machine, command: OpsBookingCommand, override_note: str | None) -> Booking:
    return Booking.objects.create(
        machine=machine,
        start_date=command.start_date,
        end_date=command.end_date,
        status=Booking.Status.CONFIRMED,
        customer_name=(command.customer_name or "").strip() or OPS_CUSTOMER_NAME,
        customer_email=OPS_CUSTOMER_EMAIL,
        customer_phone=OPS_CUSTOMER_PHONE,
        site_address_line1=command.site_address_line1,
        site_address_city=command.site_address_city,
        site_address_notes=command.site_address_notes or None,
        total_cost=Decimal("0.00"),
        deposit_paid=False,
        ops_notes=merge_notes(f"Created by {command.manager_name}", override_note),
    )


def create_ops_booking(command: OpsBookingCommand, *, now: datetime | None = None) -> OpsBookingResult:
    """
    Create (or promote an exact-match hold into) a CONFIRMED zero-cost booking.

    Never raises: failures come back as ``OVERLAP`` or ``UNKNOWN`` results.
    """
    if command.start_date > command.end_date:
        return OpsBookingResult(ok=False, reason=UNKNOWN, message="Start must be on or before end")

    machine = Machine.objects.filter(pk=command.machine_id).first()
    if machine is None:
        return OpsBookingResult(ok=False, reason=UNKNOWN, message="Unknown machine")

    if has_confirmed_overlap(machine.pk, command.start_date, command.end_date):
        return OpsBookingResult(ok=False, reason=OVERLAP, message="Selected dates overlap an existing booking")

    override_note = lead_time_override_note(machine, command.start_date, now or timezone.now())

    try:
        with DjangoUnitOfWork() as uow:
            lock_machine(machine.pk)
            pending = _lock_queryset_if_possible(
                Booking.objects.filter(
                    machine_id=machine.pk,
                    status=Booking.Status.PENDING,
                    start_date=command.start_date,
                    end_date=command.end_date,
                ).order_by("pk")
            ).first()

            with transaction.atomic():
                if pending is not None:
                    _confirm_pending_hold(pending, command, override_note)
                    booking = pending
                else:
                    booking = _create_confirmed(machine, command, override_note)

            if not booking.stripe_payment_intent_id:
                # Marks the booking as waived for anyone reading payment ids
                booking.stripe_payment_intent_id = f"WAIVED_OPS_{booking.pk}"
                booking.save(update_fields=["stripe_payment_intent_id", "updated_at"])

            enqueue_booking_jobs(booking, [JobSpec(BookingJob.JobType.SEND_INTERNAL_CONFIRMATION)])
            uow.add_event(BookingConfirmed(booking_id=booking.pk, machine_id=machine.pk, source="ops"))
    except IntegrityError as exc:
        if is_overlap_violation(exc):
            logger.info(f"ops:overlap machine={machine.pk} {command.start_date}..{command.end_date}")
            return OpsBookingResult(ok=False, reason=OVERLAP, message="Selected dates overlap an existing booking")
        logger.error(f"ops:integrity_error machine={machine.pk}: {exc}", exc_info=True)
        return OpsBookingResult(ok=False, reason=UNKNOWN, message=str(exc))
    except Exception as exc:
        logger.error(f"ops:failed machine={machine.pk}: {exc}", exc_info=True)
        return OpsBookingResult(ok=False, reason=UNKNOWN, message=str(exc))

    logger.info(
        f"ops:created booking={booking.pk} machine={machine.pk} promoted_hold={pending is not None} "
        f"override={bool(override_note)}"
    )
    return OpsBookingResult(ok=True, booking_id=booking.pk, promoted_hold=pending is not None)
