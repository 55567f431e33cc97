"""Domain services for booking workflows.

Holds are created and reused here, stale holds are expired, and paid holds
are promoted to CONFIRMED. Every write that can race another request runs
under the per-machine lock and still relies on the database exclusion
constraint as the last line.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable

from django.conf import settings  # type: ignore
from django.db import IntegrityError, OperationalError, transaction  # type: ignore
from django.db.models import F  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore
from django.utils import timezone  # type: ignore

from apps.geofence.services import check_service_area
from apps.machines.models import Machine
from shared.application.uow import DjangoUnitOfWork

from .dates import rental_days_inclusive, validate_lead_time
from .events import BookingConfirmed
from .exceptions import BookingValidationError, LeadTimeError, OverlapError, ServiceAreaError
from .models import OVERLAP_CONSTRAINT_NAME, Booking, BookingJob, CompanyDiscount
from .pricing import PER_DAY, PricingContext, PricingItem, PricingTotals, compute_totals, to_decimal

logger = logging.getLogger(__name__)

# Advisory lock namespace for per-machine booking writes
MACHINE_LOCK_NAMESPACE = 1


def _lock_queryset_if_possible(queryset):
    """Apply select_for_update when inside transaction.atomic()."""

    if not transaction.get_connection().in_atomic_block:
        return queryset

    try:
        return queryset.select_for_update()
    except NotSupportedError:
        return queryset


def lock_machine(machine_id: int) -> None:
    """Serialize booking writes for one machine until the transaction ends."""

    connection = transaction.get_connection()
    if connection.vendor == "postgresql":
        with connection.cursor() as cursor:
            cursor.execute(
                "SELECT pg_advisory_xact_lock(%s::int, %s::int)",
                [MACHINE_LOCK_NAMESPACE, machine_id],
            )
        return
    if connection.vendor == "sqlite":
        # No row locks: a no-op write takes the database write lock up front
        Machine.objects.filter(pk=machine_id).update(is_active=F("is_active"))
        return
    list(_lock_queryset_if_possible(Machine.objects.filter(pk=machine_id)).values_list("pk", flat=True))


LOCK_RETRY_ATTEMPTS = 40
LOCK_RETRY_DELAY = 0.02
LOCK_RETRY_MAX_DELAY = 0.25


def is_lock_contention(exc: BaseException) -> bool:
    """SQLite reports a busy writer as "database is locked" or "database table is locked"."""
    return "is locked" in str(exc)


def run_with_lock_retry(func, *args, **kwargs):
    """
    Call ``func``, retrying while another connection holds the SQLite write lock.

    Only applies outside an enclosing transaction, where ``func`` owns its
    transaction and a retry starts from a clean state.
    """
    connection = transaction.get_connection()
    retry = connection.vendor == "sqlite" and not connection.in_atomic_block
    attempt = 0
    while True:
        try:
            return func(*args, **kwargs)
        except OperationalError as exc:
            attempt += 1
            if not retry or not is_lock_contention(exc) or attempt >= LOCK_RETRY_ATTEMPTS:
                raise
            logger.info(f"lock:contention attempt={attempt}: {exc}")
            time.sleep(min(LOCK_RETRY_DELAY * attempt, LOCK_RETRY_MAX_DELAY))


def is_overlap_violation(exc: BaseException) -> bool:
    """True when an IntegrityError comes from the no-overlap constraint."""

    for candidate in (exc, exc.__cause__):
        if candidate is not None and OVERLAP_CONSTRAINT_NAME in str(candidate):
            return True
    diag = getattr(exc.__cause__, "diag", None)
    return getattr(diag, "constraint_name", None) == OVERLAP_CONSTRAINT_NAME


def hold_window() -> timedelta:
    return timedelta(minutes=settings.BOOKING_HOLD_MINUTES)


# ============================================================================
# HOLDS
# ============================================================================

@dataclass
class HoldRequest:
    machine_id: int
    start_date: date
    end_date: date
    customer_name: str
    customer_email: str
    customer_phone: str
    customer_nif: str | None = None
    delivery_selected: bool = False
    pickup_selected: bool = False
    insurance_selected: bool = False
    operator_selected: bool = False
    equipment_addons: list[dict] = field(default_factory=list)
    site_address_line1: str | None = None
    site_address_postal_code: str | None = None
    site_address_city: str | None = None
    site_address_notes: str | None = None
    billing_is_business: bool = False
    billing_company_name: str | None = None
    billing_tax_id: str | None = None
    billing_address_line1: str | None = None
    billing_postal_code: str | None = None
    billing_city: str | None = None
    billing_country: str | None = None

    @property
    def site_address(self) -> str:
        parts = (self.site_address_line1, self.site_address_postal_code, self.site_address_city)
        return ", ".join(part.strip() for part in parts if part and part.strip())


@dataclass(frozen=True)
class HoldResult:
    booking_id: int
    hold_expires_at: datetime
    reused: bool
    totals: PricingTotals | None = None


def _load_bookable_machine(machine_id: int) -> Machine:
    machine = Machine.objects.filter(pk=machine_id).first()
    if machine is None or not machine.is_active:
        raise BookingValidationError("This machine is not available for booking.")
    if not machine.is_primary:
        raise BookingValidationError("Equipment add-ons cannot be booked on their own.")
    return machine


def _validate_request(request: HoldRequest, machine: Machine) -> None:
    if not (request.customer_name or "").strip():
        raise BookingValidationError("Please enter your name.")
    if not (request.customer_email or "").strip():
        raise BookingValidationError("Please enter your email.")
    if not (request.customer_phone or "").strip():
        raise BookingValidationError("Please enter your phone number.")
    if request.start_date > request.end_date:
        raise BookingValidationError("End date must be on or after the start date.")

    days = rental_days_inclusive(request.start_date, request.end_date)
    if days < machine.min_days:
        raise BookingValidationError(f"Minimum rental for this machine is {machine.min_days} day(s).")


def _check_lead_time(machine: Machine, start: date, now: datetime | None = None) -> None:
    if not machine.requires_heavy_transport:
        return
    check = validate_lead_time(start, now=now)
    if not check.ok:
        raise LeadTimeError(check.earliest_allowed_day, check.min_days)


def _equipment_items(selections: Iterable[dict]) -> list[PricingItem]:
    quantities: dict[str, int] = {}
    for selection in selections or []:
        code = str(selection.get("code", "")).strip()
        quantity = int(selection.get("quantity", 1) or 0)
        if not code or quantity <= 0:
            continue
        quantities[code] = quantities.get(code, 0) + quantity
    if not quantities:
        return []

    addons = {
        addon.code: addon
        for addon in Machine.objects.active().equipment_addons().filter(code__in=quantities)
    }
    missing = sorted(set(quantities) - set(addons))
    if missing:
        raise BookingValidationError(f"Unknown equipment add-on: {', '.join(missing)}.")

    return [
        PricingItem(
            description=addons[code].name,
            unit_price=addons[code].daily_rate,
            quantity=quantity,
            charge_model=addons[code].charge_model,
            reference=f"addon:{code}",
        )
        for code, quantity in sorted(quantities.items())
    ]


def company_discount_percentage(request: HoldRequest) -> Decimal:
    """Active negotiated discount for the billing NIF, else zero."""
    for nif in (request.billing_tax_id, request.customer_nif):
        discount = CompanyDiscount.objects.for_nif(nif).values_list("discount_percentage", flat=True).first()
        if discount is not None:
            return to_decimal(discount)
    return Decimal("0")


def build_pricing_for_request(request: HoldRequest, machine: Machine) -> PricingTotals:
    """Price the machine, its selected add-ons and services for the request dates."""

    days = rental_days_inclusive(request.start_date, request.end_date)
    items = [
        PricingItem(
            description=machine.name,
            unit_price=machine.daily_rate,
            quantity=1,
            charge_model=PER_DAY,
            reference=f"machine:{machine.code}",
            is_primary=True,
        )
    ]
    items.extend(_equipment_items(request.equipment_addons))
    context = PricingContext(
        rental_days=days,
        delivery_selected=request.delivery_selected,
        pickup_selected=request.pickup_selected,
        insurance_selected=request.insurance_selected,
        operator_selected=request.operator_selected,
        delivery_charge=machine.delivery_charge,
        pickup_charge=machine.pickup_charge,
        insurance_charge=to_decimal(settings.INSURANCE_CHARGE),
        operator_charge=to_decimal(settings.OPERATOR_CHARGE),
        discount_percentage=company_discount_percentage(request),
    )
    try:
        return compute_totals(context, items)
    except ValueError as exc:
        raise BookingValidationError(str(exc)) from exc


def _priced_fields(request: HoldRequest, totals: PricingTotals) -> dict:
    return {
        "delivery_selected": request.delivery_selected,
        "pickup_selected": request.pickup_selected,
        "insurance_selected": request.insurance_selected,
        "operator_selected": request.operator_selected,
        "equipment_addons": list(request.equipment_addons or []),
        "total_cost": totals.total,
        "discount_percentage": totals.discount_percentage,
        "original_subtotal_ex_vat_cents": totals.subtotal_cents,
        "discounted_subtotal_ex_vat_cents": totals.total_cents,
        "price_lines": [
            {
                "description": line.description,
                "amount_cents": line.amount_cents,
                "reference": line.reference,
                "is_primary": line.is_primary,
            }
            for line in totals.lines
        ],
    }


def _customer_fields(request: HoldRequest) -> dict:
    return {
        "customer_name": request.customer_name.strip(),
        "customer_email": request.customer_email.strip(),
        "customer_phone": request.customer_phone.strip(),
        "customer_nif": request.customer_nif or None,
        "site_address_line1": request.site_address_line1,
        "site_address_postal_code": request.site_address_postal_code,
        "site_address_city": request.site_address_city,
        "site_address_notes": request.site_address_notes,
        "billing_is_business": request.billing_is_business,
        "billing_company_name": request.billing_company_name,
        "billing_tax_id": request.billing_tax_id,
        "billing_address_line1": request.billing_address_line1,
        "billing_postal_code": request.billing_postal_code,
        "billing_city": request.billing_city,
        "billing_country": request.billing_country,
    }


def create_or_reuse_hold(request: HoldRequest, *, now: datetime | None = None) -> HoldResult:
    """
    Create a PENDING hold, or extend the caller's own hold for the same dates.

    Raises:
        BookingValidationError: bad input, lead time or service area
        OverlapError: another active booking holds overlapping dates
    """
    return run_with_lock_retry(_place_hold, request, now or timezone.now())


def _place_hold(request: HoldRequest, now: datetime) -> HoldResult:
    machine = _load_bookable_machine(request.machine_id)
    _validate_request(request, machine)
    _check_lead_time(machine, request.start_date, now)

    # Geocoding happens before any lock is taken
    area_message = check_service_area(
        delivery_selected=request.delivery_selected,
        pickup_selected=request.pickup_selected,
        site_address=request.site_address,
    )
    if area_message:
        raise ServiceAreaError(area_message)

    totals = build_pricing_for_request(request, machine)
    expires_at = now + hold_window()

    with transaction.atomic():
        lock_machine(machine.pk)

        existing = _lock_queryset_if_possible(
            Booking.objects.filter(
                machine_id=machine.pk,
                start_date=request.start_date,
                end_date=request.end_date,
                status=Booking.Status.PENDING,
                customer_email__iexact=request.customer_email.strip(),
            ).order_by("pk")
        ).first()

        if existing is not None:
            if existing.hold_expires_at is None or existing.hold_expires_at < expires_at:
                existing.hold_expires_at = expires_at
            for name, value in _priced_fields(request, totals).items():
                setattr(existing, name, value)
            existing.save()
            logger.info(
                f"hold:reused booking={existing.pk} machine={machine.pk} "
                f"expires_at={existing.hold_expires_at.isoformat()}"
            )
            return HoldResult(existing.pk, existing.hold_expires_at, True, totals)

        conflict = (
            Booking.objects.active()
            .filter(machine_id=machine.pk)
            .overlapping(request.start_date, request.end_date)
            .exists()
        )
        if conflict:
            logger.info(f"hold:overlap machine={machine.pk} {request.start_date}..{request.end_date}")
            raise OverlapError(machine.pk, request.start_date, request.end_date)

        try:
            with transaction.atomic():
                booking = Booking.objects.create(
                    machine=machine,
                    start_date=request.start_date,
                    end_date=request.end_date,
                    status=Booking.Status.PENDING,
                    hold_expires_at=expires_at,
                    **_customer_fields(request),
                    **_priced_fields(request, totals),
                )
        except IntegrityError as exc:
            if is_overlap_violation(exc):
                logger.info(f"hold:overlap_constraint machine={machine.pk}")
                raise OverlapError(machine.pk, request.start_date, request.end_date) from exc
            raise

    logger.info(
        f"hold:created booking={booking.pk} machine={machine.pk} "
        f"{booking.start_date}..{booking.end_date} total={booking.total_cost}"
    )
    return HoldResult(booking.pk, expires_at, False, totals)


def expire_stale_holds(now: datetime | None = None, grace: timedelta | None = None) -> int:
    """Cancel PENDING holds whose window (plus grace) has passed."""

    now = now or timezone.now()
    if grace is None:
        grace = timedelta(minutes=settings.BOOKING_HOLD_GRACE_MINUTES)

    cancelled = Booking.objects.filter(
        status=Booking.Status.PENDING,
        hold_expires_at__lt=now - grace,
    ).update(
        status=Booking.Status.CANCELLED,
        hold_expires_at=None,
        updated_at=now,
    )
    if cancelled:
        logger.info(f"hold:expired count={cancelled}")
    return cancelled


def cancel_pending_booking(booking_id: int, *, reason: str = "") -> bool:
    """PENDING -> CANCELLED; anything else is left alone."""

    changed = Booking.objects.filter(pk=booking_id, status=Booking.Status.PENDING).update(
        status=Booking.Status.CANCELLED,
        hold_expires_at=None,
        updated_at=timezone.now(),
    )
    logger.info(f"cancel:pending booking={booking_id} changed={changed} reason={reason or '-'}")
    return bool(changed)


# ============================================================================
# PROMOTION
# ============================================================================

class PromotionOutcome(str, Enum):
    NOT_FOUND = "not_found"
    ALREADY_CONFIRMED = "already_confirmed"
    PROMOTED = "promoted"
    SLOT_TAKEN = "slot_taken"


@dataclass(frozen=True)
class PromotionResult:
    outcome: PromotionOutcome
    booking_id: int

    @property
    def promoted(self) -> bool:
        return self.outcome == PromotionOutcome.PROMOTED


@dataclass(frozen=True)
class ConfirmedTotals:
    """Amounts reported by the payment provider, all optional."""

    total_cost: Decimal | None = None
    discount_percentage: Decimal | None = None
    original_subtotal_ex_vat_cents: int | None = None
    discounted_subtotal_ex_vat_cents: int | None = None


CONFIRMATION_JOBS = (
    BookingJob.JobType.ISSUE_INVOICE,
    BookingJob.JobType.SEND_CUSTOMER_CONFIRMATION,
    BookingJob.JobType.SEND_INTERNAL_CONFIRMATION,
)


def _apply_totals(booking: Booking, totals: ConfirmedTotals | None) -> list[str]:
    if totals is None:
        return []
    changed = []
    for name in (
        "total_cost",
        "discount_percentage",
        "original_subtotal_ex_vat_cents",
        "discounted_subtotal_ex_vat_cents",
    ):
        value = getattr(totals, name)
        if value is not None:
            setattr(booking, name, value)
            changed.append(name)
    return changed


def promote_booking_to_confirmed(
    booking_id: int,
    payment_intent_id: str | None = None,
    totals: ConfirmedTotals | None = None,
) -> PromotionResult:
    """
    Idempotently move a paid booking to CONFIRMED.

    The first transition enqueues the confirmation jobs and announces
    BookingConfirmed after commit. Later calls are no-ops, so duplicated or
    reordered payment events never duplicate side effects.
    """
    from .jobs import JobSpec, enqueue_booking_jobs

    with DjangoUnitOfWork() as uow:
        booking = _lock_queryset_if_possible(Booking.objects.filter(pk=booking_id)).first()
        if booking is None:
            logger.warning(f"promote:not_found booking={booking_id}")
            return PromotionResult(PromotionOutcome.NOT_FOUND, booking_id)

        if booking.status == Booking.Status.CONFIRMED and booking.deposit_paid:
            logger.info(f"promote:already_confirmed booking={booking_id}")
            return PromotionResult(PromotionOutcome.ALREADY_CONFIRMED, booking_id)

        revived = booking.status == Booking.Status.CANCELLED
        booking.status = Booking.Status.CONFIRMED
        booking.deposit_paid = True
        booking.total_paid = True
        booking.hold_expires_at = None
        if payment_intent_id:
            if not booking.stripe_payment_intent_id:
                booking.stripe_payment_intent_id = payment_intent_id
            elif booking.stripe_payment_intent_id != payment_intent_id:
                logger.warning(
                    f"promote:payment_intent_mismatch booking={booking_id} "
                    f"kept={booking.stripe_payment_intent_id} ignored={payment_intent_id}"
                )

        update_fields = [
            "status",
            "deposit_paid",
            "total_paid",
            "hold_expires_at",
            "stripe_payment_intent_id",
            "updated_at",
        ] + _apply_totals(booking, totals)

        try:
            with transaction.atomic():
                booking.save(update_fields=update_fields)
        except IntegrityError as exc:
            if revived and is_overlap_violation(exc):
                logger.warning(
                    f"promote:slot_taken booking={booking_id} machine={booking.machine_id} "
                    f"payment_intent={payment_intent_id}"
                )
                return PromotionResult(PromotionOutcome.SLOT_TAKEN, booking_id)
            raise

        pi = booking.stripe_payment_intent_id
        enqueue_booking_jobs(
            booking,
            [
                JobSpec(job_type, {"stripe_payment_intent_id": pi} if job_type == BookingJob.JobType.ISSUE_INVOICE else {})
                for job_type in CONFIRMATION_JOBS
            ],
        )
        uow.add_event(BookingConfirmed(booking_id=booking.pk, machine_id=booking.machine_id, source="payment"))

    logger.info(
        f"promote:updated booking={booking_id} payment_intent={pi} revived={revived}"
    )
    return PromotionResult(PromotionOutcome.PROMOTED, booking_id)
