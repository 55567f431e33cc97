"""
Stripe event reconciliation.

Turns provider events into booking state. Each event id is recorded before
its payload is read, so redeliveries are skipped. Every transition is a
status-guarded update, so events for the same booking may arrive in any
order and any number of times.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

import stripe
from django.db import DatabaseError, IntegrityError, transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.models import Booking
from apps.bookings.pricing import cents_to_euros
from apps.bookings.services import (
    ConfirmedTotals,
    _lock_queryset_if_possible,
    cancel_pending_booking,
    promote_booking_to_confirmed,
)

from . import gateway
from .models import StripeEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    event_id: str
    event_type: str
    outcome: str
    booking_id: int | None = None

    def as_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "type": self.event_type,
            "outcome": self.outcome,
            "booking_id": self.booking_id,
        }


# ============================================================================
# PAYLOAD HELPERS
# ============================================================================

def parse_id_like(value: Any) -> int | None:
    """First integer inside ``value`` ("booking-123" -> 123)."""
    if value is None:
        return None
    match = re.search(r"\d+", str(value))
    return int(match.group(0)) if match else None


def _object_id(value: Any) -> str | None:
    """Stripe fields hold either an id string or an expanded object."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


def _metadata(obj: dict) -> dict:
    return obj.get("metadata") or {}


def booking_id_from_session(session: dict) -> int | None:
    booking_id = parse_id_like(_metadata(session).get("bookingId"))
    if booking_id is not None:
        return booking_id
    return parse_id_like(session.get("client_reference_id"))


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def totals_from_session(session: dict) -> ConfirmedTotals:
    meta = _metadata(session)
    discount = None
    if meta.get("discount_percent") not in (None, ""):
        try:
            discount = Decimal(str(meta["discount_percent"]))
        except InvalidOperation:
            logger.warning(f"session:bad_discount_percent session={session.get('id')} value={meta['discount_percent']}")

    original = _int_or_none(meta.get("original_subtotal_cents"))
    discounted = _int_or_none(meta.get("discounted_subtotal_cents"))
    paid_net = discounted if discounted is not None else _int_or_none(session.get("amount_subtotal"))
    return ConfirmedTotals(
        total_cost=cents_to_euros(paid_net) if paid_net is not None else None,
        discount_percentage=discount,
        original_subtotal_ex_vat_cents=original,
        discounted_subtotal_ex_vat_cents=discounted,
    )


def payment_intent_from_session(session: dict) -> str | None:
    """The session's payment intent, expanding the session once if Stripe left it out."""
    direct = _object_id(session.get("payment_intent"))
    if direct or not session.get("id"):
        return direct
    try:
        fresh = gateway.retrieve_checkout_session(session["id"], expand=["payment_intent"])
    except stripe.StripeError as e:
        logger.warning(f"session:pi_expand_failed session={session['id']}: {e}")
        return None
    return _object_id(fresh.get("payment_intent"))


# ============================================================================
# DEDUP
# ============================================================================

def record_event(event_id: str, event_type: str) -> bool | None:
    """
    Insert the dedup row.

    Returns:
        True when this is the first delivery, False for a duplicate and None
        when the row could not be written for another reason.
    """
    try:
        with transaction.atomic():
            StripeEvent.objects.create(event_id=event_id, type=event_type)
        return True
    except IntegrityError:
        return False
    except DatabaseError as e:
        logger.error(f"webhook:dedup_write_failed event={event_id} type={event_type}: {e}", exc_info=True)
        return None


def _finish_event(event_id: str, outcome: str, booking_id: int | None) -> None:
    StripeEvent.objects.filter(event_id=event_id).update(
        outcome=outcome[:40],
        booking_id=booking_id if booking_id and Booking.objects.filter(pk=booking_id).exists() else None,
    )


# ============================================================================
# HANDLERS
# ============================================================================

def _promote(booking_id: int, payment_intent_id: str | None, totals: ConfirmedTotals | None = None) -> str:
    result = promote_booking_to_confirmed(booking_id, payment_intent_id, totals)
    return result.outcome.value


def on_checkout_session_completed(event: dict) -> tuple[str, int | None]:
    session = event["data"]["object"]
    booking_id = booking_id_from_session(session)
    if booking_id is None:
        logger.warning(f"completed:no_booking_id session={session.get('id')}")
        return "no_booking", None

    payment_status = session.get("payment_status")
    if payment_status != "paid":
        # Delayed methods finish later through async_payment_succeeded
        logger.info(f"completed:awaiting_payment booking={booking_id} payment_status={payment_status}")
        return "awaiting_payment", booking_id

    pi = payment_intent_from_session(session)
    return _promote(booking_id, pi, totals_from_session(session)), booking_id


def on_async_payment_succeeded(event: dict) -> tuple[str, int | None]:
    session = event["data"]["object"]
    booking_id = booking_id_from_session(session)
    if booking_id is None:
        logger.warning(f"async_succeeded:no_booking_id session={session.get('id')}")
        return "no_booking", None
    pi = payment_intent_from_session(session)
    return _promote(booking_id, pi, totals_from_session(session)), booking_id


def on_session_not_paid(event: dict) -> tuple[str, int | None]:
    """checkout.session.expired and checkout.session.async_payment_failed."""
    session = event["data"]["object"]
    booking_id = booking_id_from_session(session)
    if booking_id is None:
        return "no_booking", None
    changed = cancel_pending_booking(booking_id, reason=event["type"])
    return ("cancelled" if changed else "noop"), booking_id


def on_payment_intent_succeeded(event: dict) -> tuple[str, int | None]:
    intent = event["data"]["object"]
    booking_id = parse_id_like(_metadata(intent).get("bookingId"))
    if booking_id is None:
        logger.warning(f"pi.succeeded:no_booking_id pi={intent.get('id')}")
        return "no_booking", None
    return _promote(booking_id, intent.get("id")), booking_id


def on_payment_intent_failed(event: dict) -> tuple[str, int | None]:
    intent = event["data"]["object"]
    booking_id = parse_id_like(_metadata(intent).get("bookingId"))
    if booking_id is None:
        return "no_booking", None
    changed = cancel_pending_booking(booking_id, reason=event["type"])
    return ("cancelled" if changed else "noop"), booking_id


def refund_status_for(amount_refunded: int, amount: int | None) -> str:
    if amount_refunded <= 0:
        return Booking.RefundStatus.NONE
    if amount is not None and amount_refunded >= amount:
        return Booking.RefundStatus.FULL
    return Booking.RefundStatus.PARTIAL


def _refund_ids(charge: dict) -> list[str]:
    refunds = charge.get("refunds")
    if not refunds or isinstance(refunds, str):
        return []
    return [refund["id"] for refund in refunds.get("data") or [] if refund.get("id")]


def on_refund(event: dict) -> tuple[str, int | None]:
    """charge.refunded and charge.refund.updated: resync from the authoritative charge."""
    obj = event["data"]["object"]
    if event["type"] == "charge.refunded":
        charge_id = obj.get("id")
        extra_refund_ids: list[str] = []
    else:
        charge_id = _object_id(obj.get("charge"))
        extra_refund_ids = [obj["id"]] if obj.get("id") else []

    if not charge_id:
        logger.warning(f"refund:no_charge event={event['id']}")
        return "no_charge", None

    try:
        charge = gateway.retrieve_charge(charge_id)
    except stripe.StripeError as e:
        if event["type"] != "charge.refunded":
            logger.error(f"refund:charge_fetch_failed charge={charge_id}: {e}")
            return "error", None
        logger.warning(f"refund:charge_fetch_failed charge={charge_id}, using event payload: {e}")
        charge = obj

    pi = _object_id(charge.get("payment_intent"))
    if not pi:
        logger.warning(f"refund:skip_no_pi charge={charge_id}")
        return "no_booking", None

    amount_refunded = int(charge.get("amount_refunded") or 0)
    amount = _int_or_none(charge.get("amount"))
    status = refund_status_for(amount_refunded, amount)
    incoming = _refund_ids(charge) + extra_refund_ids

    with transaction.atomic():
        booking = _lock_queryset_if_possible(Booking.objects.for_payment_intent(pi)).first()
        if booking is None:
            logger.warning(f"refund:booking_not_found pi={pi} charge={charge_id}")
            return "no_booking", None

        merged = list(booking.refund_ids or [])
        for refund_id in incoming:
            if refund_id not in merged:
                merged.append(refund_id)

        booking.refunded_amount_cents = amount_refunded
        booking.refund_status = status
        booking.refund_ids = merged
        booking.stripe_charge_id = booking.stripe_charge_id or charge.get("id") or charge_id
        booking.save(
            update_fields=["refunded_amount_cents", "refund_status", "refund_ids", "stripe_charge_id", "updated_at"]
        )

    logger.info(
        f"refund:booking_updated booking={booking.pk} refunded={amount_refunded} "
        f"status={status} refund_ids={len(merged)}"
    )
    return "refund_synced", booking.pk


DISPUTE_CLOSED_STATUSES = {
    "won": Booking.DisputeStatus.WON,
    "warning_closed": Booking.DisputeStatus.WON,
    "lost": Booking.DisputeStatus.LOST,
    "charge_refunded": Booking.DisputeStatus.LOST,
}


def _booking_for_dispute(dispute: dict) -> tuple[Booking | None, str | None]:
    pi = _object_id(dispute.get("payment_intent"))
    charge_id = _object_id(dispute.get("charge"))
    if not pi and charge_id:
        try:
            pi = _object_id(gateway.retrieve_charge(charge_id).get("payment_intent"))
        except stripe.StripeError as e:
            logger.warning(f"dispute:charge_fetch_failed charge={charge_id}: {e}")
    if not pi:
        return None, charge_id
    return Booking.objects.for_payment_intent(pi).first(), charge_id


def on_dispute(event: dict) -> tuple[str, int | None]:
    """Disputes only touch the dispute fields; booking status never changes."""
    dispute = event["data"]["object"]
    booking, charge_id = _booking_for_dispute(dispute)
    if booking is None:
        logger.warning(f"dispute:booking_not_found dispute={dispute.get('id')}")
        return "no_booking", None

    booking.dispute_id = dispute.get("id")
    booking.stripe_charge_id = booking.stripe_charge_id or charge_id
    if event["type"] == "charge.dispute.created":
        booking.dispute_status = Booking.DisputeStatus.OPEN
        booking.dispute_reason = dispute.get("reason") or booking.dispute_reason
        outcome = "dispute_opened"
    else:
        status = (dispute.get("status") or "").lower()
        booking.dispute_status = DISPUTE_CLOSED_STATUSES.get(status, Booking.DisputeStatus.LOST)
        booking.dispute_reason = booking.dispute_reason or dispute.get("reason")
        created = event.get("created")
        booking.dispute_closed_at = (
            datetime.fromtimestamp(created, tz=dt_timezone.utc) if created else timezone.now()
        )
        outcome = "dispute_closed"

    booking.save(
        update_fields=[
            "dispute_id",
            "dispute_status",
            "dispute_reason",
            "dispute_closed_at",
            "stripe_charge_id",
            "updated_at",
        ]
    )
    logger.info(f"dispute:updated booking={booking.pk} dispute={booking.dispute_id} status={booking.dispute_status}")
    return outcome, booking.pk


EVENT_HANDLERS: dict[str, Callable[[dict], tuple[str, int | None]]] = {
    "checkout.session.completed": on_checkout_session_completed,
    "checkout.session.async_payment_succeeded": on_async_payment_succeeded,
    "checkout.session.async_payment_failed": on_session_not_paid,
    "checkout.session.expired": on_session_not_paid,
    "payment_intent.succeeded": on_payment_intent_succeeded,
    "payment_intent.payment_failed": on_payment_intent_failed,
    "charge.refunded": on_refund,
    "charge.refund.updated": on_refund,
    "charge.dispute.created": on_dispute,
    "charge.dispute.closed": on_dispute,
}


def handle_event(event: dict) -> ReconcileResult:
    """
    Record, dispatch and soft-fail one verified Stripe event.

    Never raises; internal errors are logged and reported as ``error`` so
    the webhook still acknowledges the delivery.
    """
    event_id = event.get("id") or ""
    event_type = event.get("type") or ""

    recorded = record_event(event_id, event_type)
    if recorded is False:
        logger.info(f"webhook:duplicate_event event={event_id} type={event_type}")
        return ReconcileResult(event_id, event_type, "duplicate")

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        if recorded:
            _finish_event(event_id, "ignored", None)
        return ReconcileResult(event_id, event_type, "ignored")

    booking_id = None
    try:
        outcome, booking_id = handler(event)
    except Exception as e:
        logger.error(
            f"webhook:handler_failed event={event_id} type={event_type} booking={booking_id}: {e}",
            exc_info=True,
        )
        outcome = "error"

    if recorded:
        try:
            _finish_event(event_id, outcome, booking_id)
        except DatabaseError as e:
            logger.error(f"webhook:dedup_update_failed event={event_id}: {e}")

    logger.info(f"webhook:handled event={event_id} type={event_type} booking={booking_id} outcome={outcome}")
    return ReconcileResult(event_id, event_type, outcome, booking_id)


# ============================================================================
# ENSURE CONFIRMED (success page)
# ============================================================================

def ensure_confirmed(booking_id: int, session_id: str) -> str:
    """
    Promote ``booking_id`` if its Checkout Session is paid.

    Used by the post-payment landing page so a slow webhook never leaves a
    paid customer looking at a pending booking. Goes through the same
    idempotent promotion as the webhook.

    Returns:
        str: a PromotionOutcome value, or "unpaid", "mismatch", "error"
    """
    try:
        session = gateway.retrieve_checkout_session(session_id)
    except stripe.StripeError as e:
        logger.error(f"ensure:session_fetch_failed booking={booking_id} session={session_id}: {e}")
        return "error"

    if booking_id_from_session(session) != booking_id:
        logger.warning(f"ensure:mismatch booking={booking_id} session={session_id}")
        return "mismatch"
    if session.get("payment_status") != "paid":
        return "unpaid"

    pi = payment_intent_from_session(session)
    outcome = _promote(booking_id, pi, totals_from_session(session))
    logger.info(f"ensure:done booking={booking_id} outcome={outcome}")
    return outcome
