"""Thin wrapper over the Stripe SDK.

Everything the reconciler needs from Stripe goes through here, so tests
patch one module instead of the SDK.
"""

from __future__ import annotations

import json
import logging

import stripe
from django.conf import settings  # type: ignore

from apps.bookings.pricing import euros_to_cents

logger = logging.getLogger(__name__)

SignatureVerificationError = stripe.SignatureVerificationError


def verify_webhook(payload: bytes, signature_header: str | None) -> dict:
    """
    Check the ``Stripe-Signature`` header and return the event as a dict.

    Raises:
        SignatureVerificationError: missing, malformed, stale or wrong signature
    """
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise SignatureVerificationError(f"Payload is not UTF-8: {e}", signature_header) from e
    if not signature_header:
        raise SignatureVerificationError("Missing Stripe-Signature header", signature_header, text)

    stripe.WebhookSignature.verify_header(
        text,
        signature_header,
        settings.STRIPE_WEBHOOK_SECRET,
        settings.STRIPE_WEBHOOK_TOLERANCE,
    )
    try:
        return json.loads(text)
    except ValueError as e:
        raise SignatureVerificationError(f"Signed payload is not JSON: {e}", signature_header, text) from e


def retrieve_charge(charge_id: str):
    return stripe.Charge.retrieve(charge_id, expand=["refunds"], api_key=settings.STRIPE_SECRET_KEY)


def retrieve_checkout_session(session_id: str, *, expand: list[str] | None = None):
    return stripe.checkout.Session.retrieve(
        session_id,
        expand=expand or [],
        api_key=settings.STRIPE_SECRET_KEY,
    )


# ============================================================================
# CHECKOUT
# ============================================================================

def checkout_enabled() -> bool:
    return bool(settings.STRIPE_SECRET_KEY)


def _days_label(days: int) -> str:
    return f"{days} day{'' if days == 1 else 's'}"


def checkout_session_params(booking) -> dict:
    """
    Checkout Session parameters charging the booking's stored net total.

    The metadata carries everything the reconciler reads back: the booking id
    (also mirrored onto the PaymentIntent) and the discount snapshot.
    """
    start = booking.start_date.isoformat()
    end = booking.end_date.isoformat()
    net_cents = booking.discounted_subtotal_ex_vat_cents
    if net_cents is None:
        net_cents = euros_to_cents(booking.total_cost)
    original_cents = booking.original_subtotal_ex_vat_cents
    if original_cents is None:
        original_cents = net_cents

    metadata = {
        "bookingId": str(booking.pk),
        "machineId": str(booking.machine_id),
        "startDate": start,
        "endDate": end,
        "flow": "full_upfront",
        "discount_percent": str(booking.discount_percentage),
        "original_subtotal_cents": str(original_cents),
        "discounted_subtotal_cents": str(net_cents),
    }
    line_item = {
        "price_data": {
            "currency": settings.CHECKOUT_CURRENCY,
            "unit_amount": net_cents,
            "tax_behavior": "exclusive",
            "product_data": {
                "name": f"Rental - {booking.machine.name}",
                "description": f"{start} to {end} ({_days_label(booking.rental_days)})",
            },
        },
        "quantity": 1,
    }
    if settings.STRIPE_TAX_RATE_ID:
        line_item["tax_rates"] = [settings.STRIPE_TAX_RATE_ID]

    app_url = settings.PUBLIC_APP_URL
    return {
        "mode": "payment",
        "locale": "en",
        "customer_creation": "always",
        "customer_email": booking.customer_email,
        "client_reference_id": str(booking.pk),
        "metadata": metadata,
        "payment_intent_data": {"metadata": dict(metadata)},
        "line_items": [line_item],
        "success_url": f"{app_url}/booking/success?session_id={{CHECKOUT_SESSION_ID}}&booking_id={booking.pk}",
        "cancel_url": f"{app_url}/machine/{booking.machine_id}?checkout=cancelled",
    }


def create_checkout_session(booking):
    """
    Open a Checkout Session for a PENDING hold.

    Keyed on the hold's expiry and amount, so a double submit returns the
    same session while a refreshed hold gets a new one.

    Raises:
        stripe.StripeError: Stripe refused or could not be reached
    """
    params = checkout_session_params(booking)
    expires = int(booking.hold_expires_at.timestamp()) if booking.hold_expires_at else 0
    idempotency_key = f"booking-{booking.pk}-full-{params['metadata']['discounted_subtotal_cents']}-{expires}"
    session = stripe.checkout.Session.create(
        api_key=settings.STRIPE_SECRET_KEY,
        idempotency_key=idempotency_key,
        **params,
    )
    logger.info(f"checkout:created booking={booking.pk} session={session['id']}")
    return session
