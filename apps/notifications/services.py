"""Notification services for booking emails.

Every booking email is guarded by a timestamp column claimed with an
update-where-null, so concurrent job runs send each email at most once. A
failed send releases the claim and raises ``NotificationError`` so the job
is retried.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from django.conf import settings  # type: ignore
from django.core.mail import send_mail  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.html import escape, strip_tags  # type: ignore

from apps.bookings.models import Booking
from apps.bookings.pricing import euros_to_cents, vat_breakdown_cents

logger = logging.getLogger(__name__)

CUSTOMER = "customer"
OPS = "ops"


class NotificationError(Exception):
    """An email could not be delivered and should be retried."""


# ============================================================================
# EMAIL DELIVERY
# ============================================================================

def send_email_notification(
    recipients: str | Iterable[str],
    subject: str,
    *,
    html_message: str,
    text_message: str | None = None,
) -> bool:
    """
    Send one email.

    Returns:
        bool: True when the backend accepted the message
    """
    recipient_list = [recipients] if isinstance(recipients, str) else list(recipients)
    try:
        send_mail(
            subject=subject,
            message=text_message or strip_tags(html_message),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=recipient_list,
            html_message=html_message,
            fail_silently=False,
        )
        logger.info(f"Email sent successfully to {', '.join(recipient_list)}: {subject}")
        return True

    except Exception as e:
        logger.error(f"Failed to send email to {', '.join(recipient_list)}: {e}", exc_info=True)
        return False


# ============================================================================
# CLAIMS
# ============================================================================

def _claim(booking_id: int, field: str, stamp: datetime, *, also: Iterable[str] = ()) -> bool:
    """Set ``field`` (and any still-empty ``also`` fields) only if ``field`` is empty."""

    updates = {field: stamp}
    booking = Booking.objects.filter(pk=booking_id).values(*also).first() if also else {}
    for extra in also:
        if booking and booking.get(extra) is None:
            updates[extra] = stamp
    claimed = Booking.objects.filter(pk=booking_id, **{f"{field}__isnull": True}).update(**updates)
    return bool(claimed)


def _release(booking_id: int, fields: Iterable[str], stamp: datetime) -> None:
    for field in fields:
        Booking.objects.filter(pk=booking_id, **{field: stamp}).update(**{field: None})


def _deliver_claimed(booking_id: int, fields: Iterable[str], stamp: datetime, recipients, subject, html) -> str:
    if send_email_notification(recipients, subject, html_message=html):
        return "sent"
    _release(booking_id, fields, stamp)
    raise NotificationError(f"Email '{subject}' to {recipients} failed for booking {booking_id}")


# ============================================================================
# BOOKING EMAILS
# ============================================================================

def _money(cents: int) -> str:
    return f"{cents / 100:.2f}"


def _totals_view(booking: Booking) -> dict:
    net_cents = booking.discounted_subtotal_ex_vat_cents
    if net_cents is None:
        net_cents = euros_to_cents(booking.total_cost)
    vat = vat_breakdown_cents(net_cents, settings.VAT_PERCENT)
    return {
        "subtotal_ex_vat": _money(vat.net_cents),
        "vat_amount": _money(vat.vat_cents),
        "total_incl_vat": _money(vat.gross_cents),
    }


def _addons_list(booking: Booking) -> str:
    selected = [
        label
        for label, enabled in (
            ("Operator", booking.operator_selected),
            ("Insurance", booking.insurance_selected),
            ("Delivery", booking.delivery_selected),
            ("Pickup", booking.pickup_selected),
        )
        if enabled
    ]
    return " · ".join(selected) if selected else "None"


def _site_address(booking: Booking) -> str:
    return escape(", ".join(part for part in (booking.site_address_line1, booking.site_address_city) if part))


def _customer_confirmed_html(booking: Booking) -> str:
    totals = _totals_view(booking)
    invoice_block = ""
    if booking.has_invoice:
        invoice_block = f'<p>Your invoice {booking.invoice_number} is ready: <a href="{booking.invoice_pdf_url}">download PDF</a>.</p>'
    return f"""
    <html>
    <body>
        <h2>Hello {escape(booking.customer_name)},</h2>
        <p>Your booking is confirmed.</p>

        <h3>Booking details:</h3>
        <ul>
            <li><strong>Booking:</strong> #{booking.pk}</li>
            <li><strong>Machine:</strong> {escape(booking.machine.name)}</li>
            <li><strong>Dates:</strong> {booking.start_date.isoformat()} to {booking.end_date.isoformat()} ({booking.rental_days} day(s))</li>
            <li><strong>Site:</strong> {_site_address(booking) or "-"}</li>
            <li><strong>Subtotal (ex VAT):</strong> € {totals['subtotal_ex_vat']}</li>
            <li><strong>VAT:</strong> € {totals['vat_amount']}</li>
            <li><strong>Total paid:</strong> € {totals['total_incl_vat']}</li>
        </ul>
        {invoice_block}
        <p>We will contact you before the start date to arrange delivery.</p>
    </body>
    </html>
    """


def _internal_confirmed_html(booking: Booking) -> str:
    totals = _totals_view(booking)
    notes = f"<p><strong>Ops notes:</strong> {escape(booking.ops_notes)}</p>" if booking.ops_notes else ""
    return f"""
    <html>
    <body>
        <h2>New CONFIRMED booking #{booking.pk}</h2>
        <ul>
            <li><strong>Machine:</strong> {escape(booking.machine.name)} (#{booking.machine_id})</li>
            <li><strong>Dates:</strong> {booking.start_date.isoformat()} to {booking.end_date.isoformat()} ({booking.rental_days} day(s))</li>
            <li><strong>Customer:</strong> {escape(booking.customer_name)} / {escape(booking.customer_email)} / {escape(booking.customer_phone)}</li>
            <li><strong>Site:</strong> {_site_address(booking) or "-"}</li>
            <li><strong>Add-ons:</strong> {_addons_list(booking)}</li>
            <li><strong>Total (incl. VAT):</strong> € {totals['total_incl_vat']}</li>
            <li><strong>Invoice:</strong> {booking.invoice_number or "pending"}</li>
        </ul>
        {notes}
    </body>
    </html>
    """


def _invoice_ready_html(booking: Booking) -> str:
    return f"""
    <html>
    <body>
        <h2>Hello {escape(booking.customer_name)},</h2>
        <p>The invoice for booking #{booking.pk} ({escape(booking.machine.name)}) is ready.</p>
        <p><a href="{booking.invoice_pdf_url}">Download invoice {booking.invoice_number}</a></p>
    </body>
    </html>
    """


def send_booking_confirmed(booking_id: int, audience: str = CUSTOMER) -> str:
    """
    Send the confirmation email to the customer or to operations.

    A customer confirmation sent after the invoice exists carries the
    invoice link and also claims the invoice email, so the customer gets
    at most two emails.
    """
    booking = Booking.objects.select_related("machine").filter(pk=booking_id).first()
    if booking is None:
        return "skipped:not_found"

    stamp = timezone.now()
    if audience == OPS:
        if not settings.EMAIL_ADMIN_TO:
            return "skipped:no_recipients"
        if not _claim(booking_id, "internal_email_sent_at", stamp):
            return "skipped:already_sent"
        subject = (
            f"New CONFIRMED booking #{booking.pk}: {booking.machine.name} · "
            f"{booking.start_date.isoformat()} to {booking.end_date.isoformat()}"
        )
        return _deliver_claimed(
            booking_id,
            ["internal_email_sent_at"],
            stamp,
            settings.EMAIL_ADMIN_TO,
            subject,
            _internal_confirmed_html(booking),
        )

    if not booking.customer_email or booking.is_internal_placeholder:
        return "skipped:internal_address"

    also = ("invoice_email_sent_at",) if booking.has_invoice else ()
    if not _claim(booking_id, "confirmation_email_sent_at", stamp, also=also):
        return "skipped:already_sent"
    return _deliver_claimed(
        booking_id,
        ["confirmation_email_sent_at", *also],
        stamp,
        booking.customer_email,
        "Your booking is confirmed: next steps",
        _customer_confirmed_html(booking),
    )


def send_invoice_ready(booking_id: int) -> str:
    booking = Booking.objects.select_related("machine").filter(pk=booking_id).first()
    if booking is None:
        return "skipped:not_found"
    if not booking.has_invoice:
        raise NotificationError(f"Invoice for booking {booking_id} is not ready yet")
    if not booking.customer_email or booking.is_internal_placeholder:
        return "skipped:internal_address"

    stamp = timezone.now()
    if not _claim(booking_id, "invoice_email_sent_at", stamp):
        return "skipped:already_sent"
    return _deliver_claimed(
        booking_id,
        ["invoice_email_sent_at"],
        stamp,
        booking.customer_email,
        f"Invoice {booking.invoice_number} for your booking #{booking.pk}",
        _invoice_ready_html(booking),
    )
