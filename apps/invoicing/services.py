"""Invoice issuance for confirmed bookings."""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from django.conf import settings  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.dates import today_lisbon
from apps.bookings.pricing import euros_to_cents

from .mapping import BookingFacts, FactsLine, build_invoice_input
from .provider import Address, Customer, InvoiceRecord, InvoicingProvider
from .vendus import VendusProvider

if TYPE_CHECKING:  # pragma: no cover
    from apps.bookings.models import Booking

logger = logging.getLogger(__name__)


def get_invoicing_provider() -> InvoicingProvider:
    return VendusProvider()


def _billing_customer(booking: "Booking") -> Customer:
    """Business bookings bill the company; otherwise the person, at the site when a NIF is given."""

    if booking.billing_is_business:
        address = None
        if booking.billing_address_line1:
            address = Address(
                line1=booking.billing_address_line1,
                city=booking.billing_city or "",
                postal_code=booking.billing_postal_code or "",
                country=booking.billing_country or "PT",
            )
        return Customer(
            name=booking.billing_company_name or booking.customer_name,
            email=booking.customer_email,
            nif=booking.billing_tax_id or booking.customer_nif,
            address=address,
        )

    address = None
    if booking.customer_nif and booking.site_address_line1:
        address = Address(
            line1=booking.site_address_line1,
            city=booking.site_address_city or "",
            postal_code=booking.site_address_postal_code or "",
        )
    return Customer(
        name=booking.customer_name,
        email=booking.customer_email,
        nif=booking.customer_nif,
        address=address,
    )


def booking_facts(booking: "Booking") -> BookingFacts:
    lines = [
        FactsLine(
            description=line.get("description", ""),
            amount_cents=int(line.get("amount_cents", 0)),
            reference=line.get("reference", ""),
            is_primary=bool(line.get("is_primary")),
        )
        for line in booking.price_lines or []
    ]
    return BookingFacts(
        booking_id=booking.pk,
        machine_name=booking.machine.name,
        start_date=booking.start_date,
        end_date=booking.end_date,
        rental_days=booking.rental_days,
        unit_daily_cents=euros_to_cents(booking.machine.daily_rate),
        customer=_billing_customer(booking),
        lines=lines,
        vat_percent=settings.VAT_PERCENT,
        original_subtotal_ex_vat_cents=booking.original_subtotal_ex_vat_cents,
        discounted_subtotal_ex_vat_cents=booking.discounted_subtotal_ex_vat_cents,
    )


def maybe_issue_invoice(
    facts: BookingFacts,
    payment_intent_id: str,
    *,
    issued_on: date | None = None,
    notes: str | None = None,
    provider: InvoicingProvider | None = None,
) -> InvoiceRecord | None:
    """
    Issue the invoice unless invoicing is switched off.

    Returns None when INVOICING_ENABLED is false. Provider failures raise.
    """
    if not settings.INVOICING_ENABLED:
        return None

    invoice = build_invoice_input(
        facts,
        payment_intent_id=payment_intent_id,
        issued_on=issued_on or today_lisbon(),
        notes=notes,
    )
    provider = provider or get_invoicing_provider()
    return provider.create_invoice(invoice)


def persist_invoice(booking: "Booking", record: InvoiceRecord) -> None:
    booking.invoice_provider = record.provider
    booking.invoice_provider_id = record.provider_invoice_id
    booking.invoice_number = record.number
    booking.invoice_pdf_url = record.pdf_url
    booking.invoice_atcud = record.atcud
    booking.updated_at = timezone.now()
    booking.save(
        update_fields=[
            "invoice_provider",
            "invoice_provider_id",
            "invoice_number",
            "invoice_pdf_url",
            "invoice_atcud",
            "updated_at",
        ]
    )
    logger.info(f"invoice:issued booking={booking.pk} provider={record.provider} number={record.number}")
