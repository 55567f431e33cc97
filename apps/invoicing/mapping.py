"""Booking facts to invoice input.

Pure integer-cent maths. The discount is spread across lines in proportion
to their amounts and the result must match what the customer paid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from apps.bookings.pricing import allocate_discount_cents

from .exceptions import InvoiceMismatchError, InvoicingError
from .provider import Customer, InvoiceCreateInput, InvoiceLine

logger = logging.getLogger(__name__)

# Largest tolerated gap between invoice net and paid net, in cents
TOTAL_TOLERANCE_CENTS = 1


@dataclass(frozen=True)
class FactsLine:
    description: str
    amount_cents: int
    reference: str = ""
    is_primary: bool = False


@dataclass(frozen=True)
class BookingFacts:
    """Everything the invoice needs, detached from the ORM."""

    booking_id: int
    machine_name: str
    start_date: date
    end_date: date
    rental_days: int
    unit_daily_cents: int
    customer: Customer
    lines: list[FactsLine] = field(default_factory=list)
    vat_percent: int = 23
    original_subtotal_ex_vat_cents: int | None = None
    discounted_subtotal_ex_vat_cents: int | None = None


def rental_description(name: str, days: int, start: date, end: date) -> str:
    unit = "day" if days == 1 else "days"
    return f"{name} - {days} {unit} ({start.isoformat()} to {end.isoformat()})"


def _base_lines(facts: BookingFacts) -> list[InvoiceLine]:
    if not facts.lines:
        return [
            InvoiceLine(
                description=rental_description(facts.machine_name, facts.rental_days, facts.start_date, facts.end_date),
                quantity=1,
                unit_price_cents=facts.unit_daily_cents * facts.rental_days,
                vat_percent=facts.vat_percent,
                reference=f"booking:{facts.booking_id}:machine",
            )
        ]

    lines = []
    for line in facts.lines:
        description = line.description
        if line.is_primary:
            description = rental_description(line.description, facts.rental_days, facts.start_date, facts.end_date)
        # Collapsed to quantity 1 so the discount can be taken off whole line totals
        lines.append(
            InvoiceLine(
                description=description,
                quantity=1,
                unit_price_cents=line.amount_cents,
                vat_percent=facts.vat_percent,
                reference=line.reference,
            )
        )
    return lines


def build_invoice_input(
    facts: BookingFacts,
    *,
    payment_intent_id: str,
    issued_on: date,
    notes: str | None = None,
) -> InvoiceCreateInput:
    lines = _base_lines(facts)

    original = facts.original_subtotal_ex_vat_cents
    discounted = facts.discounted_subtotal_ex_vat_cents
    if original and discounted and original > discounted:
        shares = allocate_discount_cents([line.net_cents for line in lines], original - discounted)
        lines = [
            InvoiceLine(
                description=line.description,
                quantity=line.quantity,
                unit_price_cents=max(0, line.unit_price_cents - share),
                vat_percent=line.vat_percent,
                reference=line.reference,
                vat_exemption_code=line.vat_exemption_code,
            )
            for line, share in zip(lines, shares)
        ]

    invoice_net = sum(line.net_cents for line in lines)
    expected = discounted if discounted is not None else original
    if not expected:
        logger.error(
            f"invoice:missing_totals booking={facts.booking_id} invoice_net={invoice_net} "
            f"original={original} discounted={discounted}"
        )
        raise InvoicingError(f"Cannot validate invoice total for booking {facts.booking_id}: missing subtotals")

    if abs(invoice_net - expected) > TOTAL_TOLERANCE_CENTS:
        logger.error(
            f"invoice:mismatch booking={facts.booking_id} expected={expected} "
            f"invoice_net={invoice_net} lines={len(lines)}"
        )
        raise InvoiceMismatchError(facts.booking_id, expected, invoice_net)

    return InvoiceCreateInput(
        idempotency_key=f"booking:{facts.booking_id}:pi:{payment_intent_id}",
        external_ref=payment_intent_id,
        issued_on=issued_on,
        customer=facts.customer,
        lines=lines,
        notes=notes,
    )
