"""Pricing engine for rental carts.

Pure and deterministic: the same inputs give the same breakdown on the
estimate endpoint and on the authoritative checkout path. Amounts are
pre-VAT euros as ``Decimal``; VAT and invoice maths run in integer cents so
they match what Stripe Tax and the invoicing provider compute.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

# Charge models, identical to Machine.ChargeModel values
PER_BOOKING = "per_booking"
PER_UNIT = "per_unit"
PER_DAY = "per_day"
CHARGE_MODELS = (PER_BOOKING, PER_UNIT, PER_DAY)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    # str() keeps floats such as 0.1 from dragging binary noise along
    return Decimal(str(value))


def quantize_euros(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def euros_to_cents(value) -> int:
    return int((to_decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_euros(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


@dataclass(frozen=True)
class PricingItem:
    """One cart line before pricing."""

    description: str
    unit_price: Decimal
    quantity: int = 1
    charge_model: str = PER_DAY
    reference: str = ""
    is_primary: bool = False

    def __post_init__(self) -> None:
        if self.charge_model not in CHARGE_MODELS:
            raise ValueError(f"Unknown charge model: {self.charge_model}")
        if self.quantity < 0:
            raise ValueError("Quantity cannot be negative")


@dataclass(frozen=True)
class PricingContext:
    """Rental duration, service add-ons and the discount for one cart."""

    rental_days: int
    delivery_selected: bool = False
    pickup_selected: bool = False
    insurance_selected: bool = False
    operator_selected: bool = False
    delivery_charge: Decimal = ZERO
    pickup_charge: Decimal = ZERO
    # None means "price to be confirmed": selected but not charged
    insurance_charge: Decimal | None = None
    operator_charge: Decimal = ZERO
    discount_percentage: Decimal = ZERO


@dataclass(frozen=True)
class PricedLine:
    description: str
    amount: Decimal
    reference: str = ""
    is_primary: bool = False

    @property
    def amount_cents(self) -> int:
        return euros_to_cents(self.amount)


@dataclass(frozen=True)
class PricingTotals:
    rental_days: int
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    discount_percentage: Decimal = ZERO
    lines: tuple[PricedLine, ...] = field(default_factory=tuple)

    @property
    def subtotal_cents(self) -> int:
        return euros_to_cents(self.subtotal)

    @property
    def total_cents(self) -> int:
        return euros_to_cents(self.total)

    def as_dict(self) -> dict:
        return {
            "rental_days": self.rental_days,
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "discount_percentage": str(self.discount_percentage),
            "total": str(self.total),
            "lines": [
                {"description": line.description, "amount": str(line.amount), "reference": line.reference}
                for line in self.lines
            ],
        }


def line_amount(item: PricingItem, rental_days: int) -> Decimal:
    """Time-multiply only the lines whose charge model says so."""
    unit = to_decimal(item.unit_price)
    if item.charge_model == PER_BOOKING:
        amount = unit
    elif item.charge_model == PER_UNIT:
        amount = unit * item.quantity
    else:
        amount = unit * item.quantity * rental_days
    return quantize_euros(amount)


def _service_lines(context: PricingContext) -> list[PricedLine]:
    lines: list[PricedLine] = []
    if context.delivery_selected:
        lines.append(PricedLine("Delivery", quantize_euros(context.delivery_charge), "service:delivery"))
    if context.pickup_selected:
        lines.append(PricedLine("Pickup", quantize_euros(context.pickup_charge), "service:pickup"))
    if context.insurance_selected and context.insurance_charge is not None:
        lines.append(PricedLine("Insurance", quantize_euros(context.insurance_charge), "service:insurance"))
    if context.operator_selected:
        amount = quantize_euros(to_decimal(context.operator_charge) * context.rental_days)
        lines.append(PricedLine(f"Operator ({context.rental_days} days)", amount, "service:operator"))
    return lines


def compute_totals(context: PricingContext, items: Iterable[PricingItem]) -> PricingTotals:
    """
    Price a cart.

    subtotal = sum of every selected line
    discount = subtotal * percent / 100, rounded half-up to the cent
    total    = subtotal - discount

    3 days at 99/day + delivery 40 + pickup 40 with 10% off gives
    377.00 / 37.70 / 339.30.
    """
    if context.rental_days < 1:
        raise ValueError("Rental must last at least one day")

    percent = to_decimal(context.discount_percentage)
    if percent < 0 or percent > 100:
        raise ValueError("Discount percentage must be between 0 and 100")

    lines = [
        PricedLine(item.description, line_amount(item, context.rental_days), item.reference, item.is_primary)
        for item in items
    ]
    lines.extend(_service_lines(context))

    subtotal = quantize_euros(sum((line.amount for line in lines), ZERO))
    discount = quantize_euros(subtotal * percent / 100) if percent else ZERO
    total = quantize_euros(subtotal - discount)

    return PricingTotals(
        rental_days=context.rental_days,
        subtotal=subtotal,
        discount=discount,
        total=total,
        discount_percentage=percent,
        lines=tuple(lines),
    )


@dataclass(frozen=True)
class VatBreakdown:
    net_cents: int
    vat_cents: int
    gross_cents: int
    vat_percent: int


def vat_breakdown_cents(net_cents: int, vat_percent: int = 23) -> VatBreakdown:
    """VAT on an integer-cent net amount, rounded half-up once."""
    vat = (Decimal(net_cents) * Decimal(vat_percent) / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return VatBreakdown(
        net_cents=net_cents,
        vat_cents=int(vat),
        gross_cents=net_cents + int(vat),
        vat_percent=vat_percent,
    )


def allocate_discount_cents(line_cents: Sequence[int], discount_cents: int) -> list[int]:
    """
    Split a discount across lines in proportion to their amounts.

    Each share is floored; the leftover cents go to the largest line so the
    shares always add up to ``discount_cents`` exactly.
    """
    if not line_cents or discount_cents <= 0:
        return [0 for _ in line_cents]
    total = sum(line_cents)
    if total <= 0:
        return [0 for _ in line_cents]

    shares = [(discount_cents * cents) // total for cents in line_cents]
    residue = discount_cents - sum(shares)
    if residue:
        largest = max(range(len(line_cents)), key=lambda idx: line_cents[idx])
        shares[largest] += residue
    return shares
