"""Unit tests for the pricing engine."""

from __future__ import annotations

from decimal import Decimal

import pytest

from apps.bookings.pricing import (
    PER_BOOKING,
    PER_DAY,
    PER_UNIT,
    PricingContext,
    PricingItem,
    allocate_discount_cents,
    compute_totals,
    euros_to_cents,
    line_amount,
    vat_breakdown_cents,
)


def _machine(rate: str = "99.00") -> PricingItem:
    return PricingItem("Mini Excavator", Decimal(rate), reference="machine:mini-excavator", is_primary=True)


def test_reference_cart_with_discount() -> None:
    context = PricingContext(
        rental_days=3,
        delivery_selected=True,
        pickup_selected=True,
        delivery_charge=Decimal("40"),
        pickup_charge=Decimal("40"),
        discount_percentage=Decimal("10"),
    )

    totals = compute_totals(context, [_machine()])

    assert totals.subtotal == Decimal("377.00")
    assert totals.discount == Decimal("37.70")
    assert totals.total == Decimal("339.30")
    assert totals.subtotal_cents == 37700
    assert totals.total_cents == 33930
    assert [line.reference for line in totals.lines] == [
        "machine:mini-excavator",
        "service:delivery",
        "service:pickup",
    ]


def test_charge_models_multiply_differently() -> None:
    flat = PricingItem("Trailer", Decimal("30"), quantity=3, charge_model=PER_BOOKING)
    per_unit = PricingItem("Cones", Decimal("2.50"), quantity=4, charge_model=PER_UNIT)
    per_day = PricingItem("Breaker", Decimal("25"), quantity=2, charge_model=PER_DAY)

    assert line_amount(flat, 5) == Decimal("30.00")
    assert line_amount(per_unit, 5) == Decimal("10.00")
    assert line_amount(per_day, 5) == Decimal("250.00")


def test_operator_is_charged_per_day_and_insurance_without_price_adds_nothing() -> None:
    context = PricingContext(
        rental_days=3,
        insurance_selected=True,
        insurance_charge=None,
        operator_selected=True,
        operator_charge=Decimal("350"),
    )

    totals = compute_totals(context, [_machine()])

    descriptions = [line.description for line in totals.lines]
    assert "Operator (3 days)" in descriptions
    assert "Insurance" not in descriptions
    assert totals.subtotal == Decimal("1347.00")


def test_insurance_with_price_is_a_flat_line() -> None:
    context = PricingContext(rental_days=4, insurance_selected=True, insurance_charge=Decimal("50"))

    totals = compute_totals(context, [_machine()])

    assert totals.lines[-1].reference == "service:insurance"
    assert totals.lines[-1].amount == Decimal("50.00")
    assert totals.total == Decimal("446.00")


def test_full_discount_gives_zero_total() -> None:
    totals = compute_totals(PricingContext(rental_days=1, discount_percentage=Decimal("100")), [_machine()])

    assert totals.discount == Decimal("99.00")
    assert totals.total == Decimal("0.00")


@pytest.mark.parametrize("percent", [Decimal("-1"), Decimal("100.01")])
def test_discount_out_of_range_is_rejected(percent: Decimal) -> None:
    with pytest.raises(ValueError):
        compute_totals(PricingContext(rental_days=1, discount_percentage=percent), [_machine()])


def test_zero_days_is_rejected() -> None:
    with pytest.raises(ValueError):
        compute_totals(PricingContext(rental_days=0), [_machine()])


def test_unknown_charge_model_is_rejected() -> None:
    with pytest.raises(ValueError):
        PricingItem("Odd", Decimal("1"), charge_model="per_hour")


def test_same_inputs_same_result() -> None:
    context = PricingContext(rental_days=2, delivery_selected=True, delivery_charge=Decimal("40"))

    assert compute_totals(context, [_machine()]) == compute_totals(context, [_machine()])


def test_vat_is_rounded_half_up_once() -> None:
    breakdown = vat_breakdown_cents(33930, 23)

    assert breakdown.vat_cents == 7804
    assert breakdown.gross_cents == 41734


def test_euros_to_cents_rounds_half_up() -> None:
    assert euros_to_cents(Decimal("0.005")) == 1
    assert euros_to_cents("12.34") == 1234


def test_discount_allocation_sums_exactly() -> None:
    shares = allocate_discount_cents([100, 100, 100], 100)

    assert shares == [34, 33, 33]
    assert sum(shares) == 100


def test_discount_allocation_proportional() -> None:
    assert allocate_discount_cents([29700, 4000, 4000], 3770) == [2970, 400, 400]
    assert allocate_discount_cents([500, 500], 0) == [0, 0]


def test_discount_leftover_goes_to_largest_line() -> None:
    assert allocate_discount_cents([100, 100, 300], 4) == [0, 0, 4]
    assert allocate_discount_cents([300, 100, 300], 5) == [3, 0, 2]
