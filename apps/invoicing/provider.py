"""Provider-agnostic invoice types.

Amounts are integer cents, net of VAT. A provider translates these into its
own wire format.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Protocol


@dataclass(frozen=True)
class Address:
    line1: str
    city: str = ""
    postal_code: str = ""
    country: str = "PT"


@dataclass(frozen=True)
class Customer:
    name: str
    email: str | None = None
    nif: str | None = None
    address: Address | None = None


@dataclass(frozen=True)
class InvoiceLine:
    description: str
    quantity: int
    unit_price_cents: int
    vat_percent: int
    reference: str = ""
    # Legal exemption code, required when vat_percent is 0
    vat_exemption_code: str | None = None

    @property
    def net_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class InvoiceCreateInput:
    idempotency_key: str
    external_ref: str
    issued_on: date
    customer: Customer
    lines: list[InvoiceLine] = field(default_factory=list)
    currency: str = "EUR"
    notes: str | None = None

    @property
    def net_cents(self) -> int:
        return sum(line.net_cents for line in self.lines)


@dataclass(frozen=True)
class InvoiceRecord:
    """What gets persisted on the booking after a successful issue."""

    provider: str
    provider_invoice_id: str
    number: str
    pdf_url: str
    atcud: str | None = None


class InvoicingProvider(Protocol):
    name: str

    def create_invoice(self, invoice: InvoiceCreateInput) -> InvoiceRecord:
        ...
