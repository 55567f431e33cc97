"""Invoicing errors.

Job handlers decide retry behaviour from these: ``VendusAPIError`` knows
whether the provider failure was transient, everything else is permanent.
"""

from __future__ import annotations


class InvoicingError(Exception):
    """Invoice could not be built or issued."""


class InvoiceMismatchError(InvoicingError):
    """Invoice lines do not add up to the amount the customer paid."""

    def __init__(self, booking_id: int, expected_cents: int, invoice_cents: int) -> None:
        self.booking_id = booking_id
        self.expected_cents = expected_cents
        self.invoice_cents = invoice_cents
        super().__init__(
            f"Invoice total mismatch: expected {expected_cents} cents, got {invoice_cents} cents "
            f"(diff: {invoice_cents - expected_cents}). Booking {booking_id}."
        )


class VendusAPIError(InvoicingError):
    """Vendus rejected the request or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, path: str = "") -> None:
        self.status_code = status_code
        self.path = path
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        # No status means the request never got an answer
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500
