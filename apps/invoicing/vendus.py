"""
Vendus invoicing integration (v1.x REST API).

Basic auth with the API key as username. Fiscal documents (FR, FT, NC) need
an open register; the register comes from VENDUS_REGISTER_ID or the first
open register on the account.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

import requests
from django.conf import settings  # type: ignore

from .exceptions import InvoicingError, VendusAPIError
from .provider import InvoiceCreateInput, InvoiceLine, InvoiceRecord

logger = logging.getLogger(__name__)

FISCAL_DOC_TYPES = ("FR", "FT", "NC")

VAT_TAX_IDS = {
    23: "NOR",
    13: "INT",
    6: "RED",
    0: "ISE",
}


def map_vat_to_tax_id(vat_percent: int) -> str:
    try:
        return VAT_TAX_IDS[int(vat_percent)]
    except (KeyError, ValueError):
        raise InvoicingError("Unsupported VAT percent. Allowed: 0, 6, 13, 23.")


def gross_price(net_cents: int, vat_percent: int) -> Decimal:
    """Unit price including VAT, two decimals."""
    net = Decimal(net_cents) / 100
    return (net * (1 + Decimal(vat_percent) / 100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_vendus_items(lines: list[InvoiceLine]) -> list[dict]:
    items = []
    for line in lines:
        tax_id = map_vat_to_tax_id(line.vat_percent)
        if tax_id == "ISE" and not line.vat_exemption_code:
            raise InvoicingError("VAT 0 requires a legal exemption code")
        item = {
            "title": line.description,
            "qty": line.quantity,
            "gross_price": float(gross_price(line.unit_price_cents, line.vat_percent)),
            "tax_id": tax_id,
            "reference": line.reference,
        }
        if tax_id == "ISE":
            item["tax_exemption_law"] = line.vat_exemption_code
        items.append(item)
    return items


def build_client_payload(invoice: InvoiceCreateInput) -> dict:
    customer = invoice.customer
    address = customer.address
    payload = {
        "name": customer.name,
        "email": customer.email,
        "fiscal_id": customer.nif,
    }
    if address is not None:
        payload.update(
            address=address.line1,
            postalcode=address.postal_code,
            city=address.city,
        )
        country = (address.country or "").strip().upper()
        # Domestic PT is implied; sending it trips validation on some accounts
        if len(country) == 2 and country.isalpha() and country != "PT":
            payload["country"] = country
    return {key: value for key, value in payload.items() if value}


class VendusProvider:
    """Issues invoice-receipts through the Vendus API."""

    name = "vendus"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        mode: str | None = None,
        doc_type: str | None = None,
        register_id: str | int | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.VENDUS_API_KEY
        self.base_url = (base_url or settings.VENDUS_BASE_URL).rstrip("/")
        self.mode = mode or settings.VENDUS_MODE
        self.doc_type = doc_type or settings.VENDUS_DOC_TYPE
        self.register_id = register_id if register_id is not None else settings.VENDUS_REGISTER_ID
        self.timeout = timeout or settings.VENDUS_TIMEOUT

    # ------------------------------------------------------------------ http

    def _request(self, method: str, path: str, payload: dict | None = None) -> dict | list:
        if not self.api_key:
            raise InvoicingError("Missing VENDUS_API_KEY")

        url = f"{self.base_url}{path}"
        try:
            response = requests.request(
                method,
                url,
                json=payload,
                auth=(self.api_key, ""),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Vendus network error at {path}: {e}")
            raise VendusAPIError(f"Vendus unreachable at {path}: {e}", path=path) from e

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if response.status_code >= 400:
            message = ""
            if isinstance(data, dict):
                message = str(data.get("message") or data.get("error") or "")
            if not message:
                message = f"{response.status_code} {response.reason} - body: {response.text[:400]}"
            hint = ""
            if response.status_code == 403:
                hint = " Hint: check register open state, document series permissions, and tests vs normal mode."
            logger.error(f"Vendus API error at {path}: status={response.status_code} {message}")
            raise VendusAPIError(
                f"Vendus API error at {path}: {message} (mode={self.mode} doc_type={self.doc_type}).{hint}",
                status_code=response.status_code,
                path=path,
            )
        return data

    # ------------------------------------------------------------ registers

    def resolve_register_id(self) -> int:
        if self.register_id not in (None, ""):
            try:
                return int(self.register_id)
            except (TypeError, ValueError):
                raise InvoicingError("VENDUS_REGISTER_ID must be a number")

        registers = self._request("GET", "/v1.0/registers/") or []
        if self.doc_type in FISCAL_DOC_TYPES:
            for register in registers:
                if register.get("status") == "open":
                    return int(register["id"])
        if registers:
            return int(registers[0]["id"])
        raise InvoicingError("No registers available in Vendus. Create one in backoffice.")

    def assert_register_can_issue(self, register_id: int) -> None:
        detail = self._request("GET", f"/v1.1/registers/{register_id}/") or {}
        if detail.get("situation") == "off":
            raise InvoicingError(f"Vendus register {register_id} is inactive.")
        if self.doc_type in FISCAL_DOC_TYPES and detail.get("status") == "close":
            raise InvoicingError(
                f"Vendus register {register_id} is CLOSED. Open a POS session before issuing {self.doc_type}."
            )

    # ------------------------------------------------------------ documents

    def build_document_payload(self, invoice: InvoiceCreateInput, register_id: int) -> dict:
        payload = {
            "type": self.doc_type,
            "mode": self.mode,
            "date": invoice.issued_on.isoformat(),
            "register_id": register_id,
            "client": build_client_payload(invoice),
            "items": to_vendus_items(invoice.lines),
            "currency": invoice.currency,
            "external_reference": invoice.idempotency_key or invoice.external_ref,
            "output": "pdf_url",
            "return_qrcode": 1,
        }
        if invoice.notes:
            payload["notes"] = invoice.notes
        return payload

    def pdf_url_for(self, provider_invoice_id: str) -> str:
        return f"{self.base_url}/v1.1/documents/{provider_invoice_id}.pdf"

    def create_invoice(self, invoice: InvoiceCreateInput) -> InvoiceRecord:
        register_id = self.resolve_register_id()
        self.assert_register_can_issue(register_id)

        data = self._request("POST", "/v1.1/documents/", self.build_document_payload(invoice, register_id))
        provider_id = str(data.get("id", ""))
        if not provider_id:
            raise VendusAPIError("Vendus returned no document id", status_code=502, path="/v1.1/documents/")

        record = InvoiceRecord(
            provider=self.name,
            provider_invoice_id=provider_id,
            number=data.get("full_number") or data.get("number") or provider_id,
            pdf_url=data.get("pdf_url") or data.get("output_url") or self.pdf_url_for(provider_id),
            atcud=data.get("atcud") or data.get("at_code") or None,
        )
        logger.info(
            f"Vendus document issued: {record.number} (id={record.provider_invoice_id}, "
            f"key={invoice.idempotency_key})"
        )
        return record
