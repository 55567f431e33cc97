"""Vendus provider against a mocked HTTP layer."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from apps.invoicing.exceptions import InvoicingError, VendusAPIError
from apps.invoicing.provider import Address, Customer, InvoiceCreateInput, InvoiceLine
from apps.invoicing.vendus import VendusProvider, build_client_payload, gross_price, map_vat_to_tax_id


def _response(status_code: int, data) -> MagicMock:
    response = MagicMock(status_code=status_code, content=b"{}", reason="Error" if status_code >= 400 else "OK")
    response.json.return_value = data
    response.text = str(data)
    return response


def _invoice(**overrides) -> InvoiceCreateInput:
    fields = {
        "idempotency_key": "booking:12:pi:pi_1",
        "external_ref": "pi_1",
        "issued_on": date(2026, 5, 1),
        "customer": Customer(
            name="Construções Lda",
            email="geral@construcoes.pt",
            nif="509999999",
            address=Address(line1="Rua Direita 1", city="Faro", postal_code="8000-100"),
        ),
        "lines": [InvoiceLine("Mini Excavator - 3 days", 1, 29700, 23, "machine:mini-excavator")],
    }
    fields.update(overrides)
    return InvoiceCreateInput(**fields)


def _provider(**overrides) -> VendusProvider:
    options = {"api_key": "key", "base_url": "https://vendus.test/ws", "mode": "tests", "doc_type": "FR"}
    options.update(overrides)
    return VendusProvider(**options)


def test_vat_mapping() -> None:
    assert map_vat_to_tax_id(23) == "NOR"
    assert map_vat_to_tax_id(6) == "RED"
    with pytest.raises(InvoicingError):
        map_vat_to_tax_id(21)


def test_gross_price() -> None:
    assert gross_price(29700, 23) == Decimal("365.31")


def test_domestic_country_is_not_sent() -> None:
    payload = build_client_payload(_invoice())

    assert payload["fiscal_id"] == "509999999"
    assert payload["postalcode"] == "8000-100"
    assert "country" not in payload


@patch("apps.invoicing.vendus.requests.request")
def test_issues_document_on_first_open_register(mock_request) -> None:
    mock_request.side_effect = [
        _response(200, [{"id": 3, "status": "close"}, {"id": 5, "status": "open"}]),
        _response(200, {"id": 5, "status": "open", "situation": "on"}),
        _response(201, {"id": 9001, "full_number": "FR T01/42", "atcud": "ABCD-42"}),
    ]

    record = _provider().create_invoice(_invoice())

    assert record.number == "FR T01/42"
    assert record.provider_invoice_id == "9001"
    assert record.pdf_url == "https://vendus.test/ws/v1.1/documents/9001.pdf"
    method, url = mock_request.call_args.args
    assert (method, url) == ("POST", "https://vendus.test/ws/v1.1/documents/")
    document = mock_request.call_args.kwargs["json"]
    assert document["register_id"] == 5
    assert document["external_reference"] == "booking:12:pi:pi_1"
    assert document["items"][0]["tax_id"] == "NOR"
    assert mock_request.call_args.kwargs["auth"] == ("key", "")


@patch("apps.invoicing.vendus.requests.request")
def test_closed_register_is_refused(mock_request) -> None:
    mock_request.return_value = _response(200, {"id": 5, "status": "close", "situation": "on"})

    with pytest.raises(InvoicingError, match="CLOSED"):
        _provider(register_id=5).create_invoice(_invoice())


@patch("apps.invoicing.vendus.requests.request")
def test_server_errors_are_transient(mock_request) -> None:
    mock_request.return_value = _response(503, {"message": "maintenance"})

    with pytest.raises(VendusAPIError) as excinfo:
        _provider(register_id=5).create_invoice(_invoice())

    assert excinfo.value.status_code == 503
    assert excinfo.value.is_transient


@patch("apps.invoicing.vendus.requests.request")
def test_network_errors_are_transient(mock_request) -> None:
    mock_request.side_effect = requests.exceptions.ConnectionError("refused")

    with pytest.raises(VendusAPIError) as excinfo:
        _provider(register_id=5).create_invoice(_invoice())

    assert excinfo.value.is_transient


def test_validation_errors_are_permanent() -> None:
    assert not VendusAPIError("bad", status_code=422).is_transient
    assert VendusAPIError("slow down", status_code=429).is_transient


def test_missing_api_key() -> None:
    with pytest.raises(InvoicingError, match="VENDUS_API_KEY"):
        _provider(api_key="", register_id=5).create_invoice(_invoice())
