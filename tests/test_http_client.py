from __future__ import annotations

import asyncio
import json
from datetime import date
from decimal import Decimal
from typing import List

import httpx
import pytest

from invoicing.clients.http import ServiceClient
from invoicing.schemas.billing import PaymentIntentRequest
from invoicing.schemas.notifications import EmailAttachment, EmailMessage
from invoicing.services.exceptions import DownstreamServiceError
from invoicing.services.notifications import EmailService
from invoicing.services import records as records_module
from invoicing.services.payments import PaymentService
from invoicing.services.records import RecordStore


def _client(handler, **kwargs) -> ServiceClient:
    return ServiceClient(
        "http://records.local",
        name="records",
        use_mock_data=False,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_service_headers_are_sent() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    client = _client(handler, api_key="secret", service_name="invoice-service")
    data = asyncio.run(client.get("/ping"))

    assert data == {"ok": True}
    assert seen[0].headers["X-API-Key"] == "secret"
    assert seen[0].headers["X-Service-Name"] == "invoice-service"


def test_empty_body_decodes_to_empty_dict() -> None:
    client = _client(lambda request: httpx.Response(204))

    assert asyncio.run(client.patch("/orders/1", {"status": "x"})) == {}


def test_error_status_is_mapped() -> None:
    client = _client(lambda request: httpx.Response(503, json={"error": "down"}))

    with pytest.raises(DownstreamServiceError) as excinfo:
        asyncio.run(client.get("/companies/1"))

    assert excinfo.value.status_code == 503
    assert isinstance(excinfo.value.cause, httpx.HTTPStatusError)


def test_transport_error_has_no_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)

    with pytest.raises(DownstreamServiceError) as excinfo:
        asyncio.run(client.get("/companies/1"))

    assert excinfo.value.status_code is None


def test_mock_mode_refuses_network_calls() -> None:
    client = ServiceClient(None, name="records")

    assert client.use_mock_data
    with pytest.raises(RuntimeError):
        asyncio.run(client.get("/companies/1"))


def test_remote_record_store_maps_404_to_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/companies/COMP-1":
            return httpx.Response(
                200, json={"id": "COMP-1", "name": "Acme", "email": "a@acme.example"}
            )
        return httpx.Response(404, json={"error": "not found"})

    store = RecordStore(_client(handler))

    company = asyncio.run(store.find_company("COMP-1"))
    missing = asyncio.run(store.find_customer("CUST-404"))

    assert company is not None and company.name == "Acme"
    assert missing is None


def test_remote_order_lines_use_batch_query() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[
                {
                    "id": "ORD-1",
                    "product_name": "Widget",
                    "quantity": 2,
                    "unit_price": "10.00",
                    "total_price": "20.00",
                    "batch_id": "B-1",
                    "customer_id": "CUST-1",
                    "company_id": "COMP-1",
                }
            ],
        )

    store = RecordStore(_client(handler))
    lines = asyncio.run(store.find_order_lines("B-1"))

    assert seen[0].url.params["batch_id"] == "B-1"
    assert [line.product_name for line in lines] == ["Widget"]


def test_remote_reference_conflict_is_retried(monkeypatch) -> None:
    references = iter(["TAKEN001", "FREE0001"])
    monkeypatch.setattr(records_module, "generate_reference", lambda: next(references))
    posted: List[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        posted.append(body)
        if body["reference"] == "TAKEN001":
            return httpx.Response(409, json={"error": "duplicate reference"})
        return httpx.Response(
            201,
            json={
                **body,
                "id": "INV-1",
                "created_at": "2026-10-17T09:00:00Z",
                "updated_at": "2026-10-17T09:00:00Z",
            },
        )

    store = RecordStore(_client(handler))
    invoice = asyncio.run(
        store.create_invoice(
            company_id="COMP-1",
            customer_id="CUST-1",
            order_batch_id="B-1",
            template_id="TPL-1",
            amount=Decimal("36.00"),
            currency="GBP",
            due_date=date(2026, 11, 16),
        )
    )

    assert [body["reference"] for body in posted] == ["TAKEN001", "FREE0001"]
    assert posted[0]["amount"] == "36.00"
    assert posted[0]["status"] == "draft"
    assert invoice.reference == "FREE0001"
    assert invoice.amount == Decimal("36.00")


def test_remote_email_payload_and_credential_header() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"messageId": "MSG-1", "status": "sent"})

    service = EmailService(_client(handler), credential_id="CRED-1")
    message = EmailMessage(
        to="jane@example.com",
        subject="Invoice #AB12CD34",
        html="<p>hi</p>",
        attachments=[EmailAttachment(filename="invoice-AB12CD34.pdf", content="JVBERg==")],
    )

    receipt = asyncio.run(service.send(message, credential_key="key-1"))

    assert receipt.message_id == "MSG-1"
    request = seen[0]
    assert request.url.path == "/api/email/send"
    assert request.headers["X-Credential-Key"] == "key-1"
    body = json.loads(request.content)
    assert body["credentialId"] == "CRED-1"
    assert body["message"]["attachments"][0]["contentType"] == "application/pdf"


def test_remote_payment_intent() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": "pi_123", "status": "requires_payment"})

    service = PaymentService(_client(handler), base_url="http://pay.local/")
    intent = asyncio.run(
        service.create_intent(
            PaymentIntentRequest(
                invoice_id="INV-1",
                amount_minor_units=3600,
                currency_code="GBP",
                success_url="http://app.local/invoices/INV-1/paid",
                cancel_url="http://app.local/invoices/INV-1",
                company_id="COMP-1",
            )
        )
    )

    assert intent.intent_id == "pi_123"
    assert json.loads(seen[0].content)["amount"] == 3600
    assert service.payment_link("INV-1") == "http://pay.local/api/pay/INV-1"
