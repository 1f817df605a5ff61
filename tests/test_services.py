import asyncio
import base64
import os
import sys
from decimal import Decimal
from typing import List

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from invoicing.config import Settings
from invoicing.schemas.billing import InvoiceCreateRequest, InvoiceStatus
from invoicing.schemas.templates import Template
from invoicing.services import records as records_module
from invoicing.services.exceptions import (
    DownstreamServiceError,
    EmptyBatchError,
    InvalidStatusTransitionError,
    NotFoundError,
    ServiceError,
)
from invoicing.services.invoice import InvoiceService
from invoicing.services.mock_store import (
    SEED_BATCH_ID,
    SEED_COMPANY_ID,
    SEED_TEMPLATE_ID,
    get_mock_store,
    reset_mock_store,
)
from invoicing.services.notifications import EmailService
from invoicing.services.payments import PaymentService
from invoicing.services.records import RecordStore

PDF_BYTES = b"%PDF-1.4\n%stub\n"


@pytest.fixture(autouse=True)
def _reset_store() -> None:
    reset_mock_store()
    yield
    reset_mock_store()


class MockLatencyClient:
    """Client stub that records simulate_latency calls."""

    def __init__(self) -> None:
        self.use_mock_data = True
        self.latency_called = False

    async def simulate_latency(self) -> None:
        self.latency_called = True


class StubRenderer:
    """Renders by pulling the markup and returning fixed PDF bytes."""

    def __init__(self) -> None:
        self.markups: List[str] = []
        self.urls: List[str] = []

    async def render_markup(self, source) -> bytes:
        self.markups.append(await source())
        return PDF_BYTES

    async def render_url(self, url: str) -> bytes:
        self.urls.append(url)
        return PDF_BYTES


class FailingEmailService(EmailService):
    async def send(self, message, *, credential_key=None):
        raise DownstreamServiceError("contact service returned an error response", status_code=503)


class FailingPaymentService(PaymentService):
    async def create_intent(self, request):
        raise DownstreamServiceError("payment service returned an error response", status_code=500)


def _settings(**overrides) -> Settings:
    values = dict(
        use_mock_data=True,
        payment_service_url="http://pay.local",
        image_service_url="http://images.local",
        frontend_url="http://app.local",
        invoice_service_url="http://invoices.local",
        notify_on_create=False,
    )
    values.update(overrides)
    return Settings(**values)


def _service(
    *,
    settings: Settings | None = None,
    email_cls=EmailService,
    payment_cls=PaymentService,
    renderer: StubRenderer | None = None,
) -> InvoiceService:
    settings = settings or _settings()
    store = get_mock_store()
    client = MockLatencyClient()
    return InvoiceService(
        RecordStore(client, repository=store, reference_max_attempts=settings.reference_max_attempts),
        payment_cls(client, base_url=settings.payment_service_url, repository=store.payment_intents),
        email_cls(client, repository=store.outbox),
        renderer or StubRenderer(),
        settings,
    )


def _create(service: InvoiceService):
    return asyncio.run(
        service.create(InvoiceCreateRequest(batch_id=SEED_BATCH_ID, template_id=SEED_TEMPLATE_ID))
    )


def test_create_persists_draft_invoice_with_payment_intent() -> None:
    store = get_mock_store()
    service = _service()

    invoice = _create(service)

    # Widget 2x10 + Gadget 24.50 + Widget 10 = 54.50, +20% VAT
    assert invoice.amount == Decimal("65.40")
    assert invoice.status is InvoiceStatus.DRAFT
    assert invoice.company_id == SEED_COMPANY_ID
    assert invoice.currency == "GBP"
    assert len(invoice.reference) == 8
    assert invoice.payment_intent_id is not None

    intent = asyncio.run(store.payment_intents.get(invoice.payment_intent_id))
    assert intent["amount_minor_units"] == 6540
    assert intent["success_url"] == f"http://app.local/invoices/{invoice.id}/paid"
    assert intent["cancel_url"] == f"http://app.local/invoices/{invoice.id}"

    persisted = asyncio.run(store.invoices.get(invoice.id))
    assert persisted == invoice


def test_create_sends_email_when_enabled() -> None:
    store = get_mock_store()
    service = _service(settings=_settings(notify_on_create=True))

    invoice = _create(service)

    messages = asyncio.run(store.outbox.list())
    assert len(messages) == 1
    message = messages[0]
    assert message.to == "jane.doe@example.com"
    assert message.subject == f"Invoice #{invoice.reference}"
    assert "£65.40" in message.html
    assert f"http://pay.local/api/pay/{invoice.id}" in message.html
    assert f"http://invoices.local/api/invoices/{invoice.id}/view" in message.html
    attachment = message.attachments[0]
    assert attachment.filename == f"invoice-{invoice.reference}.pdf"
    assert base64.b64decode(attachment.content) == PDF_BYTES


def test_create_keeps_invoice_when_email_fails() -> None:
    store = get_mock_store()
    service = _service(settings=_settings(notify_on_create=True), email_cls=FailingEmailService)

    invoice = _create(service)

    assert asyncio.run(store.invoices.get(invoice.id)) is not None
    assert asyncio.run(store.outbox.list()) == []


def test_create_surfaces_payment_failure() -> None:
    service = _service(payment_cls=FailingPaymentService)

    with pytest.raises(DownstreamServiceError):
        _create(service)


def test_create_with_unknown_template_raises_not_found() -> None:
    service = _service()

    with pytest.raises(NotFoundError):
        asyncio.run(
            service.create(InvoiceCreateRequest(batch_id=SEED_BATCH_ID, template_id="TPL-404"))
        )


def test_create_with_empty_batch_raises() -> None:
    service = _service()

    with pytest.raises(EmptyBatchError):
        asyncio.run(
            service.create(InvoiceCreateRequest(batch_id="BATCH-404", template_id=SEED_TEMPLATE_ID))
        )


def test_send_marks_invoice_and_orders_awaiting_payment() -> None:
    store = get_mock_store()
    renderer = StubRenderer()
    service = _service(renderer=renderer)
    invoice = _create(service)

    response = asyncio.run(service.send(invoice.id))

    assert response.message == "Invoice sent successfully"
    assert response.status is InvoiceStatus.AWAITING_PAYMENT
    assert response.email_message_id is not None

    updated = asyncio.run(store.invoices.get(invoice.id))
    assert updated.status is InvoiceStatus.AWAITING_PAYMENT
    lines = asyncio.run(store.orders.list_by_batch(SEED_BATCH_ID))
    assert {line.status for line in lines} == {"awaiting_payment"}

    assert len(asyncio.run(store.outbox.list())) == 1
    # rendered after the status change
    assert "AWAITING_PAYMENT" in renderer.markups[0]


def test_send_email_failure_surfaces_after_status_change() -> None:
    store = get_mock_store()
    service = _service(email_cls=FailingEmailService)
    invoice = _create(service)

    with pytest.raises(DownstreamServiceError):
        asyncio.run(service.send(invoice.id))

    updated = asyncio.run(store.invoices.get(invoice.id))
    assert updated.status is InvoiceStatus.AWAITING_PAYMENT


def test_two_phase_send_leaves_status_on_email_failure() -> None:
    store = get_mock_store()
    service = _service(settings=_settings(two_phase_send=True), email_cls=FailingEmailService)
    invoice = _create(service)

    with pytest.raises(DownstreamServiceError):
        asyncio.run(service.send(invoice.id))

    updated = asyncio.run(store.invoices.get(invoice.id))
    assert updated.status is InvoiceStatus.DRAFT
    lines = asyncio.run(store.orders.list_by_batch(SEED_BATCH_ID))
    assert {line.status for line in lines} == {"pending"}


def test_two_phase_send_marks_status_after_email() -> None:
    store = get_mock_store()
    renderer = StubRenderer()
    service = _service(settings=_settings(two_phase_send=True), renderer=renderer)
    invoice = _create(service)

    response = asyncio.run(service.send(invoice.id))

    assert response.status is InvoiceStatus.AWAITING_PAYMENT
    assert asyncio.run(store.invoices.get(invoice.id)).status is InvoiceStatus.AWAITING_PAYMENT
    # the attached PDF shows the status the invoice is sent with
    assert '<p class="status">AWAITING_PAYMENT</p>' in renderer.markups[0]
    assert "DRAFT" not in renderer.markups[0]


def test_two_phase_send_composes_markup_even_with_url_source() -> None:
    renderer = StubRenderer()
    service = _service(
        settings=_settings(two_phase_send=True, render_source="url"), renderer=renderer
    )
    invoice = _create(service)

    asyncio.run(service.send(invoice.id))

    assert renderer.urls == []
    assert "AWAITING_PAYMENT" in renderer.markups[0]


def test_send_rejects_paid_invoice() -> None:
    store = get_mock_store()
    service = _service()
    invoice = _create(service)
    asyncio.run(store.invoices.update_status(invoice.id, InvoiceStatus.PAID))

    with pytest.raises(InvalidStatusTransitionError):
        asyncio.run(service.send(invoice.id))

    assert asyncio.run(store.outbox.list()) == []


def test_send_requires_default_template() -> None:
    store = get_mock_store()
    service = _service()
    invoice = _create(service)
    asyncio.run(store.templates.delete(SEED_TEMPLATE_ID))

    with pytest.raises(NotFoundError):
        asyncio.run(service.send(invoice.id))

    assert asyncio.run(store.invoices.get(invoice.id)).status is InvoiceStatus.DRAFT


def test_send_unknown_invoice_raises_not_found() -> None:
    service = _service()

    with pytest.raises(NotFoundError):
        asyncio.run(service.send("INV-99999"))


def test_generate_pdf_for_unknown_invoice_does_not_render() -> None:
    renderer = StubRenderer()
    service = _service(renderer=renderer)

    with pytest.raises(NotFoundError):
        asyncio.run(service.generate_pdf("INV-99999"))

    assert renderer.markups == []


def test_generate_pdf_from_url_source() -> None:
    renderer = StubRenderer()
    service = _service(settings=_settings(render_source="url"), renderer=renderer)
    invoice = _create(service)

    pdf = asyncio.run(service.generate_pdf(invoice.id))

    assert pdf == PDF_BYTES
    assert renderer.urls == [f"http://invoices.local/api/invoices/{invoice.id}"]


def test_render_html_uses_invoice_template() -> None:
    store = get_mock_store()
    asyncio.run(
        store.templates.add(
            Template(
                id="TPL-MIN",
                html="<html><head></head><body>{{customer.first_name}} {{customer.last_name}} owes {{invoice.total}}</body></html>",
                company_id=SEED_COMPANY_ID,
            )
        )
    )
    service = _service()
    invoice = asyncio.run(
        service.create(InvoiceCreateRequest(batch_id=SEED_BATCH_ID, template_id="TPL-MIN"))
    )

    markup = asyncio.run(service.render_html(invoice.id))

    assert "Jane Doe owes 65.40" in markup


def test_reference_is_regenerated_on_conflict(monkeypatch) -> None:
    references = iter(["AAAA1111", "AAAA1111", "BBBB2222"])
    monkeypatch.setattr(records_module, "generate_reference", lambda: next(references))
    service = _service()

    first = _create(service)
    second = _create(service)

    assert first.reference == "AAAA1111"
    assert second.reference == "BBBB2222"


def test_reference_allocation_gives_up(monkeypatch) -> None:
    monkeypatch.setattr(records_module, "generate_reference", lambda: "SAMEREF1")
    service = _service(settings=_settings(reference_max_attempts=2))
    _create(service)

    with pytest.raises(ServiceError):
        _create(service)


def test_payment_link_uses_payment_service_base() -> None:
    service = _service()
    invoice = _create(service)

    link = asyncio.run(service.payment_link(invoice.id))

    assert link == f"http://pay.local/api/pay/{invoice.id}"


def test_mock_record_store_simulates_latency() -> None:
    client = MockLatencyClient()
    store = RecordStore(client)

    company = asyncio.run(store.find_company(SEED_COMPANY_ID))

    assert company is not None
    assert company.name == "Acme Supplies Ltd"
    assert client.latency_called
