from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import ROUND_HALF_UP
from typing import List, Tuple

from invoicing.config import Settings
from invoicing.schemas.billing import (
    Invoice,
    InvoiceCreateRequest,
    InvoiceSendResponse,
    InvoiceStatus,
    PaymentIntentRequest,
)
from invoicing.schemas.notifications import EmailReceipt
from invoicing.schemas.orders import OrderLine, OrderSummary
from invoicing.schemas.parties import Company, Customer
from invoicing.schemas.templates import PresentationMode, Template
from invoicing.services.aggregation import aggregate
from invoicing.services.exceptions import (
    DocumentNotReady,
    InvalidStatusTransitionError,
    NotFoundError,
    ServiceError,
)
from invoicing.services.notifications import EmailService, build_invoice_email
from invoicing.services.payments import PaymentService
from invoicing.services.records import RecordStore
from invoicing.services.rendering import PdfRenderer
from invoicing.services.templating import RenderingContext, render_document

logger = logging.getLogger(__name__)

ORDER_STATUS_AWAITING_PAYMENT = "awaiting_payment"


class InvoiceService:
    """Creates, renders and sends invoices for order batches."""

    def __init__(
        self,
        records: RecordStore,
        payments: PaymentService,
        emails: EmailService,
        renderer: PdfRenderer,
        settings: Settings,
    ) -> None:
        self._records = records
        self._payments = payments
        self._emails = emails
        self._renderer = renderer
        self._settings = settings

    async def create(self, request: InvoiceCreateRequest) -> Invoice:
        logger.info("Creating invoice for batch %s", request.batch_id)
        template = await self._records.find_template(request.template_id)
        if template is None:
            raise NotFoundError("Template", request.template_id)

        lines = await self._records.find_order_lines(request.batch_id)
        summary = aggregate(lines, batch_id=request.batch_id)
        first = lines[0]

        invoice = await self._records.create_invoice(
            company_id=first.company_id,
            customer_id=first.customer_id,
            order_batch_id=request.batch_id,
            template_id=template.id,
            amount=summary.total,
            currency=(request.currency or self._settings.default_currency).upper(),
            due_date=request.due_date
            or date.today() + timedelta(days=self._settings.payment_terms_days),
        )
        logger.info("Created invoice %s (%s) for %s", invoice.id, invoice.reference, invoice.amount)

        intent = await self._payments.create_intent(
            PaymentIntentRequest(
                invoice_id=invoice.id,
                amount_minor_units=int(
                    (summary.total * 100).to_integral_value(rounding=ROUND_HALF_UP)
                ),
                currency_code=invoice.currency,
                success_url=f"{self._settings.frontend_url}/invoices/{invoice.id}/paid",
                cancel_url=f"{self._settings.frontend_url}/invoices/{invoice.id}",
                company_id=invoice.company_id,
            )
        )
        invoice = await self._records.attach_payment_intent(invoice.id, intent.intent_id)

        if self._settings.notify_on_create:
            try:
                await self._deliver(
                    invoice, credential_key=self._settings.default_email_credential_key
                )
            except ServiceError:
                # the invoice stands even when the customer could not be notified
                logger.exception("Failed to send invoice email for %s", invoice.id)
        return invoice

    async def render_html(
        self, invoice_id: str, mode: PresentationMode = PresentationMode.PLAIN
    ) -> str:
        invoice = await self._require_invoice(invoice_id)
        return await self._compose(invoice, mode)

    async def generate_pdf(self, invoice_id: str) -> bytes:
        invoice = await self._require_invoice(invoice_id)
        return await self._render_pdf(invoice)

    async def _compose(self, invoice: Invoice, mode: PresentationMode) -> str:
        template, context = await self._context_for(invoice)
        return render_document(template, context, mode)

    async def _render_pdf(self, invoice: Invoice, *, uncommitted: bool = False) -> bytes:
        """Print ``invoice`` to PDF.

        An ``uncommitted`` invoice carries changes the store does not have yet, so
        it is always composed from markup rather than fetched by URL.
        """
        if self._settings.render_source == "url" and not uncommitted:
            url = f"{self._settings.invoice_service_url}/api/invoices/{invoice.id}"
            return await self._renderer.render_url(url)

        async def markup() -> str:
            try:
                return await self._compose(invoice, PresentationMode.PLAIN)
            except NotFoundError as exc:
                raise DocumentNotReady(str(exc)) from exc

        return await self._renderer.render_markup(markup)

    async def payment_link(self, invoice_id: str) -> str:
        invoice = await self._require_invoice(invoice_id)
        return self._payments.payment_link(invoice.id)

    async def send(self, invoice_id: str) -> InvoiceSendResponse:
        invoice = await self._require_invoice(invoice_id)
        company = await self._require_company(invoice.company_id)
        await self._require_customer(invoice.customer_id)
        template = await self._records.find_default_template(company.id)
        if template is None:
            raise NotFoundError("Template", company.id)

        target = InvoiceStatus.AWAITING_PAYMENT
        if not invoice.status.can_move_to(target):
            raise InvalidStatusTransitionError(invoice.status.value, target.value)

        logger.info("Sending invoice %s (two-phase=%s)", invoice.id, self._settings.two_phase_send)
        if self._settings.two_phase_send:
            # the attached document already shows the status it is about to get
            receipt = await self._deliver(
                invoice.model_copy(update={"status": target}),
                credential_key=template.credential,
                uncommitted=True,
            )
            invoice = await self._mark_awaiting_payment(invoice)
        else:
            invoice = await self._mark_awaiting_payment(invoice)
            receipt = await self._deliver(invoice, credential_key=template.credential)

        return InvoiceSendResponse(
            message="Invoice sent successfully",
            invoice_id=invoice.id,
            reference=invoice.reference,
            status=invoice.status,
            email_message_id=receipt.message_id,
        )

    async def _mark_awaiting_payment(self, invoice: Invoice) -> Invoice:
        updated = await self._records.update_invoice_status(
            invoice.id, InvoiceStatus.AWAITING_PAYMENT
        )
        lines: List[OrderLine] = await self._records.find_order_lines(invoice.order_batch_id)
        for line in lines:
            if line.id is not None:
                await self._records.update_order_status(line.id, ORDER_STATUS_AWAITING_PAYMENT)
        return updated

    async def _deliver(
        self, invoice: Invoice, *, credential_key: str | None, uncommitted: bool = False
    ) -> EmailReceipt:
        company = await self._require_company(invoice.company_id)
        customer = await self._require_customer(invoice.customer_id)
        pdf = await self._render_pdf(invoice, uncommitted=uncommitted)
        message = build_invoice_email(
            company=company,
            customer=customer,
            invoice=invoice,
            amount_due=invoice.amount,
            pdf=pdf,
            logo_url=self._logo_url(company),
            payment_url=self._payments.payment_link(invoice.id),
            view_url=f"{self._settings.invoice_service_url}/api/invoices/{invoice.id}/view",
        )
        return await self._emails.send(message, credential_key=credential_key)

    async def _context_for(self, invoice: Invoice) -> Tuple[Template, RenderingContext]:
        template = await self._records.find_template(invoice.template_id)
        if template is None:
            raise NotFoundError("Template", invoice.template_id)
        company = await self._require_company(invoice.company_id)

        lines = await self._records.find_order_lines(invoice.order_batch_id)
        summary: OrderSummary = aggregate(lines, batch_id=invoice.order_batch_id)
        customer = await self._require_customer(invoice.customer_id)

        context = RenderingContext(
            company=company,
            customer=customer,
            invoice=invoice,
            summary=summary,
            logo_url=self._logo_url(company),
            payment_url=self._payments.payment_link(invoice.id),
            pdf_url=f"/api/invoices/{invoice.id}/pdf",
        )
        return template, context

    def _logo_url(self, company: Company) -> str:
        return f"{self._settings.image_service_url}/api/media/company-logo/file/{company.id}"

    async def _require_invoice(self, invoice_id: str) -> Invoice:
        invoice = await self._records.find_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    async def _require_company(self, company_id: str) -> Company:
        company = await self._records.find_company(company_id)
        if company is None:
            raise NotFoundError("Company", company_id)
        return company

    async def _require_customer(self, customer_id: str) -> Customer:
        customer = await self._records.find_customer(customer_id)
        if customer is None:
            raise NotFoundError("Customer", customer_id)
        return customer
