from __future__ import annotations

import base64
import html
import logging
from datetime import datetime, timezone
from decimal import Decimal

from invoicing.clients.http import ServiceClient
from invoicing.schemas.billing import Invoice
from invoicing.schemas.notifications import EmailAttachment, EmailMessage, EmailReceipt
from invoicing.schemas.parties import Company, Customer
from invoicing.services.exceptions import DownstreamServiceError, ServiceError
from invoicing.services.mock_store import OutboxRepository, get_mock_store
from invoicing.services.templating import DATE_FORMAT, currency_symbol, format_amount

logger = logging.getLogger(__name__)


class EmailService:
    def __init__(
        self,
        client: ServiceClient,
        *,
        credential_id: str | None = None,
        repository: OutboxRepository | None = None,
    ) -> None:
        self._client = client
        self._credential_id = credential_id
        self._repository = repository
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().outbox

    async def send(
        self, message: EmailMessage, *, credential_key: str | None = None
    ) -> EmailReceipt:
        logger.info("Sending e-mail '%s' to %s", message.subject, message.to)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            if not self._repository:
                raise RuntimeError("Mock outbox not configured")
            return await self._repository.record(message, credential_key=credential_key)

        headers = {"X-Credential-Key": credential_key} if credential_key else None
        payload = {
            "credentialId": self._credential_id,
            "message": message.model_dump(by_alias=True),
        }
        try:
            data = await self._client.post("/api/email/send", payload, headers=headers)
            return EmailReceipt(
                message_id=data.get("messageId") or data.get("id"),
                status=str(data.get("status", "sent")),
            )
        except ServiceError:
            raise
        except Exception as exc:  # pragma: no cover
            logger.exception("Unexpected error while sending e-mail")
            raise DownstreamServiceError("Failed to send e-mail", cause=exc) from exc


def pdf_attachment(invoice: Invoice, pdf: bytes) -> EmailAttachment:
    return EmailAttachment(
        filename=f"invoice-{invoice.reference}.pdf",
        content=base64.b64encode(pdf).decode("ascii"),
        content_type="application/pdf",
    )


def build_invoice_email(
    *,
    company: Company,
    customer: Customer,
    invoice: Invoice,
    amount_due: Decimal,
    pdf: bytes,
    logo_url: str,
    payment_url: str,
    view_url: str,
) -> EmailMessage:
    """Compose the customer e-mail that carries the invoice PDF."""
    esc = html.escape
    amount = f"{currency_symbol(invoice.currency)}{format_amount(amount_due)}"
    address = ", ".join(
        part for part in (company.address_line1, company.city, company.postcode) if part
    )
    contact = " | ".join(part for part in (company.email, company.phone) if part)
    year = datetime.now(timezone.utc).year

    body = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #1e293b; margin: 0; padding: 0; background-color: #f1f5f9;">
    <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f1f5f9; padding: 40px 20px;">
        <tr><td align="center">
            <table width="600" cellpadding="0" cellspacing="0" style="background-color: #ffffff; border-radius: 8px;">
                <tr><td style="padding: 30px 40px; border-bottom: 1px solid #e2e8f0;">
                    <img src="{esc(logo_url)}" alt="{esc(company.name)}" style="max-height: 50px; width: auto;">
                </td></tr>
                <tr><td style="padding: 40px;">
                    <h2 style="font-size: 24px; margin: 0 0 20px 0;">Invoice from {esc(company.name)}</h2>
                    <p>Dear {esc(customer.full_name)},</p>
                    <p>Please find attached your invoice. Here's a summary of the details:</p>
                    <table width="100%" cellpadding="25" style="background-color: #f8fafc; border: 1px solid #e2e8f0; border-radius: 6px; margin: 25px 0;">
                        <tr><td>
                            <p><strong>Invoice Number:</strong> {esc(invoice.reference)}</p>
                            <p><strong>Amount Due:</strong> <span style="font-size: 28px; font-weight: bold;">{esc(amount)}</span></p>
                            <p><strong>Due Date:</strong> <span style="color: #dc2626;">{invoice.due_date.strftime(DATE_FORMAT)}</span></p>
                        </td></tr>
                    </table>
                    <p>
                        <a href="{esc(payment_url)}" style="background-color: #2563eb; color: #ffffff; padding: 14px 28px; border-radius: 4px; text-decoration: none; font-weight: bold;">Pay Now</a>
                        <a href="{esc(view_url)}" style="background-color: #475569; color: #ffffff; padding: 14px 28px; border-radius: 4px; text-decoration: none; font-weight: bold;">View Invoice</a>
                    </p>
                    <p>The invoice is also attached to this email for your records.</p>
                    <p>If you have any questions or concerns, please don't hesitate to contact us.</p>
                </td></tr>
                <tr><td style="background-color: #f8fafc; padding: 30px 40px; border-top: 1px solid #e2e8f0; text-align: center; font-size: 14px; color: #64748b;">
                    <p><strong>{esc(company.name)}</strong></p>
                    <p>{esc(address)}</p>
                    <p>{esc(contact)}</p>
                    <p>&copy; {year} {esc(company.name)}. All rights reserved.</p>
                </td></tr>
            </table>
        </td></tr>
    </table>
</body>
</html>
"""
    return EmailMessage(
        to=customer.email,
        subject=f"Invoice #{invoice.reference}",
        html=body,
        attachments=[pdf_attachment(invoice, pdf)],
    )
