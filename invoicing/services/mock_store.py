from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from invoicing.schemas.billing import Invoice, InvoiceStatus, PaymentIntent, PaymentIntentRequest
from invoicing.schemas.notifications import EmailMessage, EmailReceipt
from invoicing.schemas.orders import OrderLine
from invoicing.schemas.parties import Company, Customer
from invoicing.schemas.templates import Template
from invoicing.services.exceptions import ReferenceConflict

SEED_COMPANY_ID = "COMP-0001"
SEED_CUSTOMER_ID = "CUST-0001"
SEED_TEMPLATE_ID = "TPL-0001"
SEED_BATCH_ID = "BATCH-0001"

DEFAULT_TEMPLATE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Invoice {{invoice.id}}</title>
</head>
<body>
    <header>
        <img src="{{company.logo}}" alt="{{company.name}}" class="logo">
        <h1>INVOICE</h1>
        <p class="status">{{invoice.status}}</p>
    </header>
    <section class="parties">
        <div class="from">
            <h2>{{company.name}}</h2>
            <p>{{company.address_line1}}{{company.address_line2}}</p>
            <p>{{company.city}} {{company.county}} {{company.postcode}}</p>
            <p>{{company.email}} | {{company.phone}}</p>
            <p>{{company.website}}</p>
        </div>
        <div class="to">
            <h2>{{customer.first_name}} {{customer.last_name}}</h2>
            <p>{{customer.address_line1}}{{customer.address_line2}}</p>
            <p>{{customer.city}}</p>
            <p>{{customer.county}}{{customer.postcode}}</p>
            <p>{{customer.country}}</p>
            <p>{{customer.email}} | {{customer.phone}}</p>
        </div>
    </section>
    <section class="meta">
        <p>Invoice number: {{invoice.id}}</p>
        <p>Issued: {{invoice.created_at}}</p>
        <p>Due: {{invoice.due_date}}</p>
    </section>
    <table class="items">
        <thead>
            <tr><th>Product</th><th>Qty</th><th>Unit price</th><th>Total</th></tr>
        </thead>
        <tbody>{{invoice.items}}</tbody>
    </table>
    <section class="totals">
        <p>Subtotal: {{invoice.currency}} {{invoice.subtotal}}</p>
        <p>VAT (20%): {{invoice.currency}} {{invoice.tax}}</p>
        <p class="total">Total: {{invoice.currency}} {{invoice.total}}</p>
    </section>
    <section class="payment">
        <p>Bank: {{company.bank_name}}</p>
        <p>Account name: {{company.account_name}}</p>
        <p>Account number: {{company.account_number}} Sort code: {{company.sort_code}}</p>
        <p>IBAN: {{company.iban_number}}</p>
        <p><a href="{{invoice.key_id}}">Pay online</a></p>
    </section>
</body>
</html>
"""

DEFAULT_TEMPLATE_CSS = """body { font-family: Arial, sans-serif; color: #1e293b; }
header { display: flex; justify-content: space-between; align-items: center; }
.logo { max-height: 50px; }
.parties { display: flex; justify-content: space-between; margin: 2rem 0; }
table.items { width: 100%; border-collapse: collapse; }
table.items th, table.items td { border-bottom: 1px solid #e2e8f0; padding: 0.5rem; text-align: left; }
.totals { text-align: right; }
.total { font-weight: bold; font-size: 1.2rem; }"""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _BaseRepository:
    def __init__(self, prefix: str) -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)

    def _next_id(self) -> str:
        return f"{self._prefix}-{next(self._counter):05d}"


class CompanyRepository:
    def __init__(self) -> None:
        self._companies: Dict[str, Company] = {}

    async def get(self, company_id: str) -> Optional[Company]:
        return self._companies.get(company_id)

    def iter_companies(self) -> List[Company]:
        return list(self._companies.values())


class CustomerRepository:
    def __init__(self) -> None:
        self._customers: Dict[str, Customer] = {}

    async def get(self, customer_id: str) -> Optional[Customer]:
        return self._customers.get(customer_id)

    def iter_customers(self) -> List[Customer]:
        return list(self._customers.values())


class OrderRepository(_BaseRepository):
    def __init__(self) -> None:
        super().__init__("ORD")
        self._orders: Dict[str, OrderLine] = {}

    async def list_by_batch(self, batch_id: str) -> List[OrderLine]:
        return [line for line in self._orders.values() if line.batch_id == batch_id]

    async def update_status(self, order_id: str, status: str) -> Optional[OrderLine]:
        line = self._orders.get(order_id)
        if line is None:
            return None
        updated = line.model_copy(update={"status": status})
        self._orders[order_id] = updated
        return updated

    async def delete(self, order_id: str) -> bool:
        return self._orders.pop(order_id, None) is not None


class TemplateRepository:
    def __init__(self) -> None:
        self._templates: Dict[str, Template] = {}

    async def add(self, template: Template) -> Template:
        self._templates[template.id] = template
        return template

    async def get(self, template_id: str) -> Optional[Template]:
        return self._templates.get(template_id)

    async def get_default(self, company_id: str) -> Optional[Template]:
        for template in self._templates.values():
            if template.company_id == company_id and template.is_default:
                return template
        return None

    async def delete(self, template_id: str) -> bool:
        return self._templates.pop(template_id, None) is not None


class InvoiceRepository(_BaseRepository):
    def __init__(self) -> None:
        super().__init__("INV")
        self._invoices: Dict[str, Invoice] = {}

    async def create(self, fields: Dict[str, Any]) -> Invoice:
        reference = fields["reference"]
        if any(invoice.reference == reference for invoice in self._invoices.values()):
            raise ReferenceConflict(reference)

        now = _utc_now()
        invoice = Invoice(
            id=self._next_id(),
            created_at=now,
            updated_at=now,
            **fields,
        )
        self._invoices[invoice.id] = invoice
        return invoice

    async def get(self, invoice_id: str) -> Optional[Invoice]:
        return self._invoices.get(invoice_id)

    async def update(self, invoice_id: str, **changes: Any) -> Invoice:
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            raise KeyError(f"Invoice {invoice_id} not found")
        updated = invoice.model_copy(update={**changes, "updated_at": _utc_now()})
        self._invoices[invoice_id] = updated
        return updated

    async def update_status(self, invoice_id: str, status: InvoiceStatus) -> Invoice:
        return await self.update(invoice_id, status=status)

    async def delete(self, invoice_id: str) -> bool:
        return self._invoices.pop(invoice_id, None) is not None


class PaymentIntentRepository(_BaseRepository):
    def __init__(self) -> None:
        super().__init__("PI")
        self._intents: Dict[str, Dict[str, object]] = {}

    async def create(self, request: PaymentIntentRequest) -> PaymentIntent:
        intent_id = self._next_id()
        self._intents[intent_id] = {
            "intent_id": intent_id,
            "created_at": _utc_now().isoformat(),
            **request.model_dump(),
        }
        return PaymentIntent(intent_id=intent_id, invoice_id=request.invoice_id)

    async def get(self, intent_id: str) -> Optional[Dict[str, object]]:
        intent = self._intents.get(intent_id)
        return dict(intent) if intent is not None else None


class OutboxRepository(_BaseRepository):
    """Records e-mails that would have been handed to the contact service."""

    def __init__(self) -> None:
        super().__init__("MSG")
        self._messages: Dict[str, Tuple[EmailMessage, Optional[str]]] = {}

    async def record(
        self, message: EmailMessage, *, credential_key: Optional[str] = None
    ) -> EmailReceipt:
        message_id = self._next_id()
        self._messages[message_id] = (message, credential_key)
        return EmailReceipt(message_id=message_id, status="queued")

    async def list(self) -> List[EmailMessage]:
        return [message for message, _ in self._messages.values()]

    def rows(self) -> List[Dict[str, object]]:
        return [
            {
                "message_id": message_id,
                "to": message.to,
                "subject": message.subject,
                "attachments": [attachment.filename for attachment in message.attachments],
            }
            for message_id, (message, _) in self._messages.items()
        ]


@dataclass
class MockDataStore:
    companies: CompanyRepository
    customers: CustomerRepository
    orders: OrderRepository
    templates: TemplateRepository
    invoices: InvoiceRepository
    payment_intents: PaymentIntentRepository
    outbox: OutboxRepository


def _seed(store: MockDataStore) -> None:
    store.companies._companies[SEED_COMPANY_ID] = Company(
        id=SEED_COMPANY_ID,
        name="Acme Supplies Ltd",
        email="accounts@acme.example",
        phone="020 7946 0958",
        website="https://acme.example",
        address_line1="1 Market Street",
        address_line2="Unit 4",
        city="London",
        postcode="EC1A 1AA",
        bank_name="Example Bank",
        account_name="Acme Supplies Ltd",
        account_number="12345678",
        sort_code="12-34-56",
    )
    store.customers._customers[SEED_CUSTOMER_ID] = Customer(
        id=SEED_CUSTOMER_ID,
        first_name="Jane",
        last_name="Doe",
        email="jane.doe@example.com",
        phone="07911 123456",
        address_line1="22 Acacia Avenue",
        city="Leeds",
        county="West Yorkshire",
        postcode="LS1 4AB",
        country="United Kingdom",
    )
    store.templates._templates[SEED_TEMPLATE_ID] = Template(
        id=SEED_TEMPLATE_ID,
        name="Standard",
        html=DEFAULT_TEMPLATE_HTML,
        css=DEFAULT_TEMPLATE_CSS,
        company_id=SEED_COMPANY_ID,
        is_default=True,
    )
    for product_name, quantity, unit_price in (
        ("Widget", 2, "10.00"),
        ("Gadget", 1, "24.50"),
        ("Widget", 1, "10.00"),
    ):
        order_id = store.orders._next_id()
        store.orders._orders[order_id] = OrderLine(
            id=order_id,
            product_name=product_name,
            quantity=quantity,
            unit_price=Decimal(unit_price),
            total_price=Decimal(unit_price) * quantity,
            batch_id=SEED_BATCH_ID,
            customer_id=SEED_CUSTOMER_ID,
            company_id=SEED_COMPANY_ID,
            status="pending",
        )


_mock_store: Optional[MockDataStore] = None


def get_mock_store() -> MockDataStore:
    global _mock_store
    if _mock_store is None:
        _mock_store = MockDataStore(
            companies=CompanyRepository(),
            customers=CustomerRepository(),
            orders=OrderRepository(),
            templates=TemplateRepository(),
            invoices=InvoiceRepository(),
            payment_intents=PaymentIntentRepository(),
            outbox=OutboxRepository(),
        )
        _seed(_mock_store)
    return _mock_store


def reset_mock_store() -> None:
    global _mock_store
    _mock_store = None
