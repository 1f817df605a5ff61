from __future__ import annotations

import logging
import secrets
import string
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from invoicing.clients.http import ServiceClient
from invoicing.schemas.billing import Invoice, InvoiceStatus
from invoicing.schemas.orders import OrderLine
from invoicing.schemas.parties import Company, Customer
from invoicing.schemas.templates import Template
from invoicing.services.exceptions import (
    DownstreamServiceError,
    ReferenceConflict,
    ServiceError,
)
from invoicing.services.mock_store import MockDataStore, get_mock_store

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.digits + string.ascii_uppercase
REFERENCE_LENGTH = 8


def generate_reference() -> str:
    return "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_LENGTH))


class RecordStore:
    """Key-based access to companies, customers, orders, templates and invoices.

    In mock mode the shared in-memory store answers; otherwise the records
    service is called and a 404 is reported as ``None``.
    """

    def __init__(
        self,
        client: ServiceClient,
        *,
        repository: MockDataStore | None = None,
        reference_max_attempts: int = 5,
    ) -> None:
        self._client = client
        self._repository = repository
        self._reference_max_attempts = reference_max_attempts
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store()

    def _store(self) -> MockDataStore:
        if not self._repository:
            raise RuntimeError("Mock record store not configured")
        return self._repository

    async def _get_or_none(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        try:
            return await self._client.get(path, params=params)
        except DownstreamServiceError as exc:
            if exc.status_code == 404:
                return None
            raise

    async def find_company(self, company_id: str) -> Optional[Company]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._store().companies.get(company_id)
        data = await self._get_or_none(f"/companies/{company_id}")
        return Company(**data) if data else None

    async def find_customer(self, customer_id: str) -> Optional[Customer]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._store().customers.get(customer_id)
        data = await self._get_or_none(f"/customers/{customer_id}")
        return Customer(**data) if data else None

    async def find_order_lines(self, batch_id: str) -> List[OrderLine]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._store().orders.list_by_batch(batch_id)
        data = await self._get_or_none("/orders", params={"batch_id": batch_id})
        if not data:
            return []
        rows = data.get("items", []) if isinstance(data, dict) else data
        return [OrderLine(**row) for row in rows]

    async def update_order_status(self, order_id: str, status: str) -> None:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            await self._store().orders.update_status(order_id, status)
            return
        await self._client.patch(f"/orders/{order_id}", {"status": status})

    async def find_template(self, template_id: str) -> Optional[Template]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._store().templates.get(template_id)
        data = await self._get_or_none(f"/templates/{template_id}")
        return Template(**data) if data else None

    async def find_default_template(self, company_id: str) -> Optional[Template]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._store().templates.get_default(company_id)
        data = await self._get_or_none("/templates/default", params={"company_id": company_id})
        return Template(**data) if data else None

    async def find_invoice(self, invoice_id: str) -> Optional[Invoice]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._store().invoices.get(invoice_id)
        data = await self._get_or_none(f"/invoices/{invoice_id}")
        return Invoice(**data) if data else None

    async def create_invoice(
        self,
        *,
        company_id: str,
        customer_id: str,
        order_batch_id: str,
        template_id: str,
        amount: Decimal,
        currency: str,
        due_date: date,
    ) -> Invoice:
        """Persist a draft invoice, regenerating the reference on conflict."""
        fields: Dict[str, Any] = {
            "company_id": company_id,
            "customer_id": customer_id,
            "order_batch_id": order_batch_id,
            "template_id": template_id,
            "amount": amount,
            "currency": currency,
            "due_date": due_date,
            "status": InvoiceStatus.DRAFT,
        }
        for attempt in range(1, self._reference_max_attempts + 1):
            fields["reference"] = generate_reference()
            try:
                return await self._insert_invoice(fields)
            except ReferenceConflict as exc:
                logger.warning(
                    "Reference %s already taken (attempt %s/%s)",
                    exc.reference,
                    attempt,
                    self._reference_max_attempts,
                )
        raise ServiceError("Could not allocate a unique invoice reference")

    async def _insert_invoice(self, fields: Dict[str, Any]) -> Invoice:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._store().invoices.create(dict(fields))

        payload = {
            **fields,
            "amount": str(fields["amount"]),
            "due_date": fields["due_date"].isoformat(),
            "status": fields["status"].value,
        }
        try:
            data = await self._client.post("/invoices", payload)
        except DownstreamServiceError as exc:
            if exc.status_code == 409:
                raise ReferenceConflict(fields["reference"]) from exc
            raise
        return Invoice(**data)

    async def update_invoice_status(self, invoice_id: str, status: InvoiceStatus) -> Invoice:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._store().invoices.update_status(invoice_id, status)
        data = await self._client.patch(f"/invoices/{invoice_id}", {"status": status.value})
        return Invoice(**data)

    async def attach_payment_intent(self, invoice_id: str, intent_id: str) -> Invoice:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._store().invoices.update(invoice_id, payment_intent_id=intent_id)
        data = await self._client.patch(
            f"/invoices/{invoice_id}", {"payment_intent_id": intent_id}
        )
        return Invoice(**data)
