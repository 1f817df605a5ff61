from __future__ import annotations

import logging

from invoicing.clients.http import ServiceClient
from invoicing.schemas.billing import PaymentIntent, PaymentIntentRequest
from invoicing.services.exceptions import DownstreamServiceError, ServiceError
from invoicing.services.mock_store import PaymentIntentRepository, get_mock_store

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(
        self,
        client: ServiceClient,
        *,
        base_url: str,
        repository: PaymentIntentRepository | None = None,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._repository = repository
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().payment_intents

    def payment_link(self, invoice_id: str) -> str:
        return f"{self._base_url}/api/pay/{invoice_id}"

    async def create_intent(self, request: PaymentIntentRequest) -> PaymentIntent:
        logger.info(
            "Requesting payment intent for invoice %s (%s %s)",
            request.invoice_id,
            request.amount_minor_units,
            request.currency_code,
        )
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            if not self._repository:
                raise RuntimeError("Mock payment repository not configured")
            return await self._repository.create(request)

        try:
            payload = {
                "invoiceId": request.invoice_id,
                "amount": request.amount_minor_units,
                "currency": request.currency_code,
                "successUrl": request.success_url,
                "cancelUrl": request.cancel_url,
                "companyId": request.company_id,
            }
            data = await self._client.post("/api/payment-intents", payload)
            return PaymentIntent(
                intent_id=str(data.get("id") or data.get("intent_id")),
                invoice_id=request.invoice_id,
                status=str(data.get("status", "pending")),
            )
        except ServiceError:
            raise
        except Exception as exc:  # pragma: no cover
            logger.exception("Unexpected error while creating payment intent")
            raise DownstreamServiceError("Failed to create payment intent", cause=exc) from exc
