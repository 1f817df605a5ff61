from __future__ import annotations

from functools import lru_cache
from typing import List

from fastapi import Depends

from invoicing.clients.http import ServiceClient
from invoicing.config import Settings, get_settings
from invoicing.services import (
    EmailService,
    InvoiceService,
    PaymentService,
    PdfRenderer,
    RecordStore,
)


def _client(name: str, base_url, settings: Settings) -> ServiceClient:
    return ServiceClient(
        base_url,
        name=name,
        timeout=settings.service_timeout,
        use_mock_data=settings.use_mock_data,
        api_key=settings.api_key,
        service_name=settings.service_name,
    )


@lru_cache(maxsize=1)
def get_records_client_cached() -> ServiceClient:
    settings = get_settings()
    return _client("records", settings.records_service_url, settings)


@lru_cache(maxsize=1)
def get_payment_client_cached() -> ServiceClient:
    settings = get_settings()
    return _client("payment", settings.payment_service_url, settings)


@lru_cache(maxsize=1)
def get_contact_client_cached() -> ServiceClient:
    settings = get_settings()
    return _client("contact", settings.contact_service_url, settings)


def all_clients() -> List[ServiceClient]:
    return [
        get_records_client_cached(),
        get_payment_client_cached(),
        get_contact_client_cached(),
    ]


def get_record_store(settings: Settings = Depends(get_settings)) -> RecordStore:
    return RecordStore(
        get_records_client_cached(),
        reference_max_attempts=settings.reference_max_attempts,
    )


def get_payment_service(settings: Settings = Depends(get_settings)) -> PaymentService:
    return PaymentService(get_payment_client_cached(), base_url=settings.payment_service_url)


def get_email_service(settings: Settings = Depends(get_settings)) -> EmailService:
    return EmailService(
        get_contact_client_cached(),
        credential_id=settings.default_email_credential_id,
    )


def get_pdf_renderer(settings: Settings = Depends(get_settings)) -> PdfRenderer:
    return PdfRenderer(
        max_attempts=settings.render_max_attempts,
        retry_delay=settings.render_retry_delay,
        timeout=settings.render_timeout,
    )


def get_invoice_service(
    records: RecordStore = Depends(get_record_store),
    payments: PaymentService = Depends(get_payment_service),
    emails: EmailService = Depends(get_email_service),
    renderer: PdfRenderer = Depends(get_pdf_renderer),
    settings: Settings = Depends(get_settings),
) -> InvoiceService:
    return InvoiceService(records, payments, emails, renderer, settings)
