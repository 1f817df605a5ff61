from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse, Response

from invoicing.dependencies.services import get_invoice_service
from invoicing.schemas.billing import (
    Invoice,
    InvoiceCreateRequest,
    InvoiceSendResponse,
    PaymentLinkResponse,
)
from invoicing.schemas.templates import PresentationMode
from invoicing.services import InvoiceService
from invoicing.services.exceptions import (
    DownstreamServiceError,
    InvalidStatusTransitionError,
    MalformedTemplateError,
    NotFoundError,
    RenderingFailedError,
    ServiceError,
)

router = APIRouter()


def _http_error(exc: ServiceError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, InvalidStatusTransitionError):
        status_code = 409
    elif isinstance(exc, MalformedTemplateError):
        status_code = 422
    elif isinstance(exc, (DownstreamServiceError, RenderingFailedError)):
        status_code = 502
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=str(exc))


@router.post("", response_model=Invoice, status_code=201)
async def create_invoice(
    req: InvoiceCreateRequest,
    service: InvoiceService = Depends(get_invoice_service),
):
    try:
        return await service.create(req)
    except ServiceError as exc:
        raise _http_error(exc) from exc


@router.get("/{invoice_id}", response_class=HTMLResponse)
async def get_invoice_document(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
):
    try:
        markup = await service.render_html(invoice_id, PresentationMode.PLAIN)
    except ServiceError as exc:
        raise _http_error(exc) from exc
    return HTMLResponse(content=markup)


@router.get("/{invoice_id}/view", response_class=HTMLResponse)
async def view_invoice(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
):
    try:
        markup = await service.render_html(invoice_id, PresentationMode.INTERACTIVE)
    except ServiceError as exc:
        raise _http_error(exc) from exc
    return HTMLResponse(content=markup)


@router.get("/{invoice_id}/pdf")
async def download_invoice_pdf(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
):
    try:
        pdf = await service.generate_pdf(invoice_id)
    except ServiceError as exc:
        raise _http_error(exc) from exc
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=invoice-{invoice_id}.pdf"},
    )


@router.get("/{invoice_id}/payment-link", response_model=PaymentLinkResponse)
async def get_payment_link(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
):
    try:
        return PaymentLinkResponse(payment_link=await service.payment_link(invoice_id))
    except ServiceError as exc:
        raise _http_error(exc) from exc


@router.post("/{invoice_id}/send", response_model=InvoiceSendResponse)
async def send_invoice(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
):
    try:
        return await service.send(invoice_id)
    except ServiceError as exc:
        raise _http_error(exc) from exc
