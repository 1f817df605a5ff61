from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, Field


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    VOID = "void"

    def can_move_to(self, target: "InvoiceStatus") -> bool:
        return target is self or target in _FORWARD_TRANSITIONS[self]


_FORWARD_TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.AWAITING_PAYMENT, InvoiceStatus.VOID}),
    InvoiceStatus.AWAITING_PAYMENT: frozenset({InvoiceStatus.PAID, InvoiceStatus.VOID}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.VOID: frozenset(),
}


class Invoice(BaseModel):
    id: str
    reference: str
    company_id: str
    customer_id: str
    order_batch_id: str
    template_id: str
    amount: Decimal
    currency: str
    due_date: date
    status: InvoiceStatus = InvoiceStatus.DRAFT
    created_at: datetime
    updated_at: datetime
    payment_intent_id: Optional[str] = None


class InvoiceCreateRequest(BaseModel):
    batch_id: str
    template_id: str
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    due_date: Optional[date] = None


class InvoiceSendResponse(BaseModel):
    message: str
    invoice_id: str
    reference: str
    status: InvoiceStatus
    email_message_id: Optional[str] = None


class PaymentLinkResponse(BaseModel):
    payment_link: str


class PaymentIntentRequest(BaseModel):
    invoice_id: str
    amount_minor_units: int = Field(ge=0)
    currency_code: str
    success_url: str
    cancel_url: str
    company_id: str


class PaymentIntent(BaseModel):
    intent_id: str
    invoice_id: str
    status: str = "pending"
