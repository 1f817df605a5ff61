from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class OrderLine(BaseModel):
    """A single order row as read from the order store."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    product_name: str
    quantity: int = Field(gt=0)
    unit_price: Decimal
    total_price: Decimal
    batch_id: str
    customer_id: str
    company_id: str
    status: Optional[str] = None


class MergedLineItem(BaseModel):
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class OrderSummary(BaseModel):
    items: List[MergedLineItem]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
