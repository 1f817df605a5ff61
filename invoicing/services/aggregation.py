"""Fold the order lines of one batch into invoice line items and totals."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Sequence

from invoicing.schemas.orders import MergedLineItem, OrderLine, OrderSummary
from invoicing.services.exceptions import EmptyBatchError

TAX_RATE = Decimal("0.20")
_CENT = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def aggregate(lines: Sequence[OrderLine], *, batch_id: str = "") -> OrderSummary:
    """Merge lines by product name and compute subtotal, tax and total.

    Items keep the first-seen order of product names. The unit price shown for a
    merged item is the one from its first occurrence. The subtotal is summed over
    the raw lines, not the merged ones.
    """
    if not lines:
        raise EmptyBatchError(batch_id)

    merged: Dict[str, MergedLineItem] = {}
    for line in lines:
        existing = merged.get(line.product_name)
        if existing is None:
            merged[line.product_name] = MergedLineItem(
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.total_price,
            )
            continue
        merged[line.product_name] = existing.model_copy(
            update={
                "quantity": existing.quantity + line.quantity,
                "total_price": existing.total_price + line.total_price,
            }
        )

    subtotal = _money(sum((line.total_price for line in lines), Decimal("0")))
    tax = _money(subtotal * TAX_RATE)
    return OrderSummary(
        items=list(merged.values()),
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax,
    )
