"""Development page listing the records held by the in-memory store."""
from __future__ import annotations

import html
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from fastapi import APIRouter, HTTPException
from fastapi.responses import HTMLResponse

from invoicing.services.mock_store import MockDataStore, get_mock_store

router = APIRouter()

PAGE_TITLE = "Mock Data Overview"
EMPTY_MESSAGE = "No records found."

Section = Tuple[str, Sequence[str], List[Dict[str, Any]]]


def _sections(store: MockDataStore) -> List[Section]:
    def dump(records: Iterable[Any]) -> List[Dict[str, Any]]:
        return [record.model_dump(mode="json") for record in records]

    return [
        ("Companies", ("id", "name", "email", "phone", "city", "postcode"),
         dump(store.companies.iter_companies())),
        ("Customers", ("id", "first_name", "last_name", "email", "phone", "city"),
         dump(store.customers.iter_customers())),
        ("Orders", ("id", "batch_id", "product_name", "quantity", "unit_price", "total_price", "status"),
         dump(store.orders._orders.values())),
        # markup and stylesheets are left out
        ("Templates", ("id", "name", "company_id", "is_default"),
         dump(store.templates._templates.values())),
        ("Invoices", ("id", "reference", "order_batch_id", "amount", "currency", "due_date", "status", "payment_intent_id"),
         dump(store.invoices._invoices.values())),
        ("Payment intents", ("intent_id", "invoice_id", "amount_minor_units", "currency_code"),
         list(store.payment_intents._intents.values())),
        ("Outbox", ("message_id", "to", "subject", "attachments"),
         store.outbox.rows()),
    ]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        value = ", ".join(str(item) for item in value)
    return html.escape(str(value))


def _render_section(title: str, columns: Sequence[str], rows: List[Dict[str, Any]]) -> str:
    if not rows:
        return f"<section><h2>{html.escape(title)}</h2><p>{EMPTY_MESSAGE}</p></section>"
    head = "".join(f"<th>{html.escape(column)}</th>" for column in columns)
    body = "".join(
        "<tr>" + "".join(f"<td>{_cell(row.get(column))}</td>" for column in columns) + "</tr>"
        for row in rows
    )
    return (
        f"<section><h2>{html.escape(title)}</h2>"
        f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table></section>"
    )


@router.get("/mock-data", response_class=HTMLResponse)
async def view_mock_data() -> HTMLResponse:
    sections = "".join(_render_section(*section) for section in _sections(get_mock_store()))
    return HTMLResponse(
        content=(
            f"<html><head><title>{PAGE_TITLE}</title><style>"
            "body { font-family: Arial, sans-serif; margin: 2rem; }"
            "table { border-collapse: collapse; width: 100%; }"
            "th, td { border: 1px solid #ccc; padding: 0.4rem; text-align: left; }"
            "</style></head>"
            f"<body><h1>{PAGE_TITLE}</h1>{sections}</body></html>"
        )
    )


@router.delete("/mock-data/{collection}/{record_id}")
async def delete_mock_record(collection: str, record_id: str) -> Dict[str, str]:
    """Drop an order, template or invoice from the in-memory store."""
    store = get_mock_store()
    deleters = {
        "orders": store.orders.delete,
        "templates": store.templates.delete,
        "invoices": store.invoices.delete,
    }
    name = collection.strip().lower()
    delete = deleters.get(name)
    if delete is None:
        raise HTTPException(status_code=404, detail="Unsupported mock data collection")
    if not await delete(record_id):
        raise HTTPException(status_code=404, detail="Record not found")
    return {"status": "deleted", "collection": name, "record_id": record_id}
