"""Placeholder substitution for merchant invoice templates.

Templates are plain markup carrying ``{{scope.field}}`` placeholders from a
fixed vocabulary. Resolution happens in one left-to-right pass over the markup
with the longest placeholders tried first, so the combined customer name is
never split into its parts and substituted values are never rescanned.

After substitution the template stylesheet is injected before ``</head>``.
Interactive documents also get an action bar (logo, pay link, PDF download)
right after ``<body>``, hidden again by a print media rule.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, List, Optional, Tuple

from invoicing.schemas.billing import Invoice
from invoicing.schemas.orders import MergedLineItem, OrderSummary
from invoicing.schemas.parties import Company, Customer
from invoicing.schemas.templates import PresentationMode, Template
from invoicing.services.exceptions import MalformedTemplateError
from invoicing.services.phone import normalize

HEAD_CLOSE = re.compile(r"</head\s*>", re.IGNORECASE)
BODY_OPEN = re.compile(r"<body\b[^>]*>", re.IGNORECASE)

DATE_FORMAT = "%Y-%m-%d"

CURRENCY_SYMBOLS: Dict[str, str] = {
    "GBP": "£",
    "EUR": "€",
    "USD": "$",
}

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class RenderingContext:
    company: Company
    customer: Customer
    invoice: Invoice
    summary: OrderSummary
    logo_url: str = ""
    payment_url: str = ""
    pdf_url: str = ""


Resolver = Callable[[RenderingContext], str]


def format_amount(value: Decimal) -> str:
    return str(Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP))


def currency_symbol(code: str) -> str:
    code = (code or "").upper()
    return CURRENCY_SYMBOLS.get(code, f"{code} " if code else "")


def _text(value: Optional[str]) -> str:
    return html.escape(value) if value else ""


def _first_address_line(line1: Optional[str], line2: Optional[str]) -> str:
    # the comma separates line1 from line2, it is not a terminator
    if not line1:
        return ""
    return _text(line1 + ", ") if line2 else _text(line1)


def _item_row(item: MergedLineItem, symbol: str) -> str:
    return (
        "\n<tr>"
        f"\n    <td>{_text(item.product_name)}</td>"
        f"\n    <td>{item.quantity}</td>"
        f"\n    <td>{html.escape(symbol)}{format_amount(item.unit_price)}</td>"
        f"\n    <td>{html.escape(symbol)}{format_amount(item.total_price)}</td>"
        "\n</tr>"
    )


def _item_rows(ctx: RenderingContext) -> str:
    symbol = currency_symbol(ctx.invoice.currency)
    return "".join(_item_row(item, symbol) for item in ctx.summary.items) + "\n"


PLACEHOLDERS: List[Tuple[str, Resolver]] = [
    ("{{company.name}}", lambda ctx: _text(ctx.company.name)),
    (
        "{{company.address_line1}}",
        lambda ctx: _first_address_line(ctx.company.address_line1, ctx.company.address_line2),
    ),
    ("{{company.address_line2}}", lambda ctx: _text(ctx.company.address_line2)),
    ("{{company.city}}", lambda ctx: _text(ctx.company.city)),
    ("{{company.county}}", lambda ctx: _text(ctx.company.county)),
    ("{{company.postcode}}", lambda ctx: _text(ctx.company.postcode)),
    ("{{company.email}}", lambda ctx: _text(ctx.company.email)),
    ("{{company.phone}}", lambda ctx: _text(normalize(ctx.company.phone))),
    ("{{company.website}}", lambda ctx: _text(ctx.company.website)),
    ("{{company.logo}}", lambda ctx: html.escape(ctx.logo_url)),
    ("{{company.bank_name}}", lambda ctx: _text(ctx.company.bank_name)),
    ("{{company.account_name}}", lambda ctx: _text(ctx.company.account_name)),
    ("{{company.account_number}}", lambda ctx: _text(ctx.company.account_number)),
    ("{{company.sort_code}}", lambda ctx: _text(ctx.company.sort_code)),
    ("{{company.iban_number}}", lambda ctx: _text(ctx.company.iban_number)),
    (
        "{{customer.first_name}} {{customer.last_name}}",
        lambda ctx: _text(ctx.customer.full_name),
    ),
    ("{{customer.first_name}}", lambda ctx: _text(ctx.customer.first_name)),
    ("{{customer.last_name}}", lambda ctx: _text(ctx.customer.last_name)),
    (
        "{{customer.address_line1}}",
        lambda ctx: _first_address_line(ctx.customer.address_line1, ctx.customer.address_line2),
    ),
    ("{{customer.address_line2}}", lambda ctx: _text(ctx.customer.address_line2)),
    ("{{customer.address_line3}}", lambda ctx: _text(ctx.customer.address_line3)),
    ("{{customer.city}}", lambda ctx: _text(ctx.customer.city)),
    (
        "{{customer.county}}",
        lambda ctx: _text(ctx.customer.county) + "<br>" if ctx.customer.county else "",
    ),
    ("{{customer.postcode}}", lambda ctx: _text(ctx.customer.postcode)),
    ("{{customer.country}}", lambda ctx: _text(ctx.customer.country)),
    ("{{customer.email}}", lambda ctx: _text(ctx.customer.email)),
    ("{{customer.phone}}", lambda ctx: _text(normalize(ctx.customer.phone))),
    ("{{invoice.id}}", lambda ctx: _text(ctx.invoice.reference)),
    ("{{invoice.reference}}", lambda ctx: _text(ctx.invoice.reference)),
    ("{{invoice.key_id}}", lambda ctx: html.escape(ctx.payment_url)),
    ("{{invoice.created_at}}", lambda ctx: ctx.invoice.created_at.strftime(DATE_FORMAT)),
    ("{{invoice.due_date}}", lambda ctx: ctx.invoice.due_date.strftime(DATE_FORMAT)),
    ("{{invoice.status}}", lambda ctx: ctx.invoice.status.value.upper()),
    ("{{invoice.currency}}", lambda ctx: _text(ctx.invoice.currency)),
    ("{{invoice.subtotal}}", lambda ctx: format_amount(ctx.summary.subtotal)),
    ("{{invoice.tax}}", lambda ctx: format_amount(ctx.summary.tax)),
    ("{{invoice.total}}", lambda ctx: format_amount(ctx.summary.total)),
    ("{{invoice.items}}", _item_rows),
]

_RESOLVERS: Dict[str, Resolver] = dict(PLACEHOLDERS)
_PLACEHOLDER_PATTERN = re.compile(
    "|".join(re.escape(key) for key in sorted(_RESOLVERS, key=len, reverse=True))
)

_ACTION_BAR = """
<div class="invoice-actions" style="position: fixed; top: 0; left: 0; right: 0; background-color: white; padding: 10px 20px; display: flex; justify-content: space-between; align-items: center; box-shadow: 0 2px 4px rgba(0,0,0,0.1); z-index: 1000;">
    <img src="{logo_url}" alt="{company_name} logo" style="height: 40px; object-fit: contain;" />
    <div style="display: flex; gap: 10px;">
        <a href="{payment_url}" class="invoice-actions-pay" style="padding: 10px 20px; background-color: #1a73e8; color: white; text-decoration: none; border-radius: 5px; font-weight: 500;">Pay Invoice</a>
        <a href="{pdf_url}" class="invoice-actions-download" style="padding: 10px 20px; background-color: #5f6368; color: white; text-decoration: none; border-radius: 5px; font-weight: 500;">Download PDF</a>
    </div>
</div>
<div class="invoice-actions-spacer" style="height: 60px;"></div>
"""

PRINT_RULE = """@media print {
    .invoice-actions,
    .invoice-actions-spacer {
        display: none !important;
    }
}"""


def substitute(markup: str, context: RenderingContext) -> str:
    """Resolve every vocabulary placeholder in ``markup``."""
    cache: Dict[str, str] = {}

    def _replace(match: re.Match) -> str:
        key = match.group(0)
        if key not in cache:
            cache[key] = _RESOLVERS[key](context)
        return cache[key]

    return _PLACEHOLDER_PATTERN.sub(_replace, markup)


def action_bar(context: RenderingContext) -> str:
    return _ACTION_BAR.format(
        logo_url=html.escape(context.logo_url),
        company_name=html.escape(context.company.name),
        payment_url=html.escape(context.payment_url),
        pdf_url=html.escape(context.pdf_url),
    )


def style_block(css: str, mode: PresentationMode) -> str:
    rules = [css] if css else []
    if mode is PresentationMode.INTERACTIVE:
        rules.append(PRINT_RULE)
    return "<style>\n" + "\n".join(rules) + "\n</style>\n"


def render_document(
    template: Template,
    context: RenderingContext,
    mode: PresentationMode = PresentationMode.PLAIN,
) -> str:
    """Return the fully resolved markup for ``template``.

    Raises:
        MalformedTemplateError: the template has no ``</head>`` or ``<body>``.
    """
    if not HEAD_CLOSE.search(template.html):
        raise MalformedTemplateError("</head>")
    if not BODY_OPEN.search(template.html):
        raise MalformedTemplateError("<body>")

    markup = substitute(template.html, context)

    if mode is PresentationMode.INTERACTIVE:
        bar = action_bar(context)
        markup = BODY_OPEN.sub(lambda match: match.group(0) + bar, markup, count=1)

    styles = style_block(template.css, mode)
    return HEAD_CLOSE.sub(lambda match: styles + match.group(0), markup, count=1)
