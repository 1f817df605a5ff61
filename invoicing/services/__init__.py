"""Service package public API definitions.

The service implementations depend on ``invoicing.clients.http``, which in turn
imports ``invoicing.services.exceptions``. Importing the implementations eagerly
here would make that a circular import, so they are resolved lazily on first
attribute access instead.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "EmailService",
    "InvoiceService",
    "PaymentService",
    "PdfRenderer",
    "RecordStore",
]

_SERVICE_MODULES = {
    "EmailService": "notifications",
    "InvoiceService": "invoice",
    "PaymentService": "payments",
    "PdfRenderer": "rendering",
    "RecordStore": "records",
}


def __getattr__(name: str) -> Any:
    if name not in _SERVICE_MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module = import_module(f".{_SERVICE_MODULES[name]}", __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .invoice import InvoiceService as InvoiceService
    from .notifications import EmailService as EmailService
    from .payments import PaymentService as PaymentService
    from .records import RecordStore as RecordStore
    from .rendering import PdfRenderer as PdfRenderer
