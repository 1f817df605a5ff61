class ServiceError(Exception):
    """Base exception for service layer failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class NotFoundError(ServiceError):
    """Raised when an invoice, template, company, customer or batch is absent."""

    def __init__(self, resource: str, identifier: str, *, message: str | None = None):
        super().__init__(message or f"{resource} not found")
        self.resource = resource
        self.identifier = identifier


class EmptyBatchError(NotFoundError):
    """Raised when an order batch resolves to zero order lines."""

    def __init__(self, batch_id: str):
        super().__init__("Order batch", batch_id, message="Order details not found")
        self.batch_id = batch_id


class MalformedTemplateError(ServiceError):
    """Raised when a template lacks one of the anchor markers."""

    def __init__(self, marker: str):
        super().__init__(f"Template is missing the {marker} marker")
        self.marker = marker


class DocumentNotReady(ServiceError):
    """The source document for a render is not yet available."""


class RenderingFailedError(ServiceError):
    """Raised when the PDF pipeline gives up."""

    def __init__(self, message: str, *, attempts: int, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.attempts = attempts


class DownstreamServiceError(ServiceError):
    """Raised when an external service returns an error response."""

    def __init__(self, message: str, status_code: int | None = None, *, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code


class InvalidStatusTransitionError(ServiceError):
    """Raised when an invoice status would move backwards."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move invoice from {current} to {target}")
        self.current = current
        self.target = target


class ReferenceConflict(ServiceError):
    """Raised by a store when an invoice reference is already taken."""

    def __init__(self, reference: str):
        super().__init__(f"Invoice reference {reference} already exists")
        self.reference = reference
