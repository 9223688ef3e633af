"""Domain errors raised by the service layer.

Each error knows the HTTP status and machine code it is reported with, so the
routers never translate them by hand; the handlers in
``core.exception_handlers`` serialise them into the error envelope.
"""
from typing import Optional


class WorkshopError(Exception):
    """Base class for all expected business failures."""
    status_code = 500
    code = "server_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthenticationError(WorkshopError):
    """Missing, malformed or expired access token."""
    status_code = 401
    code = "unauthorized"


class ForbiddenError(WorkshopError):
    """Caller is authenticated but their role may not perform the operation."""
    status_code = 403
    code = "forbidden"


class ValidationError(WorkshopError):
    """Request is well formed JSON but semantically invalid."""
    status_code = 400
    code = "validation_error"


class NotFoundError(WorkshopError):
    """Entity does not exist or belongs to another dealer."""
    status_code = 404
    code = "not_found"


class ConflictError(WorkshopError):
    """Entity already left the state the operation requires."""
    status_code = 409
    code = "conflict"


class InsufficientStockError(WorkshopError):
    """Raised when available stock cannot cover the requested quantity"""
    status_code = 422
    code = "insufficient_stock"

    def __init__(self, requested: int, available: int, product_name: Optional[str] = None):
        self.requested = requested
        self.available = available
        self.product_name = product_name
        label = f" for {product_name}" if product_name else ""
        super().__init__(f"Insufficient stock{label}: requested {requested}, available {available}")
