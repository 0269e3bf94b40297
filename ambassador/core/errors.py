"""
Exception classes for the order workflow.

Every error carries a stable ``error_code`` for clients and the HTTP status
the API layer answers with. Duplicate completions are not an error: the
settlement guard absorbs them.
"""
from typing import Any, Optional


class OrderError(Exception):
    """Base exception for order workflow errors."""

    error_code = "order_error"
    http_status = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidRequestError(OrderError):
    """Malformed payload: bad quantity, empty product list and similar."""

    error_code = "invalid_request"
    http_status = 400


class NotFoundError(OrderError):
    """A referenced order, product or link does not exist."""

    error_code = "not_found"
    http_status = 404


class LinkNotFoundError(NotFoundError):
    """Unknown or blank referral code. Reported to callers as a bad request."""

    error_code = "invalid_link"
    http_status = 400

    def __init__(self, code: str):
        super().__init__("Invalid link!", code=code)
        self.code = code


class InvalidProductError(NotFoundError):
    """An order request names a product that is not in the catalog."""

    error_code = "invalid_product"
    http_status = 400

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", product_id=product_id)
        self.product_id = product_id


class ConflictError(OrderError):
    """State transition that is not allowed, such as attaching a second payment reference."""

    error_code = "conflict"
    http_status = 409


class ExternalServiceError(OrderError):
    """Storage or third-party failure during the order workflow."""

    error_code = "external_service_failure"
    http_status = 502

    def __init__(self, message: str, original_error: Optional[Exception] = None, **context: Any):
        super().__init__(message, **context)
        self.original_error = original_error
