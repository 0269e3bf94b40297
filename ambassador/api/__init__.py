"""FastAPI application and routes."""
from .schemas import (
    CheckoutSessionResponse,
    ConfirmOrderRequest,
    CreateOrderRequest,
    OrderResponse,
)

__all__ = [
    "CheckoutSessionResponse",
    "ConfirmOrderRequest",
    "CreateOrderRequest",
    "OrderResponse",
]
