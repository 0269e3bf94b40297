"""Core order workflow: link resolution, assembly, persistence."""
from .assembler import CustomerDetails, LineRequest, OrderAssembler, split_revenue
from .errors import (
    ConflictError,
    ExternalServiceError,
    InvalidProductError,
    InvalidRequestError,
    LinkNotFoundError,
    NotFoundError,
    OrderError,
)
from .links import LinkResolver, ResolvedLink
from .order_store import OrderStore

__all__ = [
    "ConflictError",
    "CustomerDetails",
    "ExternalServiceError",
    "InvalidProductError",
    "InvalidRequestError",
    "LineRequest",
    "LinkNotFoundError",
    "LinkResolver",
    "NotFoundError",
    "OrderAssembler",
    "OrderError",
    "OrderStore",
    "ResolvedLink",
    "split_revenue",
]
