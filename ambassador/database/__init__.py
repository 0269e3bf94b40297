"""Database package for ambassador orders."""
from .connection import close_db, create_session_factory, get_session_factory, init_db
from .models import (
    Base,
    Link,
    Order,
    OrderItem,
    Product,
    User,
)

__all__ = [
    "Base",
    "Link",
    "Order",
    "OrderItem",
    "Product",
    "User",
    "close_db",
    "create_session_factory",
    "get_session_factory",
    "init_db",
]
