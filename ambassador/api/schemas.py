"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class OrderProductRequest(BaseModel):
    """One requested product line."""

    product_id: int = Field(..., gt=0, description="Catalog product id")
    quantity: int = Field(..., gt=0, strict=True, description="Units to buy (positive integer)")


class CreateOrderRequest(BaseModel):
    """Request schema for creating an order through a referral link."""

    code: str = Field(..., min_length=1, description="Referral link code")
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    address: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    zip: Optional[str] = None
    products: List[OrderProductRequest] = Field(..., min_length=1)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "code": "ABC123",
                    "first_name": "Jane",
                    "last_name": "Doe",
                    "email": "jane@example.com",
                    "address": "1 Main St",
                    "country": "US",
                    "city": "Springfield",
                    "zip": "12345",
                    "products": [{"product_id": 1, "quantity": 2}],
                }
            ]
        }
    }


class CheckoutSessionResponse(BaseModel):
    """Payment session descriptor; the client redirects the buyer to ``url``."""

    id: str = Field(..., description="Stripe Checkout Session id")
    url: Optional[str] = Field(default=None, description="Hosted checkout page")
    order_id: int = Field(..., description="Order id")


class ConfirmOrderRequest(BaseModel):
    """Payment confirmation; ``source`` is the Checkout Session id."""

    source: str = Field(..., min_length=1, description="Payment reference")


class MessageResponse(BaseModel):
    message: str


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    product_title: str
    price: Decimal
    quantity: int
    admin_revenue: Decimal
    ambassador_revenue: Decimal


class OrderResponse(BaseModel):
    """Order as shown in the admin listing, with computed name and total."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    transaction_id: Optional[str] = None
    user_id: int
    code: str
    ambassador_email: str
    first_name: str
    last_name: str
    name: str
    email: str
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None
    complete: bool
    total: Decimal
    created_at: Optional[datetime] = None
    order_items: List[OrderItemResponse] = Field(default_factory=list, validation_alias="items")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[dict] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")
