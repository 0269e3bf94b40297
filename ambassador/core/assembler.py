"""
Order assembly and revenue split.

Builds the in-memory order aggregate for a checkout request: product
snapshots, line totals and the platform/ambassador split per line. Nothing
is written here; the order store persists the result.
"""
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence, Tuple

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ambassador.config import get_settings
from ambassador.core.errors import InvalidProductError, InvalidRequestError
from ambassador.core.links import ResolvedLink
from ambassador.database.models import Order, OrderItem, Product

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CustomerDetails:
    """Buyer contact and shipping fields copied onto the order."""

    first_name: str
    last_name: str
    email: str
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None


@dataclass(frozen=True)
class LineRequest:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class CheckoutLine:
    """What the payment gateway needs to render one line of the checkout page."""

    title: str
    description: str
    image: str
    unit_price: Decimal
    quantity: int


@dataclass
class AssembledOrder:
    """Unsaved order header, its line items, and the matching checkout lines."""

    order: Order
    items: List[OrderItem] = field(default_factory=list)
    checkout_lines: List[CheckoutLine] = field(default_factory=list)

    @property
    def ambassador_revenue(self) -> Decimal:
        return sum((item.ambassador_revenue for item in self.items), Decimal("0"))

    @property
    def admin_revenue(self) -> Decimal:
        return sum((item.admin_revenue for item in self.items), Decimal("0"))


def split_revenue(line_total: Decimal, platform_rate: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Split a line total between the platform and the ambassador.

    The platform share is rounded half-up to the cent and the ambassador gets
    the remainder, so the two shares always add up to ``line_total``.

    Args:
        line_total: unit price times quantity
        platform_rate: fraction kept by the platform, e.g. ``Decimal("0.10")``

    Returns:
        Tuple[Decimal, Decimal]: (platform share, ambassador share)
    """
    line_total = line_total.quantize(CENT, rounding=ROUND_HALF_UP)
    platform_share = (line_total * platform_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    return platform_share, line_total - platform_share


class OrderAssembler:
    """Turns a resolved link and a checkout request into an order aggregate."""

    def __init__(self, platform_rate: Optional[Decimal] = None):
        if platform_rate is None:
            platform_rate = get_settings().platform_revenue_rate
        self.platform_rate = Decimal(platform_rate)

    @staticmethod
    def _validate_lines(lines: Sequence[LineRequest]) -> None:
        if not lines:
            raise InvalidRequestError("Order must contain at least one product")

        for line in lines:
            # bool is an int subclass; reject it explicitly
            if isinstance(line.quantity, bool) or not isinstance(line.quantity, int):
                raise InvalidRequestError(
                    f"Quantity for product {line.product_id} must be an integer",
                    product_id=line.product_id,
                )
            if line.quantity <= 0:
                raise InvalidRequestError(
                    f"Quantity for product {line.product_id} must be positive",
                    product_id=line.product_id,
                )

    async def assemble(
        self,
        session: AsyncSession,
        link: ResolvedLink,
        customer: CustomerDetails,
        lines: Sequence[LineRequest],
    ) -> AssembledOrder:
        """
        Build the order aggregate.

        Args:
            session: Session used for product lookups
            link: Resolved referral link
            customer: Buyer details
            lines: Requested products and quantities

        Returns:
            AssembledOrder: Unsaved order, line items and checkout lines

        Raises:
            InvalidRequestError: If a quantity is not a positive integer
            InvalidProductError: If a product does not exist
        """
        self._validate_lines(lines)

        order = Order(
            user_id=link.ambassador_id,
            code=link.code,
            ambassador_email=link.ambassador_email,
            first_name=customer.first_name,
            last_name=customer.last_name,
            email=customer.email,
            address=customer.address,
            city=customer.city,
            country=customer.country,
            zip=customer.zip,
            complete=False,
            items=[],
        )
        assembled = AssembledOrder(order=order)

        for line in lines:
            product = await session.get(Product, line.product_id)
            if product is None:
                logger.info("order_product_not_found", product_id=line.product_id, code=link.code)
                raise InvalidProductError(line.product_id)

            unit_price = Decimal(product.price)
            platform_share, ambassador_share = split_revenue(
                unit_price * line.quantity, self.platform_rate
            )

            assembled.items.append(
                OrderItem(
                    product_title=product.title,
                    price=unit_price,
                    quantity=line.quantity,
                    admin_revenue=platform_share,
                    ambassador_revenue=ambassador_share,
                )
            )
            assembled.checkout_lines.append(
                CheckoutLine(
                    title=product.title,
                    description=product.description or "",
                    image=product.image or "",
                    unit_price=unit_price,
                    quantity=line.quantity,
                )
            )

        logger.info(
            "order_assembled",
            code=link.code,
            line_count=len(assembled.items),
            ambassador_revenue=str(assembled.ambassador_revenue),
            admin_revenue=str(assembled.admin_revenue),
        )
        return assembled
