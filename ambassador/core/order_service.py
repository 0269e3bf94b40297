"""
Order creation orchestrator.

Orchestrates the checkout flow:
1. Resolve the referral link
2. Begin database transaction
3. Assemble the order from product snapshots
4. Insert order header, then line items
5. Create the Stripe Checkout Session
6. Attach the session id as payment reference
7. Commit transaction

Any failure between 2 and 7 rolls the transaction back, so a failed
checkout leaves no rows behind.
"""
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ambassador.core.assembler import CustomerDetails, LineRequest, OrderAssembler
from ambassador.core.errors import (
    ExternalServiceError,
    InvalidProductError,
    InvalidRequestError,
    LinkNotFoundError,
)
from ambassador.core.links import LinkResolver
from ambassador.core.order_store import OrderStore
from ambassador.database.models import Order
from ambassador.integrations.stripe_client import GatewayError, StripeCheckoutClient
from ambassador.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    """Payment session descriptor handed back to the buyer."""

    order_id: int
    session_id: str
    url: Optional[str]


class OrderService:
    """Creates orders and serves the admin order listing."""

    def __init__(
        self,
        order_store: Optional[OrderStore] = None,
        link_resolver: Optional[LinkResolver] = None,
        assembler: Optional[OrderAssembler] = None,
        gateway: Optional[StripeCheckoutClient] = None,
    ):
        self.order_store = order_store or OrderStore()
        self.link_resolver = link_resolver or LinkResolver()
        self.assembler = assembler or OrderAssembler()
        self.gateway = gateway or StripeCheckoutClient()

        logger.info("order_service_initialized")

    async def create_order(
        self,
        code: str,
        customer: CustomerDetails,
        lines: Sequence[LineRequest],
    ) -> CheckoutResult:
        """
        Create an order and its payment session.

        Args:
            code: Referral code the buyer arrived with
            customer: Buyer details
            lines: Requested products and quantities

        Returns:
            CheckoutResult: Order id and Stripe session descriptor

        Raises:
            LinkNotFoundError: If the referral code is unknown
            InvalidRequestError: If the request is malformed
            InvalidProductError: If a product does not exist
            GatewayError: If Stripe rejects or cannot be reached
            ExternalServiceError: If the database rejects a write
        """
        start_time = time.time()
        logger.info("order_creation_started", code=code, line_count=len(lines))

        try:
            link = await self.link_resolver.resolve(code)

            async with self.order_store.transaction() as session:
                assembled = await self.assembler.assemble(session, link, customer, lines)
                order = await self.order_store.create(session, assembled)

                # one key per creation attempt; gateway retries inside the client share it
                checkout = await self.gateway.create_checkout_session(
                    assembled.checkout_lines,
                    idempotency_key=f"order:{uuid.uuid4().hex}",
                    metadata={"order_id": str(order.id), "code": link.code},
                )

                await self.order_store.attach_payment_reference(session, order, checkout.id)

        except LinkNotFoundError:
            metrics.record_order_failure("invalid_link")
            raise
        except InvalidProductError:
            metrics.record_order_failure("invalid_product")
            raise
        except InvalidRequestError:
            metrics.record_order_failure("invalid_request")
            raise
        except GatewayError as e:
            logger.error("order_creation_rolled_back", code=code, reason="gateway", error=str(e))
            metrics.record_order_failure("gateway")
            raise
        except ExternalServiceError as e:
            logger.error("order_creation_rolled_back", code=code, reason="storage", error=str(e))
            metrics.record_order_failure("storage")
            raise
        except SQLAlchemyError as e:
            # commit-time failures surface here rather than from a flush
            logger.error("order_creation_rolled_back", code=code, reason="storage", error=str(e))
            metrics.record_order_failure("storage")
            raise ExternalServiceError(f"Failed to store order: {str(e)}", original_error=e)

        duration = time.time() - start_time
        metrics.record_order_created(duration)
        logger.info(
            "order_created_successfully",
            order_id=order.id,
            transaction_id=checkout.id,
            duration_seconds=duration,
        )

        return CheckoutResult(order_id=order.id, session_id=checkout.id, url=checkout.url)

    async def list_orders(self) -> List[Order]:
        """All orders with their items loaded, newest first."""
        async with self.order_store.transaction() as session:
            return await self.order_store.list_orders(session)
