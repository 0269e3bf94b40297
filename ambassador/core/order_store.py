"""
Transactional order store.

All writes to order state go through here. Creation, line items and the
payment reference share one transaction so readers never see a partial
order; completion is a single conditional UPDATE so concurrent duplicate
confirmations cannot both win.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ambassador.core.assembler import AssembledOrder
from ambassador.core.errors import ConflictError, ExternalServiceError, NotFoundError
from ambassador.database.connection import get_session_factory
from ambassador.database.models import Order

logger = structlog.get_logger(__name__)


class OrderStore:
    """Order persistence with explicit transaction boundaries."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        """
        Initialize order store.

        Args:
            session_factory: Optional session factory (uses the global one if not provided)
        """
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Open a session with an active transaction.

        Commits when the block exits normally; any exception rolls back the
        whole unit of work and propagates.
        """
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def create(self, session: AsyncSession, assembled: AssembledOrder) -> Order:
        """
        Insert the order header, then each line item.

        Args:
            session: Session with an active transaction
            assembled: Output of the order assembler

        Returns:
            Order: The flushed order with its id assigned

        Raises:
            ExternalServiceError: If the database rejects a write
        """
        order = assembled.order
        try:
            session.add(order)
            await session.flush()

            logger.info("order_header_inserted", order_id=order.id, code=order.code)

            for item in assembled.items:
                order.items.append(item)
                await session.flush()

            logger.info("order_items_inserted", order_id=order.id, item_count=len(order.items))

        except SQLAlchemyError as e:
            logger.error("order_insert_failed", code=order.code, error=str(e))
            raise ExternalServiceError(f"Failed to store order: {str(e)}", original_error=e)

        return order

    async def attach_payment_reference(
        self, session: AsyncSession, order: Order, reference: str
    ) -> Order:
        """
        Record the gateway session id on the order.

        Raises:
            ConflictError: If the order already carries a payment reference
            ExternalServiceError: If the database rejects the update
        """
        if order.transaction_id is not None:
            raise ConflictError(
                f"Order {order.id} already has a payment reference", order_id=order.id
            )

        try:
            order.transaction_id = reference
            await session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "order_payment_reference_failed", order_id=order.id, error=str(e)
            )
            raise ExternalServiceError(
                f"Failed to attach payment reference: {str(e)}", original_error=e
            )

        logger.info("order_payment_reference_attached", order_id=order.id, transaction_id=reference)
        return order

    async def find_by_payment_reference(self, session: AsyncSession, reference: str) -> Order:
        """
        Load an order and its line items by payment reference.

        Raises:
            NotFoundError: If no order carries this reference
        """
        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.transaction_id == reference)
        )
        result = await session.execute(stmt)
        order = result.scalar_one_or_none()

        if order is None:
            raise NotFoundError("Order not found", transaction_id=reference)

        return order

    async def finalize(self, session: AsyncSession, order_id: int) -> bool:
        """
        Mark an order completed.

        The check and the write are one statement, so of several concurrent
        callers exactly one sees ``True``. Later calls are harmless no-ops.

        Returns:
            bool: True if this call performed the transition
        """
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.complete.is_(False))
            .values(complete=True)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        transitioned = result.rowcount == 1

        logger.info("order_finalize", order_id=order_id, transitioned=transitioned)
        return transitioned

    async def list_orders(self, session: AsyncSession) -> List[Order]:
        """All orders with their items, newest first."""
        stmt = select(Order).options(selectinload(Order.items)).order_by(Order.id.desc())
        result = await session.execute(stmt)
        return list(result.scalars().all())
