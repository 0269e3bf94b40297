"""
Settlement of paid orders.

A payment confirmation flips the order to completed with one conditional
UPDATE. Only the confirmation that performed the flip schedules the
revenue side effects (leaderboard increment, ambassador and admin mail),
which run in the background and never affect the caller's response.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

import structlog

from ambassador.core.errors import NotFoundError
from ambassador.core.order_store import OrderStore
from ambassador.database.models import Order, User
from ambassador.integrations.mailer import Mailer
from ambassador.integrations.rankings import RankingStore
from ambassador.monitoring.metrics import metrics
from ambassador.workers.dispatcher import BackgroundDispatcher

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SettlementSnapshot:
    """Everything the background work needs, detached from the session."""

    order_id: int
    ambassador_id: int
    code: str
    ambassador_email: str
    # (admin_revenue, ambassador_revenue) per line item
    line_revenues: Tuple[Tuple[Decimal, Decimal], ...]

    @classmethod
    def from_order(cls, order: Order) -> "SettlementSnapshot":
        return cls(
            order_id=order.id,
            ambassador_id=order.user_id,
            code=order.code,
            ambassador_email=order.ambassador_email,
            line_revenues=tuple(
                (Decimal(item.admin_revenue), Decimal(item.ambassador_revenue))
                for item in order.items
            ),
        )

    @property
    def admin_revenue(self) -> Decimal:
        return sum((admin for admin, _ in self.line_revenues), Decimal("0"))

    @property
    def ambassador_revenue(self) -> Decimal:
        return sum((ambassador for _, ambassador in self.line_revenues), Decimal("0"))


@dataclass(frozen=True)
class SettlementResult:
    order_id: int
    already_completed: bool


class SettlementEngine:
    """Completes orders exactly once and distributes their revenue."""

    def __init__(
        self,
        order_store: Optional[OrderStore] = None,
        ranking_store: Optional[RankingStore] = None,
        mailer: Optional[Mailer] = None,
        dispatcher: Optional[BackgroundDispatcher] = None,
    ):
        self.order_store = order_store or OrderStore()
        self.ranking_store = ranking_store or RankingStore()
        self.mailer = mailer or Mailer()
        self.dispatcher = dispatcher or BackgroundDispatcher()

    async def complete_order(self, payment_reference: str) -> SettlementResult:
        """
        Handle a payment confirmation.

        Args:
            payment_reference: Stripe Checkout Session id

        Returns:
            SettlementResult: Which order was confirmed and whether it had
                already been completed by an earlier confirmation

        Raises:
            NotFoundError: If no order carries this reference
        """
        logger.info("order_confirmation_received", transaction_id=payment_reference)

        try:
            async with self.order_store.transaction() as session:
                order = await self.order_store.find_by_payment_reference(
                    session, payment_reference
                )
                transitioned = await self.order_store.finalize(session, order.id)
                snapshot = SettlementSnapshot.from_order(order)
        except NotFoundError:
            logger.warning("order_confirmation_unknown_reference", transaction_id=payment_reference)
            metrics.record_confirmation("not_found")
            raise

        if not transitioned:
            logger.info("order_already_completed", order_id=snapshot.order_id)
            metrics.record_confirmation("duplicate")
            return SettlementResult(order_id=snapshot.order_id, already_completed=True)

        metrics.record_confirmation("settled")
        logger.info("order_completed", order_id=snapshot.order_id)

        self.dispatcher.dispatch(
            self.distribute(snapshot), name=f"settlement:{snapshot.order_id}"
        )
        return SettlementResult(order_id=snapshot.order_id, already_completed=False)

    async def _ambassador_name(self, ambassador_id: int) -> Optional[str]:
        async with self.order_store.session_factory() as session:
            user = await session.get(User, ambassador_id)
        return user.name if user is not None else None

    async def distribute(self, snapshot: SettlementSnapshot) -> None:
        """
        Credit the leaderboard and notify both parties.

        Each step is isolated: a failure is logged and counted and the
        remaining steps still run. Nothing here is retried.
        """
        ambassador_revenue = snapshot.ambassador_revenue
        admin_revenue = snapshot.admin_revenue

        logger.info(
            "settlement_started",
            order_id=snapshot.order_id,
            ambassador_revenue=str(ambassador_revenue),
            admin_revenue=str(admin_revenue),
        )

        try:
            name = await self._ambassador_name(snapshot.ambassador_id)
            if name is None:
                logger.error(
                    "settlement_ambassador_missing",
                    order_id=snapshot.order_id,
                    ambassador_id=snapshot.ambassador_id,
                )
                metrics.record_settlement_failure("lookup")
            else:
                await self.ranking_store.increment(name, ambassador_revenue)
                metrics.record_ambassador_revenue(float(ambassador_revenue))
        except Exception as e:
            logger.error("settlement_ranking_failed", order_id=snapshot.order_id, error=str(e))
            metrics.record_settlement_failure("ranking")

        try:
            await self.mailer.send_ambassador_earnings(
                snapshot.ambassador_email, ambassador_revenue, snapshot.code
            )
        except Exception as e:
            logger.error(
                "settlement_ambassador_mail_failed", order_id=snapshot.order_id, error=str(e)
            )
            metrics.record_settlement_failure("ambassador_mail")

        try:
            await self.mailer.send_admin_order_completed(snapshot.order_id, admin_revenue)
        except Exception as e:
            logger.error("settlement_admin_mail_failed", order_id=snapshot.order_id, error=str(e))
            metrics.record_settlement_failure("admin_mail")

        logger.info("settlement_finished", order_id=snapshot.order_id)
