"""
Pytest configuration and fixtures.

Store-level tests run against a throwaway SQLite file through aiosqlite.
Stripe, Redis and SMTP are replaced with mocks.
"""
import os

os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake_key_for_testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./ambassador-test.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/1")

import uuid
from decimal import Decimal
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ambassador.config import Settings
from ambassador.core.assembler import CustomerDetails, OrderAssembler
from ambassador.core.links import LinkResolver
from ambassador.core.order_service import OrderService
from ambassador.core.order_store import OrderStore
from ambassador.core.settlement import SettlementEngine
from ambassador.database.connection import create_session_factory
from ambassador.database.models import Base, Link, Product, User
from ambassador.integrations.mailer import Mailer
from ambassador.integrations.rankings import RankingStore
from ambassador.integrations.stripe_client import CheckoutSession, StripeCheckoutClient
from ambassador.workers.dispatcher import BackgroundDispatcher


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        stripe_secret_key="sk_test_fake_key_for_testing",
        database_url="sqlite+aiosqlite:///./ambassador-test.db",
        redis_url="redis://localhost:6379/1",
        checkout_success_url="http://localhost:5000/success?source={CHECKOUT_SESSION_ID}",
        checkout_cancel_url="http://localhost:5000/error",
        smtp_host="localhost",
        smtp_port=1025,
        mail_from="no-reply@ambassador.local",
        admin_email="admin@admin.com",
        platform_revenue_rate=Decimal("0.10"),
        app_name="ambassador-orders-test",
        app_env="test",
        log_level="DEBUG",
        debug=True,
    )


@pytest_asyncio.fixture
async def engine(tmp_path: Any) -> AsyncGenerator[AsyncEngine, Any]:
    """Fresh database file per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def seeded(session_factory: async_sessionmaker[AsyncSession]) -> Dict[str, int]:
    """Ambassador alice@x.com owning link ABC123, plus a small catalog."""
    async with session_factory() as session:
        async with session.begin():
            alice = User(first_name="Alice", last_name="Smith", email="alice@x.com")
            session.add(alice)
            await session.flush()

            session.add(Link(code="ABC123", user_id=alice.id))

            widget = Product(
                title="Widget",
                description="A sturdy widget",
                image="https://img.example.com/widget.png",
                price=Decimal("50.00"),
            )
            gadget = Product(
                title="Gadget",
                description="",
                image="",
                price=Decimal("19.99"),
            )
            session.add_all([widget, gadget])
            await session.flush()

            return {"ambassador_id": alice.id, "widget_id": widget.id, "gadget_id": gadget.id}


@pytest.fixture
def customer() -> CustomerDetails:
    return CustomerDetails(
        first_name="Jane",
        last_name="Doe",
        email="jane@example.com",
        address="1 Main St",
        city="Springfield",
        country="US",
        zip="12345",
    )


@pytest.fixture
def order_store(session_factory: async_sessionmaker[AsyncSession]) -> OrderStore:
    return OrderStore(session_factory=session_factory)


@pytest.fixture
def link_resolver(session_factory: async_sessionmaker[AsyncSession]) -> LinkResolver:
    return LinkResolver(session_factory=session_factory)


@pytest.fixture
def assembler() -> OrderAssembler:
    return OrderAssembler(platform_rate=Decimal("0.10"))


@pytest.fixture
def mock_gateway() -> AsyncMock:
    """Stripe gateway returning a fresh session id per call."""
    gateway = AsyncMock(spec=StripeCheckoutClient)

    def _create_session(*args: Any, **kwargs: Any) -> CheckoutSession:
        session_id = f"cs_test_{uuid.uuid4().hex}"
        return CheckoutSession(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")

    gateway.create_checkout_session = AsyncMock(side_effect=_create_session)
    return gateway


@pytest.fixture
def order_service(
    order_store: OrderStore,
    link_resolver: LinkResolver,
    assembler: OrderAssembler,
    mock_gateway: AsyncMock,
) -> OrderService:
    return OrderService(
        order_store=order_store,
        link_resolver=link_resolver,
        assembler=assembler,
        gateway=mock_gateway,
    )


@pytest.fixture
def mock_rankings() -> AsyncMock:
    rankings = AsyncMock(spec=RankingStore)
    rankings.increment.return_value = 90.0
    return rankings


@pytest.fixture
def mock_mailer() -> AsyncMock:
    return AsyncMock(spec=Mailer)


@pytest.fixture
def dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher()


@pytest.fixture
def settlement_engine(
    order_store: OrderStore,
    mock_rankings: AsyncMock,
    mock_mailer: AsyncMock,
    dispatcher: BackgroundDispatcher,
) -> SettlementEngine:
    return SettlementEngine(
        order_store=order_store,
        ranking_store=mock_rankings,
        mailer=mock_mailer,
        dispatcher=dispatcher,
    )


@pytest.fixture
def row_count(session_factory: async_sessionmaker[AsyncSession]) -> Callable[[Any], Awaitable[int]]:
    """Async helper returning the number of rows in a model's table."""

    async def _count(model: Any) -> int:
        async with session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()

    return _count
