"""
Tests for the Stripe Checkout client.
"""
import threading
import time
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import stripe
from tenacity import wait_none

from ambassador.config import Settings
from ambassador.core.assembler import CheckoutLine
from ambassador.integrations.stripe_client import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    GatewayError,
    GatewayErrorType,
    StripeCheckoutClient,
    classify_error,
    to_minor_units,
)


@pytest.fixture
def client(test_settings: Settings) -> StripeCheckoutClient:
    return StripeCheckoutClient(settings=test_settings)


@pytest.fixture
def lines() -> list:
    return [
        CheckoutLine(
            title="Widget",
            description="A sturdy widget",
            image="https://img.example.com/widget.png",
            unit_price=Decimal("50.00"),
            quantity=2,
        ),
        CheckoutLine(title="Gadget", description="", image="", unit_price=Decimal("19.99"), quantity=1),
    ]


def _session(session_id: str = "cs_test_123") -> MagicMock:
    session = MagicMock()
    session.id = session_id
    session.url = f"https://checkout.stripe.com/c/pay/{session_id}"
    return session


class TestToMinorUnits:

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "amount,expected",
        [
            (Decimal("50.00"), 5000),
            (Decimal("19.99"), 1999),
            (Decimal("0.29"), 29),
            (Decimal("10.005"), 1001),
            (Decimal("0"), 0),
        ],
    )
    def test_conversion(self, amount: Decimal, expected: int) -> None:
        assert to_minor_units(amount) == expected


class TestStripeCheckoutClient:
    """Test suite for StripeCheckoutClient."""

    @pytest.mark.unit
    def test_build_line_items(self, client: StripeCheckoutClient, lines: list) -> None:
        items = client.build_line_items(lines)

        assert items[0] == {
            "price_data": {
                "currency": "usd",
                "unit_amount": 5000,
                "product_data": {
                    "name": "Widget",
                    "description": "A sturdy widget",
                    "images": ["https://img.example.com/widget.png"],
                },
            },
            "quantity": 2,
        }
        # empty description and image are left out
        assert items[1]["price_data"]["product_data"] == {"name": "Gadget"}
        assert items[1]["price_data"]["unit_amount"] == 1999

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_checkout_session(self, client: StripeCheckoutClient, lines: list) -> None:
        with patch("stripe.checkout.Session.create", return_value=_session()) as create:
            result = await client.create_checkout_session(
                lines, idempotency_key="order:1:ABC123", metadata={"order_id": "1"}
            )

        assert result.id == "cs_test_123"
        assert result.url.endswith("cs_test_123")

        create.assert_called_once()
        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["payment_method_types"] == ["card"]
        assert kwargs["idempotency_key"] == "order:1:ABC123"
        assert kwargs["metadata"] == {"order_id": "1"}
        assert kwargs["success_url"] == "http://localhost:5000/success?source={CHECKOUT_SESSION_ID}"
        assert kwargs["cancel_url"] == "http://localhost:5000/error"
        assert len(kwargs["line_items"]) == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(
        self, client: StripeCheckoutClient, lines: list
    ) -> None:
        error = stripe.InvalidRequestError("Invalid image URL", "line_items")

        with patch("stripe.checkout.Session.create", side_effect=error) as create:
            with pytest.raises(GatewayError) as exc_info:
                await client.create_checkout_session(lines, idempotency_key="order:1:ABC123")

        assert create.call_count == 1
        assert exc_info.value.error_type == GatewayErrorType.PERMANENT
        assert exc_info.value.original_error is error
        assert exc_info.value.http_status == 502

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transient_error_retried(self, client: StripeCheckoutClient, lines: list) -> None:
        create_fast = StripeCheckoutClient.create_checkout_session.retry_with(wait=wait_none())

        with patch(
            "stripe.checkout.Session.create",
            side_effect=stripe.APIConnectionError("Network unreachable"),
        ) as create:
            with pytest.raises(GatewayError) as exc_info:
                await create_fast(client, lines, idempotency_key="order:1:ABC123")

        assert create.call_count == 3
        assert exc_info.value.error_type == GatewayErrorType.TRANSIENT

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transient_error_then_success(
        self, client: StripeCheckoutClient, lines: list
    ) -> None:
        create_fast = StripeCheckoutClient.create_checkout_session.retry_with(wait=wait_none())

        with patch(
            "stripe.checkout.Session.create",
            side_effect=[stripe.APIConnectionError("Network unreachable"), _session("cs_test_ok")],
        ) as create:
            result = await create_fast(client, lines, idempotency_key="order:1:ABC123")

        assert create.call_count == 2
        assert result.id == "cs_test_ok"

    @pytest.mark.unit
    def test_error_classification(self) -> None:
        assert classify_error(stripe.RateLimitError("slow down")) == GatewayErrorType.RATE_LIMIT
        assert classify_error(stripe.APIError("boom")) == GatewayErrorType.TRANSIENT
        assert classify_error(stripe.AuthenticationError("bad key")) == GatewayErrorType.PERMANENT


class TestCircuitBreaker:

    @pytest.mark.unit
    def test_opens_after_threshold(self) -> None:
        breaker = CircuitBreaker(failure_threshold=2, reset_timeout=60)

        breaker.record_failure()
        assert breaker.allow()
        breaker.record_failure()

        assert breaker.state is CircuitState.OPEN
        assert not breaker.allow()

    @pytest.mark.unit
    def test_success_resets_failure_count(self) -> None:
        breaker = CircuitBreaker(failure_threshold=2, reset_timeout=60)

        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()

        assert breaker.state is CircuitState.CLOSED

    @pytest.mark.unit
    def test_trial_call_after_timeout(self) -> None:
        now = [1000.0]
        breaker = CircuitBreaker(failure_threshold=1, reset_timeout=30, clock=lambda: now[0])

        breaker.record_failure()
        assert not breaker.allow()

        now[0] += 31
        assert breaker.allow()
        assert breaker.state is CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state is CircuitState.CLOSED

    @pytest.mark.unit
    def test_failed_trial_reopens(self) -> None:
        now = [1000.0]
        breaker = CircuitBreaker(failure_threshold=3, reset_timeout=30, clock=lambda: now[0])
        breaker.failure_count = 2
        breaker.record_failure()

        now[0] += 31
        assert breaker.allow()
        breaker.record_failure()

        assert breaker.state is CircuitState.OPEN
        assert breaker.opened_at == now[0]


class TestCircuitBreakerInClient:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self, client: StripeCheckoutClient, lines: list) -> None:
        """Rejected without contacting Stripe, without retries and without backoff."""
        client.circuit_breaker.state = CircuitState.OPEN
        client.circuit_breaker.opened_at = time.monotonic()

        with patch("stripe.checkout.Session.create") as create:
            start = time.monotonic()
            with pytest.raises(CircuitOpenError) as exc_info:
                await client.create_checkout_session(lines, idempotency_key="order:abc")
            elapsed = time.monotonic() - start

        assert create.call_count == 0
        assert elapsed < 0.5
        assert exc_info.value.error_type == GatewayErrorType.CIRCUIT_OPEN
        assert exc_info.value.http_status == 502

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failures_open_the_circuit(self, test_settings: Settings, lines: list) -> None:
        client = StripeCheckoutClient(
            settings=test_settings.model_copy(update={"gateway_failure_threshold": 2})
        )
        error = stripe.InvalidRequestError("Invalid image URL", "line_items")

        with patch("stripe.checkout.Session.create", side_effect=error) as create:
            for _ in range(2):
                with pytest.raises(GatewayError):
                    await client.create_checkout_session(lines, idempotency_key="order:abc")
            with pytest.raises(CircuitOpenError):
                await client.create_checkout_session(lines, idempotency_key="order:abc")

        assert create.call_count == 2
        assert client.circuit_breaker.state is CircuitState.OPEN

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success_closes_half_open_circuit(
        self, client: StripeCheckoutClient, lines: list
    ) -> None:
        client.circuit_breaker.state = CircuitState.OPEN
        client.circuit_breaker.opened_at = time.monotonic() - client.settings.gateway_reset_timeout - 1

        with patch("stripe.checkout.Session.create", return_value=_session("cs_test_trial")):
            result = await client.create_checkout_session(lines, idempotency_key="order:abc")

        assert result.id == "cs_test_trial"
        assert client.circuit_breaker.state is CircuitState.CLOSED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_breaker_is_updated_on_the_event_loop(
        self, client: StripeCheckoutClient, lines: list
    ) -> None:
        """Only the SDK call runs in the executor; breaker state changes stay on the loop thread."""
        loop_thread = threading.get_ident()
        threads = {}

        def create(**params):
            threads["sdk"] = threading.get_ident()
            return _session("cs_test_thread")

        def record_success():
            threads["breaker"] = threading.get_ident()

        with patch("stripe.checkout.Session.create", side_effect=create), patch.object(
            client.circuit_breaker, "record_success", side_effect=record_success
        ):
            await client.create_checkout_session(lines, idempotency_key="order:abc")

        assert threads["sdk"] != loop_thread
        assert threads["breaker"] == loop_thread
