"""
Stripe Checkout gateway.

Turns order lines into a hosted Checkout Session. Prices leave here as
integer minor units; transient Stripe failures are retried with tenacity
under the caller's idempotency key, and a circuit breaker stops hammering
Stripe while it is down.
"""
import asyncio
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

import stripe
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ambassador.config import Settings, get_settings
from ambassador.core.assembler import CheckoutLine
from ambassador.core.errors import ExternalServiceError
from ambassador.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

GATEWAY_MAX_ATTEMPTS = 3


class GatewayErrorType(Enum):
    """Classification of Stripe errors for retry logic."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    RATE_LIMIT = "rate_limit"
    CIRCUIT_OPEN = "circuit_open"


# First match wins; anything unlisted is treated as transient
ERROR_CLASSES: Tuple[Tuple[Type[stripe.StripeError], GatewayErrorType], ...] = (
    (stripe.RateLimitError, GatewayErrorType.RATE_LIMIT),
    (stripe.APIConnectionError, GatewayErrorType.TRANSIENT),
    (stripe.APIError, GatewayErrorType.TRANSIENT),
    (stripe.CardError, GatewayErrorType.PERMANENT),
    (stripe.InvalidRequestError, GatewayErrorType.PERMANENT),
    (stripe.AuthenticationError, GatewayErrorType.PERMANENT),
    (stripe.PermissionError, GatewayErrorType.PERMANENT),
    (stripe.IdempotencyError, GatewayErrorType.PERMANENT),
)


class GatewayError(ExternalServiceError):
    """Stripe could not create the checkout session."""

    error_code = "payment_gateway_failure"

    def __init__(
        self,
        message: str,
        error_type: GatewayErrorType,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, original_error=original_error, error_type=error_type.value)
        self.error_type = error_type


class CircuitOpenError(GatewayError):
    """Rejected locally because the circuit is open; Stripe was not contacted."""

    def __init__(self) -> None:
        super().__init__("Circuit breaker is open", GatewayErrorType.CIRCUIT_OPEN)


def classify_error(error: stripe.StripeError) -> GatewayErrorType:
    for error_class, error_type in ERROR_CLASSES:
        if isinstance(error, error_class):
            return error_type
    return GatewayErrorType.TRANSIENT


NOT_RETRYABLE = (GatewayErrorType.PERMANENT, GatewayErrorType.CIRCUIT_OPEN)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, GatewayError) and error.error_type not in NOT_RETRYABLE


def to_minor_units(amount: Decimal, exponent: int = 2) -> int:
    """
    Convert a decimal amount to the gateway's integer minor units.

    ``Decimal("19.99")`` becomes ``1999``. Sub-cent fractions round half-up
    instead of being truncated.
    """
    scaled = (Decimal(amount) * (Decimal(10) ** exponent)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(scaled)


@dataclass(frozen=True)
class CheckoutSession:
    """Descriptor returned to the buyer's client for redirecting to Stripe."""

    id: str
    url: Optional[str]


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    After ``failure_threshold`` failures in a row every call is rejected for
    ``reset_timeout`` seconds. The next call is a trial: success closes the
    circuit, failure reopens it.

    Not thread-safe: only the event loop calls into it, never executor threads.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.state = CircuitState.CLOSED

    def _set_state(self, state: CircuitState) -> None:
        if state is not self.state:
            logger.info("circuit_breaker_state_changed", old=self.state.value, new=state.value)
            self.state = state
            metrics.record_circuit_state(state is CircuitState.OPEN)

    def allow(self) -> bool:
        if self.state is CircuitState.OPEN:
            if self.opened_at is not None and self._clock() - self.opened_at >= self.reset_timeout:
                self._set_state(CircuitState.HALF_OPEN)
                return True
            return False
        return True

    def record_success(self) -> None:
        self.failure_count = 0
        self._set_state(CircuitState.CLOSED)

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state is CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.opened_at = self._clock()
            self._set_state(CircuitState.OPEN)


class StripeCheckoutClient:
    """Payment session gateway backed by Stripe Checkout."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        stripe.api_key = settings.stripe_secret_key
        stripe.api_version = settings.stripe_api_version
        self.settings = settings
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.gateway_failure_threshold,
            reset_timeout=settings.gateway_reset_timeout,
        )

        logger.info(
            "stripe_client_initialized",
            api_version=settings.stripe_api_version,
            test_mode=settings.is_test_mode,
        )

    def build_line_items(self, lines: Sequence[CheckoutLine]) -> List[Dict[str, Any]]:
        """Translate order lines into Stripe ``line_items`` with inline prices."""
        line_items: List[Dict[str, Any]] = []
        for line in lines:
            product_data: Dict[str, Any] = {"name": line.title}
            if line.description:
                product_data["description"] = line.description
            if line.image:
                product_data["images"] = [line.image]

            line_items.append(
                {
                    "price_data": {
                        "currency": self.settings.checkout_currency,
                        "unit_amount": to_minor_units(line.unit_price),
                        "product_data": product_data,
                    },
                    "quantity": line.quantity,
                }
            )
        return line_items

    def _to_gateway_error(self, error: stripe.StripeError) -> GatewayError:
        error_type = classify_error(error)
        logger.error(
            "stripe_api_error",
            error_type=error_type.value,
            error_code=getattr(error, "code", None),
            error_message=str(error),
        )
        metrics.record_gateway_error(error_type.value)
        return GatewayError(str(error), error_type, original_error=error)

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(GATEWAY_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def create_checkout_session(
        self,
        lines: Sequence[CheckoutLine],
        idempotency_key: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CheckoutSession:
        """
        Create a Stripe Checkout Session for an order.

        Args:
            lines: Checkout lines (title, description, image, unit price, quantity)
            idempotency_key: Shared by the retries of this call, so they return the same session
            metadata: Attached to the session for reconciliation

        Returns:
            CheckoutSession: Session id and hosted checkout URL

        Raises:
            CircuitOpenError: If the circuit is open; raised at once, never retried
            GatewayError: If Stripe rejects the request or stays unreachable
        """
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": self.build_line_items(lines),
            "success_url": self.settings.checkout_success_url,
            "cancel_url": self.settings.checkout_cancel_url,
            "metadata": metadata or {},
            "idempotency_key": idempotency_key,
        }
        logger.info(
            "creating_checkout_session",
            line_count=len(params["line_items"]),
            idempotency_key=idempotency_key,
        )

        if not self.circuit_breaker.allow():
            logger.warning("stripe_call_rejected_circuit_open", idempotency_key=idempotency_key)
            metrics.record_gateway_error(GatewayErrorType.CIRCUIT_OPEN.value)
            raise CircuitOpenError()

        start_time = time.time()
        loop = asyncio.get_running_loop()
        try:
            # the SDK is blocking; keep it off the event loop
            session = await loop.run_in_executor(
                None, lambda: stripe.checkout.Session.create(**params)
            )
        except stripe.StripeError as e:
            self.circuit_breaker.record_failure()
            metrics.record_gateway_call("failed", time.time() - start_time)
            raise self._to_gateway_error(e) from e

        self.circuit_breaker.record_success()
        metrics.record_gateway_call("success", time.time() - start_time)
        logger.info("checkout_session_created", session_id=session.id)

        return CheckoutSession(id=session.id, url=getattr(session, "url", None))
