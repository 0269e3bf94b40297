"""
Prometheus metrics for the order workflow.

Tracks:
- Orders created and order creation failures
- Order creation duration
- Payment confirmations (settled vs duplicate vs unknown)
- Stripe API calls and errors
- Settlement side-effect failures
- Background task outcomes
"""
from prometheus_client import Counter, Gauge, Histogram

# Order creation metrics
orders_created_total = Counter(
    "orders_created_total",
    "Total number of orders created with a checkout session",
)

order_creation_failures_total = Counter(
    "order_creation_failures_total",
    "Total order creation failures",
    ["reason"],  # invalid_link, invalid_request, invalid_product, gateway, storage
)

order_creation_duration_seconds = Histogram(
    "order_creation_duration_seconds",
    "Order creation duration in seconds",
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

# Settlement metrics
order_confirmations_total = Counter(
    "order_confirmations_total",
    "Total payment confirmations received",
    ["outcome"],  # settled, duplicate, not_found
)

settlement_step_failures_total = Counter(
    "settlement_step_failures_total",
    "Settlement side effects that failed",
    ["step"],  # ranking, ambassador_mail, admin_mail, lookup
)

ambassador_revenue_settled = Counter(
    "ambassador_revenue_settled",
    "Cumulative ambassador revenue credited to the leaderboard",
)

# Stripe API metrics
stripe_api_requests_total = Counter(
    "stripe_api_requests_total",
    "Total Stripe API requests",
    ["status"],
)

stripe_api_errors_total = Counter(
    "stripe_api_errors_total",
    "Total Stripe API errors",
    ["error_type"],  # transient, permanent, rate_limit
)

stripe_api_duration_seconds = Histogram(
    "stripe_api_duration_seconds",
    "Stripe API call duration in seconds",
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

stripe_circuit_open = Gauge(
    "stripe_circuit_open",
    "1 while the Stripe circuit breaker rejects calls",
)

# Background work metrics
background_tasks_total = Counter(
    "background_tasks_total",
    "Background tasks finished",
    ["name", "status"],  # status: success, failed
)


class MetricsCollector:
    """Convenience wrapper so callers do not touch label plumbing."""

    @staticmethod
    def record_order_created(duration_seconds: float) -> None:
        orders_created_total.inc()
        order_creation_duration_seconds.observe(duration_seconds)

    @staticmethod
    def record_order_failure(reason: str) -> None:
        order_creation_failures_total.labels(reason=reason).inc()

    @staticmethod
    def record_confirmation(outcome: str) -> None:
        order_confirmations_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_settlement_failure(step: str) -> None:
        settlement_step_failures_total.labels(step=step).inc()

    @staticmethod
    def record_ambassador_revenue(amount: float) -> None:
        ambassador_revenue_settled.inc(amount)

    @staticmethod
    def record_gateway_call(status: str, duration_seconds: float) -> None:
        """Record a Stripe API call."""
        stripe_api_requests_total.labels(status=status).inc()
        stripe_api_duration_seconds.observe(duration_seconds)

    @staticmethod
    def record_gateway_error(error_type: str) -> None:
        stripe_api_errors_total.labels(error_type=error_type).inc()

    @staticmethod
    def record_circuit_state(is_open: bool) -> None:
        stripe_circuit_open.set(1 if is_open else 0)

    @staticmethod
    def record_background_task(name: str, status: str) -> None:
        background_tasks_total.labels(name=name, status=status).inc()


# Export singleton instance
metrics = MetricsCollector()
