"""
API routes for ambassador checkout and order administration.
"""
from functools import lru_cache
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ambassador.core.assembler import CustomerDetails, LineRequest
from ambassador.core.errors import NotFoundError, OrderError
from ambassador.core.order_service import OrderService
from ambassador.core.settlement import SettlementEngine
from ambassador.monitoring.health import HealthCheck
from ambassador.workers.dispatcher import BackgroundDispatcher

from .schemas import (
    CheckoutSessionResponse,
    ConfirmOrderRequest,
    CreateOrderRequest,
    HealthCheckResponse,
    MessageResponse,
    OrderResponse,
)

logger = structlog.get_logger(__name__)

# Create routers
admin_router = APIRouter(prefix="/api/admin", tags=["admin"])
checkout_router = APIRouter(prefix="/api/checkout", tags=["checkout"])
monitoring_router = APIRouter(tags=["monitoring"])


@lru_cache()
def get_dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher()


@lru_cache()
def get_order_service() -> OrderService:
    return OrderService()


@lru_cache()
def get_settlement_engine() -> SettlementEngine:
    return SettlementEngine(dispatcher=get_dispatcher())


@lru_cache()
def get_health_check() -> HealthCheck:
    return HealthCheck(dispatcher=get_dispatcher())


def _http_error(error: OrderError) -> HTTPException:
    return HTTPException(status_code=error.http_status, detail=error.message)


@admin_router.get(
    "/orders",
    response_model=List[OrderResponse],
    summary="List orders",
    description="All orders with their items, customer name and total",
)
async def list_orders(
    order_service: OrderService = Depends(get_order_service),
) -> List[OrderResponse]:
    """List orders for the admin dashboard."""
    orders = await order_service.list_orders()
    return [OrderResponse.model_validate(order) for order in orders]


@checkout_router.post(
    "/orders",
    response_model=CheckoutSessionResponse,
    summary="Create an order",
    description="Create an order for a referral link and open a Stripe Checkout Session",
)
async def create_order(
    request: CreateOrderRequest,
    order_service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    """
    Create an order.

    Either the order, its items and its payment reference are all stored and
    the session is returned, or nothing is stored.
    """
    logger.info(
        "api_create_order_request",
        code=request.code,
        product_count=len(request.products),
    )

    try:
        result = await order_service.create_order(
            code=request.code,
            customer=CustomerDetails(
                first_name=request.first_name,
                last_name=request.last_name,
                email=request.email,
                address=request.address,
                city=request.city,
                country=request.country,
                zip=request.zip,
            ),
            lines=[
                LineRequest(product_id=product.product_id, quantity=product.quantity)
                for product in request.products
            ],
        )

    except OrderError as e:
        log = logger.warning if e.http_status < 500 else logger.error
        log("api_create_order_error", code=request.code, error=str(e), error_code=e.error_code)
        raise _http_error(e)

    return {"id": result.session_id, "url": result.url, "order_id": result.order_id}


@checkout_router.post(
    "/orders/confirm",
    response_model=MessageResponse,
    summary="Confirm an order",
    description="Mark the order paid and distribute revenue in the background",
)
async def confirm_order(
    request: ConfirmOrderRequest,
    settlement_engine: SettlementEngine = Depends(get_settlement_engine),
) -> Dict[str, Any]:
    """
    Confirm payment for an order.

    Repeated confirmations for the same session are acknowledged without
    repeating any side effect.
    """
    try:
        await settlement_engine.complete_order(request.source)
    except NotFoundError as e:
        raise _http_error(e)

    return {"message": "success"}


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    try:
        return await health_check.check_all()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return {
            "status": "unhealthy",
            "checks": {"error": str(e)},
        }


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Liveness probe endpoint."""
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Readiness probe endpoint."""
    result = await health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
