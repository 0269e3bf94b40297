"""
FastAPI application for the ambassador checkout service.

``create_app`` wires routers, CORS, request tracing and error handlers;
the module-level ``app`` is what uvicorn serves.
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ambassador import __version__
from ambassador.config import Settings, get_settings
from ambassador.database.connection import close_db, init_db
from ambassador.monitoring.logging import bind_request_context, clear_request_context, setup_logging

from .routes import admin_router, checkout_router, get_dispatcher, monitoring_router

setup_logging()
logger = structlog.get_logger(__name__)

# Seconds to wait for in-flight settlements on shutdown
SHUTDOWN_DRAIN_TIMEOUT = 30


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """Create tables on startup; drain settlements and close the pool on shutdown."""
    settings: Settings = app.state.settings
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        env=settings.app_env,
        test_mode=settings.is_test_mode,
    )

    await init_db()
    logger.info("database_initialized")

    yield

    logger.info("application_shutdown", settlements_pending=get_dispatcher().pending)
    await get_dispatcher().drain(timeout=SHUTDOWN_DRAIN_TIMEOUT)
    await close_db()
    logger.info("database_connections_closed")


async def trace_requests(request: Request, call_next: Any) -> Response:
    """Tag each request with an id, bind it to the log context and time it."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start_time = time.perf_counter()

    bind_request_context(request_id=request_id, method=request.method, path=request.url.path)
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            "request_failed",
            error=str(e),
            duration_seconds=time.perf_counter() - start_time,
        )
        raise
    finally:
        clear_request_context()

    response.headers["X-Request-ID"] = request_id
    logger.info(
        "request_completed",
        request_id=request_id,
        path=request.url.path,
        status_code=response.status_code,
        duration_seconds=time.perf_counter() - start_time,
    )
    return response


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed payloads are bad requests, not 422s."""
    logger.warning("request_validation_failed", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "Invalid request",
            "errors": [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
                for error in exc.errors()
            ],
        },
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application."""
    settings = settings or get_settings()

    application = FastAPI(
        title="Ambassador Orders",
        description=(
            "Referral checkout and settlement service. Orders are created through "
            "ambassador links, paid with Stripe Checkout, and settled exactly once."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    application.state.settings = settings

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    application.middleware("http")(trace_requests)

    application.add_exception_handler(RequestValidationError, handle_validation_error)
    application.add_exception_handler(Exception, handle_unexpected_error)

    application.include_router(admin_router)
    application.include_router(checkout_router)
    application.include_router(monitoring_router)

    @application.get("/", tags=["root"])
    async def root() -> dict[str, Any]:
        return {
            "service": settings.app_name,
            "version": __version__,
            "environment": settings.app_env,
            "test_mode": settings.is_test_mode,
            "docs": "/docs",
        }

    return application


app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "ambassador.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
