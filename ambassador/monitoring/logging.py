"""
Structured logging configuration.

structlog renders every event; the stdlib root logger carries the output so
uvicorn, SQLAlchemy and Stripe records end up in the same stream. JSON in
deployed environments, key/value console output when ``LOG_JSON=false``.
"""
import logging
import sys
from typing import Any, Dict, List

import structlog
from pythonjsonlogger import jsonlogger

from ambassador.config import get_settings

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = {
    "aiosmtplib": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "stripe": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Stamp each event with the service name and environment."""
    settings = get_settings()
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("env", settings.app_env)
    return event_dict


def bind_request_context(**fields: Any) -> None:
    """Attach fields (request id, path, ...) to every event until cleared."""
    structlog.contextvars.bind_contextvars(**fields)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def _processors(json_output: bool) -> List[Any]:
    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        add_service_context,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def setup_logging() -> None:
    """
    Configure structlog and the stdlib root handler.

    Safe to call more than once; the root handler is replaced, not stacked.
    """
    settings = get_settings()

    structlog.configure(
        processors=_processors(settings.log_json),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_json:
        handler.setFormatter(
            jsonlogger.JsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s",
                rename_fields={"asctime": "@timestamp", "levelname": "level", "name": "logger"},
            )
        )
    else:
        handler.setFormatter(logging.Formatter("%(message)s"))

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.log_level))

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        json=settings.log_json,
    )
