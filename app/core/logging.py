"""Structured logging with structlog.

Every event carries the service name and, inside a request, the request ID
set by ``RequestIdMiddleware``. Money and dates in event fields are rendered
as strings so the JSON renderer never has to guess.
"""

import logging
from collections.abc import MutableMapping
from contextvars import ContextVar
from datetime import date
from decimal import Decimal
from typing import Any

import structlog

from app.core.config import get_settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Third-party loggers routed through the root handler at the app's level
_STDLIB_LOGGERS = ("uvicorn", "uvicorn.error", "sqlalchemy.engine")

EventDict = MutableMapping[str, Any]


def add_request_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Attach the current request ID, if any."""
    request_id = request_id_ctx.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_service_name(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Tag every event with the configured application name."""
    event_dict.setdefault("service", get_settings().app_name)
    return event_dict


def stringify_values(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Render Decimal and date fields as strings (``Decimal('1.50')`` -> ``"1.50"``)."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal | date):
            event_dict[key] = str(value)
    return event_dict


def configure_logging() -> None:
    """Configure structlog and align stdlib loggers with the app log level."""
    settings = get_settings()
    level = getattr(logging, settings.log_level)

    logging.basicConfig(format="%(message)s", level=level)
    for name in _STDLIB_LOGGERS:
        logging.getLogger(name).setLevel(level)

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            add_request_id,
            add_service_name,
            stringify_values,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a logger for a module.

    Args:
        name: Logger name (typically ``__name__``).

    Returns:
        structlog logger; processors apply once ``configure_logging`` has run.
    """
    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger
