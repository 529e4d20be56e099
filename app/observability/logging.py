"""
structlog setup shared by the API and the worker.
Every quote mutation emits one event carrying quote_id and staff_id from
the bound context; Decimal and UUID values are rendered as strings.
"""

import logging
import sys
import uuid
from decimal import Decimal

import structlog

from app.config import settings


def _stringify_values(logger, method_name, event_dict):
    for key, value in event_dict.items():
        if isinstance(value, (Decimal, uuid.UUID)):
            event_dict[key] = str(value)
    return event_dict


def _add_service(logger, method_name, event_dict):
    event_dict.setdefault("service", settings.APP_NAME)
    return event_dict


def setup_logging(component: str = "api") -> None:
    """Console output when DEBUG, JSON lines otherwise."""
    structlog.contextvars.bind_contextvars(component=component)

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_service,
        _stringify_values,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer = structlog.dev.ConsoleRenderer() if settings.DEBUG else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for noisy in ("uvicorn.access", "httpx", "rq.worker"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DB_ECHO else logging.WARNING)


def bind_quote_context(quote_id: str, staff_id: str | None = None) -> None:
    """Attach quote/staff identifiers to every log line for the current task."""
    structlog.contextvars.bind_contextvars(quote_id=quote_id, staff_id=staff_id)


def clear_quote_context() -> None:
    structlog.contextvars.unbind_contextvars("quote_id", "staff_id")
