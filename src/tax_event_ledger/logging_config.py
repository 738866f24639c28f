"""Structured logging for the ledger.

Development runs render to a readable console; production emits one JSON
object per line, stamped with the app, environment and serving tenant.
Per-operation keys (tenant database, payment, request id) are carried in
contextvars so recorders and the reversal engine do not have to repeat them.
"""

import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from tax_event_ledger.config import Settings, get_settings

# Libraries whose INFO output would drown the ledger's own events.
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "asyncio")


def stringify_values(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Render Decimal and UUID values as plain strings."""
    for key, value in event_dict.items():
        if isinstance(value, (Decimal, UUID)):
            event_dict[key] = str(value)
    return event_dict


def service_context(settings: Settings) -> Processor:
    """Processor stamping every event with the app and tenant it came from."""

    def add_service_context(
        logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict.setdefault("app", settings.app_name)
        event_dict.setdefault("environment", settings.environment.value)
        event_dict.setdefault("tenant", settings.tenant_name)
        return event_dict

    return add_service_context


def build_processors(settings: Settings) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        stringify_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.log_format == "json":
        processors += [
            service_context(settings),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    return processors


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Call once per process (CLI entry point, API lifespan) before logging.
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.value)

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    if settings.log_file:
        _add_file_handler(settings.log_file, level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))


def _add_file_handler(log_file: Path, level: int) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logging.getLogger().addHandler(handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, usually ``get_logger(__name__)``."""
    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind log keys for the duration of a block.

    Nested blocks restore the outer values on exit:

        with LogContext(db=tenant.db):
            with LogContext(payment_id=str(payment.id)):
                logger.info("payment_locked")  # db and payment_id
            logger.info("sweep_step")  # db only
    """

    def __init__(self, **kwargs: Any) -> None:
        self._values = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = dict(structlog.contextvars.bind_contextvars(**self._values))
        return self

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
