"""
Structured logging for the back office.

structlog renders coloured console lines in development and JSON lines
everywhere else. The request id and the acting staff member are bound as
structlog context variables, so every event logged while a request is being
handled carries them.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional
from uuid import uuid4

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, get_contextvars
from structlog.types import Processor

from backoffice.core.config import get_settings

NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "asyncio": logging.WARNING,
}


def configure_logging() -> None:
    """Configure structlog and the stdlib root logger. Idempotent."""
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.is_development:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=settings.log_level)
    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind the caller's X-Request-ID, or a fresh UUID, and return it."""
    request_id = request_id or str(uuid4())
    bind_contextvars(request_id=request_id)
    return request_id


def get_request_id() -> str:
    return get_contextvars().get("request_id", "")


def set_actor_id(actor_id: Optional[str]) -> None:
    bind_contextvars(actor_id=actor_id)


def clear_context() -> None:
    """Drop request-scoped context so it cannot leak into the next request."""
    clear_contextvars()


@contextmanager
def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    slow_threshold_ms: float = 500.0,
    **context: Any,
) -> Iterator[None]:
    """
    Log the duration of the wrapped block.

    Failures are logged at ERROR and re-raised; blocks slower than
    ``slow_threshold_ms`` are logged at WARNING.

    Example:
        >>> with log_performance(logger, "request_processing", path="/health"):
        ...     ...
    """
    started = time.perf_counter()
    try:
        yield
    except Exception as e:
        logger.error(
            "Operation failed",
            operation=operation,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            error_type=type(e).__name__,
            **context,
        )
        raise

    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    log = logger.warning if duration_ms > slow_threshold_ms else logger.debug
    log("Operation completed", operation=operation, duration_ms=duration_ms, **context)
