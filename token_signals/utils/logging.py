"""
Logging configuration for the token signal engine.

Log events are structured key/value records. The batch runner binds the token
being evaluated into structlog's context variables, so every event emitted
while that token is processed carries its address without threading it
through each call.
"""
import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog

from token_signals.config.settings import settings


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Defaults to the LOG_LEVEL setting.
    """
    level = (level or settings.LOG_LEVEL).upper()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level)
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if sys.stderr.isatty():
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance (usually for __name__)."""
    return structlog.get_logger(name)


@contextmanager
def bound_log_context(**values: Any) -> Iterator[None]:
    """
    Bind values into the structlog context for the duration of the block.

    Context variables are task-local under asyncio, so concurrent token
    evaluations do not see each other's bindings.
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield
