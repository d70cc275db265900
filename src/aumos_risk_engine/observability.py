"""Structured logging setup.

All modules obtain loggers through get_logger(__name__) and log with keyword
arguments, e.g. ``logger.info("Control transitioned", control_id=cid)``.
configure_logging() is called once from the application lifespan.
"""

import logging
import sys

import structlog
from structlog.types import FilteringBoundLogger


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Minimum log level name (DEBUG, INFO, WARNING, ...).
        json_output: Render JSON lines when True, console output otherwise.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """Return a structured logger bound to the given module name.

    Args:
        name: Usually the calling module's ``__name__``.

    Returns:
        A structlog bound logger.
    """
    return structlog.get_logger(name)
