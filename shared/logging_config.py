"""Centralized structlog configuration for the fundraising server."""

import logging
import sys

import structlog
from structlog.typing import Processor

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure structlog for the entire process.

    Args:
        level: Minimum log level name (DEBUG, INFO, ...).
        log_format: ``json`` for machine-readable lines, ``text`` for console output.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer: Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt=TIMESTAMP_FORMAT),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )
