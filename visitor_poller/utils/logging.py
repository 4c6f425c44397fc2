"""Structured logging setup."""

import logging
import sys

import structlog
from structlog.typing import FilteringBoundLogger


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> FilteringBoundLogger:
    """Configure structlog for the process.

    Args:
        log_level: Minimum level to emit
        log_format: ``json`` for machine-readable lines, anything else for
            the console renderer

    Returns:
        Logger for the application
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )

    return structlog.get_logger("visitor_poller")
