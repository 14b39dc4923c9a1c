"""Structured logging configuration for the alerting service.

Uses structlog with context variables, ISO timestamps, and console rendering.
Provides configure_logging() for one-time setup; modules take their own
loggers via structlog.get_logger(__name__). The API lifespan calls
configure_logging() on startup.
"""

import logging

import structlog

_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structlog processors once.

    Safe to call multiple times -- only the first invocation takes effect.

    Args:
        level: Minimum stdlib log level to emit (default ``logging.INFO``).
    """
    global _configured
    if _configured:
        return

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True
