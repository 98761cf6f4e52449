"""Logging configuration shared by the Storefront and Billing domains."""

import logging
import os

import structlog

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure structlog once per process.

    Console rendering everywhere except production, where log lines are
    emitted as JSON.
    """
    global _configured
    if _configured:
        return

    level = level or os.environ.get("LOG_LEVEL", "INFO")
    renderer = (
        structlog.processors.JSONRenderer()
        if os.environ.get("PROTEAN_ENV") == "production"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        cache_logger_on_first_use=True,
    )

    # Suppress noisy library loggers
    logging.getLogger("protean").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str):
    return structlog.get_logger(name)
