"""
Structured logging setup (structlog over stdlib logging).

Usage:
    from smartproof.core.logging import get_logger, setup_logging

    setup_logging("INFO")   # call once at startup
    logger = get_logger(__name__)
    logger.info("Workflow started", document_id="abc-123")
"""

from __future__ import annotations

import logging
import sys

import structlog

from smartproof.core.config import settings


def setup_logging(level: str | None = None, *, json_logs: bool | None = None) -> None:
    """
    Configure structlog + stdlib logging.

    Development uses the colored console renderer; every other
    environment emits one JSON object per line.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    if json_logs is None:
        json_logs = settings.APP_ENV != "development"

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level_name)

    # Quiet down chatty libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to `name`."""
    return structlog.get_logger(name)
