"""Structured logging configuration."""

import logging
import sys
from typing import Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import add_logger_name

from skilltrack.core.config import settings

# Libraries that log every statement or request at INFO
_CHATTY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "httpx", "httpcore")


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None):
    """Configure structlog over stdlib logging.

    ``level`` and ``fmt`` default to ``LOG_LEVEL`` and ``LOG_FORMAT``. Every
    event carries the service name and version.
    """
    level = level or settings.LOG_LEVEL
    fmt = fmt or settings.LOG_FORMAT

    if fmt == "json":
        renderer = JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=not settings.is_production())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            add_log_level,
            add_logger_name,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            TimeStamper(fmt="iso"),
            structlog.processors.dict_tracebacks,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level),
    )

    # SQL echo is controlled by DATABASE_ECHO, not by the service log level
    chatty_level = logging.INFO if settings.DATABASE_ECHO else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        service=settings.SERVICE_NAME,
        version=settings.APP_VERSION,
    )
