"""
Structured logging configuration using structlog.

Every event carries the service name and environment. Output is JSON by
default; LOG_FORMAT=console switches to the human-readable renderer for
local work.
"""
import logging
import sys

import structlog

from storehook.config import settings


def _level(name: str | None) -> int:
    level = logging.getLevelName((name or settings.LOG_LEVEL).upper())
    return level if isinstance(level, int) else logging.INFO


def _add_service_context(logger, method_name, event_dict):
    event_dict.setdefault("service", settings.APP_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def configure_logging(level: str | None = None):
    """Configure structlog (and stdlib logging for third-party libraries)."""
    log_level = _level(level)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.LOG_FORMAT == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _add_service_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()


logger = configure_logging()


def get_logger(**context):
    """
    Logger with extra context bound, e.g. get_logger(component="worker").
    """
    return logger.bind(**context)
