"""structlog setup for applications embedding pooled_redis."""

import logging

import structlog

from pooled_redis.config import get_settings
from pooled_redis.errors import ConfigurationError


def configure_logging(level: str | None = None, *, json: bool = False) -> None:
    """
    Install a structlog pipeline that drops events below `level`.

    level defaults to Settings.log_level. json=True renders one JSON object
    per line instead of the console format.
    """
    level = (level or get_settings().log_level).upper()
    numeric = logging.getLevelName(level)
    if not isinstance(numeric, int):
        raise ConfigurationError(f"unknown log level {level!r}")

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        cache_logger_on_first_use=False,
    )
