"""
Logging Configuration for the Electronica Data Warehouse

Routes structlog events and the database driver loggers through one
stdout handler, rendered as JSON for scheduled runs or as console lines
for interactive use.
"""

import logging
import sys
from typing import Dict, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter

from electronica_dw.config.settings import get_settings

LOG_FORMATS = ("json", "text")

# Driver loggers are chatty at INFO; SQL statements only show with echo
QUIET_LOGGERS = ("aiosqlite", "asyncpg")


def _library_levels(echo: bool) -> Dict[str, int]:
    levels = {name: logging.WARNING for name in QUIET_LOGGERS}
    levels["sqlalchemy.engine"] = logging.INFO if echo else logging.WARNING
    return levels


def configure_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure structured logging for a warehouse run.

    Args:
        log_level: Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)
        log_format: Override LOG_FORMAT ("json" or "text")

    Raises:
        ValueError: If log_format is not a known format
    """
    settings = get_settings()
    level = log_level or settings.monitoring.log_level
    fmt = (log_format or settings.monitoring.log_format).lower()
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Log format must be one of: {list(LOG_FORMATS)}")

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if fmt == "json":
        renderer = JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(ProcessorFormatter(processor=renderer, foreign_pre_chain=shared_processors))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    for name, library_level in _library_levels(settings.database.echo).items():
        library_logger = logging.getLogger(name)
        library_logger.setLevel(library_level)
        library_logger.propagate = True

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=fmt,
        environment=settings.app_env,
        sql_echo=settings.database.echo,
    )
