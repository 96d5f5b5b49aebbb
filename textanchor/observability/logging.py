"""
Structured logging configuration using structlog.

Model responses and source excerpts can end up in log events, so string
values are clipped to LOG_MAX_VALUE_CHARS before rendering.

The core is a library and never configures logging on import. The host
process calls setup_logging() once at startup, before running a pipeline.
"""

import logging
import sys
from typing import Optional

import structlog

from textanchor.config import settings


def truncate_long_values(logger, method_name: str, event_dict: dict) -> dict:
    """Clip oversized string values, leaving the event name untouched."""
    limit = settings.LOG_MAX_VALUE_CHARS
    if limit <= 0:
        return event_dict
    for key, value in event_dict.items():
        if key == "event" or not isinstance(value, str) or len(value) <= limit:
            continue
        event_dict[key] = f"{value[:limit]}... [{len(value) - limit} more chars]"
    return event_dict


def setup_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """
    Route structlog through the stdlib root logger.

    JSON lines unless DEBUG is on; pass json_logs to force either renderer.
    Every event carries the core's name and version.
    """
    if json_logs is None:
        json_logs = not settings.DEBUG

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        truncate_long_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    level_name = (level or settings.LOG_LEVEL).upper()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    structlog.contextvars.bind_contextvars(
        service=settings.APP_NAME,
        version=settings.APP_VERSION,
    )

    # Quieten noisy libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
