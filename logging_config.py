"""
Logging configuration for the portfolio service using structlog.

Configures structlog on top of stdlib logging so uvicorn/fastapi records and
our own events share one pipeline:
- Pretty console output (human-readable) by default
- JSON output when LOG_JSON is set (for log shipping)
"""

import logging
import sys

import structlog

from config import LOG_JSON, LOG_LEVEL


def setup_logging(level: str = LOG_LEVEL, json_output: bool = LOG_JSON) -> None:
    """
    Configure structlog with a stdlib handler on the root logger.

    Call once at application startup. After calling this, modules can use:
    logger = structlog.get_logger(__name__)
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
