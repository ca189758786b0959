"""Structured logging for typedlite.

Every event goes through the stdlib ``typedlite`` logger, so an application
that never configures logging only sees warnings. ``setup_logging()`` attaches
a structlog renderer to that logger.
"""
import logging
import os
import sys
from typing import Any, Optional

import structlog
from structlog.types import Processor

LOGGER_NAME = "typedlite"


def add_library_context(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict["library"] = LOGGER_NAME
    return event_dict


shared_processors: list[Processor] = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
    add_library_context,
]


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Render typedlite's events on stderr.

    ``level`` and ``fmt`` default to TYPEDLITE_LOG_LEVEL (WARNING) and
    TYPEDLITE_LOG_FORMAT (``console``; ``json`` for JSON lines).
    """
    level = level or os.environ.get("TYPEDLITE_LOG_LEVEL", "WARNING")
    fmt = fmt or os.environ.get("TYPEDLITE_LOG_FORMAT", "console")

    if fmt == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    lib_logger = logging.getLogger(LOGGER_NAME)
    lib_logger.handlers.clear()
    lib_logger.addHandler(handler)
    lib_logger.setLevel(level.upper())
    lib_logger.propagate = False

    return get_logger()


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance with optional component binding."""
    logger = structlog.wrap_logger(
        logging.getLogger(LOGGER_NAME),
        processors=[structlog.stdlib.filter_by_level]
        + shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
    )
    if name:
        logger = logger.bind(component=name)
    return logger
