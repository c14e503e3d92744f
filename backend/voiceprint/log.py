"""Structured logging with structlog.

JSON lines in production, a coloured console renderer in development.
Modules obtain loggers through ``get_logger(__name__)`` and log snake_case
event names with key/value context::

    logger = get_logger(__name__)
    logger.info("fingerprint_activated", fingerprint_id=fid, version=3)
"""

import logging
import sys

import structlog
from structlog.types import EventDict, WrappedLogger


def add_service_info(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Tag every entry with the service name."""
    event_dict["service"] = "voiceprint"
    return event_dict


def configure_logging(json_format: bool = True, log_level: str = "INFO") -> None:
    """Configure stdlib logging and structlog for the application.

    Args:
        json_format: Emit JSON lines when True, human-readable output otherwise.
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    shared_processors: list = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_service_info,
    ]

    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, typically for ``__name__``."""
    return structlog.get_logger(name)
