"""
Logging configuration for My Day.

This module configures structlog for JSON logging across the application.
"""

import logging
import sys
from typing import Any

import structlog

from .settings import settings

# Block payload keys whose values are user content and never logged verbatim
_CONTENT_KEYS = ("text", "content", "label")


def redact_block_content(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Replace user-authored block text in log events with a length marker."""

    def redact_value(value: Any) -> Any:
        if isinstance(value, str):
            return f"<{len(value)} chars>"
        if isinstance(value, (list, tuple)):
            return f"<{len(value)} fragments>"
        return value

    for key in list(event_dict.keys()):
        if key.lower() in _CONTENT_KEYS:
            event_dict[key] = redact_value(event_dict[key])

    return event_dict


def configure_logging() -> None:
    """Configure structlog for JSON logging."""
    # Log lines go to stderr; stdout is reserved for command output
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(message)s",
        stream=sys.stderr,
        force=True,
    )

    # Configure structlog with JSON output by default
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            redact_block_content,  # Redact user content before rendering
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a logger with service context.

    The logger is a lazy proxy: it picks up the configuration in effect on
    first use, so module-level loggers created before ``configure_logging``
    still render through it.
    """
    return structlog.get_logger(name, service="myday", env=settings.env)
