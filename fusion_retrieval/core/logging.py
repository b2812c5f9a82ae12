"""Structured logging configuration with JSON format.

Features:
- JSON-formatted log output for production
- Human-readable format for development
- Request context (user, project) via contextvars
- Service context
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from fusion_retrieval.core.config import get_settings


def add_service_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add service context to all log entries.

    Args:
        logger: The wrapped logger object.
        method_name: The name of the method called on the logger.
        event_dict: The event dictionary to process.

    Returns:
        Updated event dictionary with service context.
    """
    settings = get_settings()
    event_dict["service"] = settings.service_name
    event_dict["environment"] = settings.environment
    return event_dict


def configure_logging() -> None:
    """Configure structured logging for the application.

    In development: Human-readable colored output
    In production: JSON-formatted structured logs
    """
    settings = get_settings()

    use_json = settings.environment in ("production", "staging")

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_service_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if use_json:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.getLevelName(settings.log_level.upper()),
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Optional logger name (module name recommended).

    Returns:
        Configured structlog BoundLogger instance.

    Example:
        ```python
        from fusion_retrieval.core.logging import get_logger

        logger = get_logger(__name__)
        logger.info("Source query failed", source_id="docs", error="timeout")
        ```
    """
    return structlog.get_logger(name)


def bind_request_context(**values: Any) -> None:
    """Bind per-request values (user, project) into every log entry."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        **{key: value for key, value in values.items() if value is not None}
    )


Logger = structlog.BoundLogger
