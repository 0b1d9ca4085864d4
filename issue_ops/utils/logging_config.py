"""
Logging configuration using structlog.

Every module obtains its logger with ``structlog.get_logger(__name__)`` and
emits snake_case events with keyword context. This module configures the
processor pipeline once, at CLI start-up.
"""

import logging
import sys

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the issue-ops CLI.

    Logs are written to stderr so command output on stdout stays clean for
    GitHub Actions step summaries.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines; when False use the console renderer

    Example:
        >>> configure_logging("DEBUG")
        >>> log = structlog.get_logger(__name__)
        >>> log.info("workflow_initialized", issue=42, stage="first-issue")
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
