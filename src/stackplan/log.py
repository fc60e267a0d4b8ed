"""structlog configuration for scripts and command-line use."""

import logging
import sys

import structlog


def configure_logging(level: str | int = "INFO", json: bool = False) -> None:
    """Configure structlog to render key-value events to stderr.

    Args:
        level: Minimum level, as a name ("DEBUG") or a logging constant.
        json: Render events as JSON lines instead of console output.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level!r}")

    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
