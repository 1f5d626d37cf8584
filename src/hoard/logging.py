"""Structured logging setup for Hoard.

All modules log through structlog with snake_case event names and keyword
context, e.g. ``log.info("media_stored", path=str(path), size=len(data))``.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Libraries that log every request at INFO
QUIET_LIBRARIES = ("httpx", "httpcore", "aiohttp")


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    # Looked up per call; follows reassignment of sys.stderr
    return structlog.PrintLogger(sys.stderr)


def setup_logging(json_output: bool = True, level: str = "INFO") -> None:
    """Configure structlog and stdlib log levels.

    Args:
        json_output: Render log lines as JSON when True, otherwise as
            human-readable console output.
        level: Minimum log level name.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.getLogger().setLevel(log_level)
    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """Get a logger bound to a component name.

    Args:
        name: Component name, added to every event as ``component``.

    Returns:
        Lazily configured structlog logger.
    """
    return structlog.get_logger(component=name)
