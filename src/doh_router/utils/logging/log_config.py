"""Logging configuration for doh-router.

Owns the logger configuration (handlers, formatters).
Other modules get their own logger reference via:
    _logger = get_logger("proxy")

Python loggers are singletons by name, so every module shares the root
``doh-router`` logger's handlers. This module owns the configuration;
others just call log_event().
"""

from __future__ import annotations

__all__ = [
    "configure_logging",
    "get_logger",
    "log_event",
]

import logging
from pathlib import Path

from doh_router.constants import APP_NAME
from doh_router.models import RouterEvent

from .iso_formatter import ISO8601Formatter

_root_logger = logging.getLogger(APP_NAME)
_root_logger.setLevel(logging.INFO)
_root_logger.propagate = False


class _ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output."""
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname}: {msg}"
        return f"{record.levelname}: {record.getMessage()}"


# stderr-only until configure_logging() runs
if not _root_logger.handlers:
    _stderr_handler = logging.StreamHandler()
    _stderr_handler.setFormatter(_ConsoleFormatter())
    _root_logger.addHandler(_stderr_handler)


def get_logger(component: str) -> logging.Logger:
    """Get a component logger under the doh-router logger tree.

    Args:
        component: Component name (e.g., "proxy", "resolver").

    Returns:
        Logger named ``doh-router.<component>``.
    """
    return logging.getLogger(f"{APP_NAME}.{component}")


def configure_logging(log_level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure stderr and JSONL file handlers.

    Sets up:
    - stderr handler: log_level+ for operator visibility
    - file handler: WARNING+ only (failures worth reviewing after the session)

    Safe to call more than once; existing handlers are closed and replaced.

    Args:
        log_level: Level name for the console handler.
        log_file: Path to system.jsonl, or None for console only.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    for handler in _root_logger.handlers:
        handler.close()
    _root_logger.handlers.clear()
    _root_logger.setLevel(min(level, logging.WARNING))

    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(_ConsoleFormatter())
    _root_logger.addHandler(stderr_handler)

    if log_file is None:
        return

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        log_file.parent.chmod(0o700)
    except OSError:
        pass  # stderr will still work

    try:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    except OSError as e:
        log_event(
            _root_logger,
            logging.WARNING,
            RouterEvent(
                event="file_logging_failed",
                message="Failed to configure file logging",
                error_type=type(e).__name__,
                error_message=str(e),
            ),
        )
        return
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(ISO8601Formatter())
    _root_logger.addHandler(file_handler)


def log_event(logger: logging.Logger, level: int, event: RouterEvent) -> None:
    """Log a RouterEvent at the specified level.

    Serializes the event to a dict (excluding None values) and logs it.
    The ISO8601Formatter adds the timestamp during serialization.

    Args:
        logger: Component logger.
        level: Logging level (e.g., logging.INFO, logging.WARNING).
        event: The event to log.
    """
    logger.log(level, event.model_dump(exclude_none=True))
