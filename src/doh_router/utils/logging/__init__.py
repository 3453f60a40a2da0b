"""Logging utilities for doh-router."""

from .iso_formatter import ISO8601Formatter
from .log_config import configure_logging, get_logger, log_event

__all__ = [
    "ISO8601Formatter",
    "configure_logging",
    "get_logger",
    "log_event",
]
