"""Pydantic models for structured log events."""

from __future__ import annotations

__all__ = ["RouterEvent"]

from typing import Any

from pydantic import BaseModel, ConfigDict


class RouterEvent(BaseModel):
    """Structured log entry.

    Attributes:
        event: Machine-readable event name (e.g., "proxy_started").
        message: Human-readable description shown on the console.
        session_id: Session the event belongs to.
        host: Target hostname, for connection and resolution events.
        port: Target or listening port.
        error_type: Exception class name for failures.
        error_message: Exception text for failures.
        details: Extra event-specific fields.
    """

    model_config = ConfigDict(frozen=True)

    event: str
    message: str | None = None
    session_id: str | None = None
    host: str | None = None
    port: int | None = None
    error_type: str | None = None
    error_message: str | None = None
    details: dict[str, Any] | None = None
