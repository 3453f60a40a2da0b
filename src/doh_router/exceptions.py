"""Custom exceptions for doh-router.

Connection-local errors (the proxy keeps running):
    - ResolutionFailure: DoH and fallback resolution both produced nothing
    - UpstreamConnectFailure: Dial to the resolved upstream failed
    - RequestParseError: Client sent a request head we cannot frame

Startup errors (the CLI exits):
    - ConfigurationError: Config file is unreadable or invalid
    - ProxyAlreadyRunningError: Another instance owns the PID file

Usage:
    from doh_router.exceptions import ResolutionFailure, UpstreamConnectFailure
"""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "ProxyAlreadyRunningError",
    "RequestParseError",
    "ResolutionFailure",
    "RouterError",
    "UpstreamConnectFailure",
]


class RouterError(Exception):
    """Base exception for doh-router.

    Attributes:
        exit_code: Process exit code when the error ends a CLI command.
        failure_type: Category string for structured log events.
    """

    exit_code: int = 1
    failure_type: str = "unknown"


# =============================================================================
# Connection-local errors (never escape a single Connection)
# =============================================================================


class ResolutionFailure(RouterError):
    """Hostname resolved to no addresses.

    Surfaced as 502 on the plain HTTP path and as a silent close on the
    CONNECT path.
    """

    failure_type = "resolution_failure"

    def __init__(self, hostname: str) -> None:
        self.hostname = hostname
        super().__init__(f"Could not resolve {hostname!r}")


class UpstreamConnectFailure(RouterError):
    """Dial to the resolved upstream address failed."""

    failure_type = "upstream_connect_failure"

    def __init__(self, host: str, address: str, port: int, reason: str) -> None:
        self.host = host
        self.address = address
        self.port = port
        self.reason = reason
        super().__init__(f"Could not connect to {host} ({address}:{port}): {reason}")


class RequestParseError(RouterError):
    """Client request head is malformed or too large."""

    failure_type = "request_parse_error"


# =============================================================================
# Startup errors
# =============================================================================


class ConfigurationError(RouterError):
    """Configuration is invalid or unreadable.

    Raised when:
    - Config file contains invalid JSON
    - Config file fails Pydantic validation

    Exit code 2 indicates configuration failure.
    """

    exit_code = 2
    failure_type = "configuration_failure"


class ProxyAlreadyRunningError(RouterError):
    """A live doh-router instance already owns the PID file."""

    exit_code = 3
    failure_type = "already_running"

    def __init__(self, pid: int) -> None:
        self.pid = pid
        super().__init__(f"doh-router is already running (pid: {pid})")
