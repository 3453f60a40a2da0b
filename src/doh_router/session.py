"""Session value for one run of doh-router.

A Session is built once at startup and handed to every component that
needs it. It is immutable; the cleanup-in-progress state lives on the
SessionCoordinator.
"""

from __future__ import annotations

__all__ = [
    "Session",
    "create_session",
    "generate_session_id",
]

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from doh_router.config import RouterConfig
from doh_router.constants import PROXY_HOST
from doh_router.utils.ports import find_free_port

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_session_id() -> str:
    """Generate an opaque session token.

    Format: vr_{base36 millis}{10 random base36 chars}

    Returns:
        Session ID (e.g., "vr_m1x2y3z4k9q0w8e7r6t").
    """
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(10))
    return f"vr_{stamp}{suffix}"


@dataclass(frozen=True)
class Session:
    """One run of the system.

    Only proxy_port is consumed by the proxy itself; the other two ports
    are reserved for companion processes.
    """

    session_id: str
    proxy_port: int
    dashboard_port: int
    live_server_port: int
    proxy_host: str = PROXY_HOST
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def proxy_address(self) -> str:
        """Proxy address in host:port form, as entered in OS/browser settings."""
        return f"{self.proxy_host}:{self.proxy_port}"


def create_session(config: RouterConfig) -> Session:
    """Allocate ports and build the Session for this run.

    Args:
        config: Effective configuration (preferred ports).

    Returns:
        New Session with distinct free ports.
    """
    proxy_port = find_free_port(config.proxy_port)
    dashboard_port = find_free_port(config.dashboard_port, exclude={proxy_port})
    live_server_port = find_free_port(config.live_server_port, exclude={proxy_port, dashboard_port})
    return Session(
        session_id=generate_session_id(),
        proxy_port=proxy_port,
        dashboard_port=dashboard_port,
        live_server_port=live_server_port,
    )
