"""Loopback port helpers.

Picks the listening ports for a session before anything binds them.
"""

from __future__ import annotations

__all__ = [
    "find_free_port",
    "is_port_in_use",
]

import socket

from doh_router.constants import PORT_SEARCH_LIMIT, PROXY_HOST


def is_port_in_use(port: int, host: str = PROXY_HOST) -> bool:
    """Check if a TCP port can not be bound on the given host.

    Args:
        port: TCP port number to check.
        host: Interface to probe (default: loopback).

    Returns:
        True if binding fails, False if the port is free.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
        except OSError:
            return True
        return False


def find_free_port(
    preferred: int,
    *,
    host: str = PROXY_HOST,
    limit: int = PORT_SEARCH_LIMIT,
    exclude: set[int] | None = None,
) -> int:
    """Find the first free port at or above ``preferred``.

    A preferred port of 0 lets the OS pick an ephemeral port.

    Args:
        preferred: First port to try.
        host: Interface to probe.
        limit: Number of consecutive ports to probe.
        exclude: Ports already handed out for this session.

    Returns:
        A port that was free at the time of the check.

    Raises:
        RuntimeError: If no port in the range is free.
    """
    taken = exclude or set()
    if preferred == 0:
        while True:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind((host, 0))
                port = s.getsockname()[1]
            if port not in taken:
                return port

    for port in range(preferred, min(preferred + limit, 65536)):
        if port in taken:
            continue
        if not is_port_in_use(port, host):
            return port
    raise RuntimeError(f"No free port in range {preferred}-{preferred + limit - 1}")
