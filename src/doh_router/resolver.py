"""DNS-over-HTTPS hostname resolver.

Resolution order for every call (no caching, no retries):
1. IP literals are returned as-is
2. DoH JSON query for A records against the configured endpoint
3. One fallback to the platform resolver (IPv4 getaddrinfo)
4. Empty list

resolve() never raises; every failure ends in an empty list.
"""

from __future__ import annotations

__all__ = [
    "DoHResolver",
    "FallbackResolver",
    "system_resolve",
]

import asyncio
import ipaddress
import logging
import socket
from typing import Any, Awaitable, Callable

import httpx

from doh_router.constants import (
    DEFAULT_DOH_ENDPOINT,
    DEFAULT_DOH_TIMEOUT_SECONDS,
    DNS_TYPE_A,
    DOH_ACCEPT_HEADER,
)
from doh_router.models import RouterEvent
from doh_router.utils.logging import get_logger, log_event

_logger = get_logger("resolver")

FallbackResolver = Callable[[str], Awaitable[list[str]]]


async def system_resolve(hostname: str) -> list[str]:
    """Resolve IPv4 addresses with the platform resolver.

    Args:
        hostname: Name to resolve.

    Returns:
        Unique addresses in the order getaddrinfo returned them.

    Raises:
        OSError: If the platform resolver fails (socket.gaierror).
    """
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, family=socket.AF_INET, type=socket.SOCK_STREAM)
    addresses: list[str] = []
    for info in infos:
        address = str(info[4][0])
        if address not in addresses:
            addresses.append(address)
    return addresses


def _extract_addresses(payload: Any) -> list[str]:
    """Pull address strings out of a DoH JSON answer.

    Records that declare a non-A type (CNAME chains) are skipped; records
    without a type are kept.
    """
    if not isinstance(payload, dict):
        return []
    answers = payload.get("Answer")
    if not isinstance(answers, list):
        return []

    addresses: list[str] = []
    for record in answers:
        if not isinstance(record, dict):
            continue
        record_type = record.get("type")
        if record_type is not None and record_type != DNS_TYPE_A:
            continue
        data = record.get("data")
        if isinstance(data, str) and data:
            addresses.append(data)
    return addresses


class DoHResolver:
    """Resolves hostnames via DoH with a single platform-resolver fallback.

    The resolver is shared by every Connection and holds no per-call state.
    It owns an httpx.AsyncClient unless one is injected; aclose() releases it.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_DOH_ENDPOINT,
        timeout: float = DEFAULT_DOH_TIMEOUT_SECONDS,
        *,
        client: httpx.AsyncClient | None = None,
        fallback: FallbackResolver | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            endpoint: DoH JSON endpoint URL.
            timeout: Upper bound for one DoH query (seconds).
            client: HTTP client to use (created if not given).
            fallback: Conventional resolver (default: system_resolve).
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._fallback = fallback or system_resolve

    async def resolve(self, hostname: str) -> list[str]:
        """Resolve hostname to IPv4 address strings.

        Args:
            hostname: Name to resolve (brackets around IPv6 literals are ignored).

        Returns:
            Addresses in the order received, or [] if nothing resolved.
        """
        hostname = hostname.strip().strip("[]")
        if not hostname:
            return []

        try:
            return [str(ipaddress.ip_address(hostname))]
        except ValueError:
            pass

        try:
            addresses = await asyncio.wait_for(self._query_doh(hostname), timeout=self.timeout)
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
            log_event(
                _logger,
                logging.DEBUG,
                RouterEvent(
                    event="doh_query_failed",
                    message=f"DoH query for {hostname} failed, using fallback resolver",
                    host=hostname,
                    error_type=type(e).__name__,
                    error_message=str(e),
                ),
            )
            addresses = []

        if addresses:
            return addresses

        try:
            return await self._fallback(hostname)
        except (OSError, ValueError) as e:
            log_event(
                _logger,
                logging.WARNING,
                RouterEvent(
                    event="resolution_failed",
                    message=f"Could not resolve {hostname}",
                    host=hostname,
                    error_type=type(e).__name__,
                    error_message=str(e),
                ),
            )
            return []

    async def _query_doh(self, hostname: str) -> list[str]:
        """Send one DoH JSON query.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx status.
            ValueError: If the body is not JSON.
        """
        response = await self._client.get(
            self.endpoint,
            params={"name": hostname, "type": "A"},
            headers={"Accept": DOH_ACCEPT_HEADER},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return _extract_addresses(response.json())

    async def aclose(self) -> None:
        """Close the owned HTTP client."""
        if self._owns_client:
            await self._client.aclose()
