"""Tests for DoHResolver.

The DoH endpoint is replaced with httpx.MockTransport; the fallback is an
AsyncMock so each test controls both resolution paths.
"""

from __future__ import annotations

import asyncio
import socket
from typing import Any, Callable
from unittest.mock import AsyncMock

import httpx
import pytest

from doh_router.resolver import DoHResolver, system_resolve

ENDPOINT = "https://doh.test/dns-query"


def _client(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _answer(*records: dict[str, Any]) -> dict[str, Any]:
    return {"Status": 0, "Answer": list(records)}


class TestDoHPath:
    """Tests for the DoH query."""

    async def test_returns_a_records_in_order(self) -> None:
        """Given A records, returns them in the order received without fallback."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json=_answer(
                    {"name": "example.test", "type": 1, "data": "192.0.2.10"},
                    {"name": "example.test", "type": 1, "data": "192.0.2.11"},
                ),
            )

        fallback = AsyncMock()
        resolver = DoHResolver(ENDPOINT, 1.0, client=_client(handler), fallback=fallback)

        result = await resolver.resolve("example.test")

        assert result == ["192.0.2.10", "192.0.2.11"]
        fallback.assert_not_awaited()
        assert requests[0].url.params["name"] == "example.test"
        assert requests[0].url.params["type"] == "A"
        assert requests[0].headers["accept"] == "application/dns-json"

    async def test_skips_cname_records(self) -> None:
        """Given a CNAME chain, only the A record data is returned."""
        answer = _answer(
            {"name": "www.example.test", "type": 5, "data": "example.test."},
            {"name": "example.test", "type": 1, "data": "192.0.2.20"},
        )
        resolver = DoHResolver(
            ENDPOINT, 1.0, client=_client(lambda r: httpx.Response(200, json=answer)), fallback=AsyncMock()
        )

        assert await resolver.resolve("www.example.test") == ["192.0.2.20"]

    async def test_ip_literal_skips_resolution(self) -> None:
        """Given an IP literal, returns it without any lookup."""
        fallback = AsyncMock()
        transport_calls: list[httpx.Request] = []
        resolver = DoHResolver(
            ENDPOINT,
            1.0,
            client=_client(lambda r: transport_calls.append(r) or httpx.Response(500)),
            fallback=fallback,
        )

        assert await resolver.resolve("203.0.113.5") == ["203.0.113.5"]
        assert await resolver.resolve("[::1]") == ["::1"]
        assert transport_calls == []
        fallback.assert_not_awaited()


class TestFallback:
    """Tests for the platform resolver fallback."""

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(503),
            httpx.Response(200, content=b"not json"),
            httpx.Response(200, json={"Status": 3}),
            httpx.Response(200, json=_answer({"type": 5, "data": "alias.test."})),
        ],
    )
    async def test_falls_back_when_doh_yields_nothing(self, response: httpx.Response) -> None:
        """Given an error status, bad body or empty answer, the fallback result is used."""
        fallback = AsyncMock(return_value=["198.51.100.1"])
        resolver = DoHResolver(ENDPOINT, 1.0, client=_client(lambda r: response), fallback=fallback)

        assert await resolver.resolve("example.test") == ["198.51.100.1"]
        fallback.assert_awaited_once_with("example.test")

    async def test_falls_back_on_transport_error(self) -> None:
        """Given a network failure talking to the DoH endpoint, the fallback is used."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        fallback = AsyncMock(return_value=["198.51.100.2"])
        resolver = DoHResolver(ENDPOINT, 1.0, client=_client(handler), fallback=fallback)

        assert await resolver.resolve("example.test") == ["198.51.100.2"]

    async def test_falls_back_on_timeout(self) -> None:
        """Given a DoH endpoint slower than the timeout, the fallback is used."""

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json=_answer({"type": 1, "data": "192.0.2.1"}))

        fallback = AsyncMock(return_value=["198.51.100.3"])
        resolver = DoHResolver(ENDPOINT, 0.1, client=_client(handler), fallback=fallback)

        assert await asyncio.wait_for(resolver.resolve("slow.test"), timeout=3) == ["198.51.100.3"]

    async def test_both_paths_failing_returns_empty_list(self) -> None:
        """Given DoH and fallback both failing, returns [] instead of raising."""
        fallback = AsyncMock(side_effect=socket.gaierror(socket.EAI_NONAME, "Name or service not known"))
        resolver = DoHResolver(ENDPOINT, 1.0, client=_client(lambda r: httpx.Response(500)), fallback=fallback)

        assert await resolver.resolve("nowhere.test") == []

    async def test_empty_hostname_returns_empty_list(self) -> None:
        """Given an empty hostname, returns [] without any lookup."""
        fallback = AsyncMock()
        resolver = DoHResolver(ENDPOINT, 1.0, client=_client(lambda r: httpx.Response(500)), fallback=fallback)

        assert await resolver.resolve("  ") == []
        fallback.assert_not_awaited()


class TestClientOwnership:
    """Tests for aclose()."""

    async def test_injected_client_is_left_open(self) -> None:
        """aclose() does not close a client the caller passed in."""
        client = _client(lambda r: httpx.Response(500))
        resolver = DoHResolver(ENDPOINT, 1.0, client=client)

        await resolver.aclose()

        assert not client.is_closed
        await client.aclose()

    async def test_owned_client_is_closed(self) -> None:
        """aclose() closes the client the resolver created."""
        resolver = DoHResolver(ENDPOINT, 1.0)

        await resolver.aclose()

        assert resolver._client.is_closed


class TestSystemResolve:
    """Tests for the platform resolver."""

    async def test_resolves_localhost(self) -> None:
        """localhost resolves to the IPv4 loopback address."""
        assert "127.0.0.1" in await system_resolve("localhost")
