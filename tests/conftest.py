"""Shared fixtures for doh-router tests.

Upstream servers are real asyncio servers on loopback so the proxy is
exercised over actual sockets.
"""

from __future__ import annotations

import asyncio
import socket
from typing import AsyncIterator

import pytest

from doh_router.constants import PROXY_HOST


class HttpUpstream:
    """Minimal HTTP/1.1 origin that records request heads and bodies."""

    def __init__(self, body: bytes = b"hello") -> None:
        self.body = body
        self.heads: list[str] = []
        self.bodies: list[bytes] = []
        self.port = 0
        self._server: asyncio.Server | None = None

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, PROXY_HOST, 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        head = (await reader.readuntil(b"\r\n\r\n")).decode("iso-8859-1")
        self.heads.append(head)
        length = 0
        for line in head.split("\r\n")[1:]:
            if line.lower().startswith("content-length:"):
                length = int(line.split(":", 1)[1])
        self.bodies.append(await reader.readexactly(length) if length else b"")
        writer.write(
            b"HTTP/1.1 200 OK\r\n"
            + f"Content-Length: {len(self.body)}\r\n".encode()
            + b"Connection: close\r\n\r\n"
            + self.body
        )
        await writer.drain()
        writer.close()


class EchoUpstream:
    """Raw TCP server echoing every byte until the client half-closes."""

    def __init__(self) -> None:
        self.port = 0
        self._server: asyncio.Server | None = None

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, PROXY_HOST, 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        while True:
            data = await reader.read(4096)
            if not data:
                break
            writer.write(data)
            await writer.drain()
        writer.close()


@pytest.fixture
async def http_upstream() -> AsyncIterator[HttpUpstream]:
    """Running HTTP origin on an ephemeral loopback port."""
    upstream = HttpUpstream()
    await upstream.start()
    yield upstream
    await upstream.stop()


@pytest.fixture
async def echo_upstream() -> AsyncIterator[EchoUpstream]:
    """Running echo server on an ephemeral loopback port."""
    upstream = EchoUpstream()
    await upstream.start()
    yield upstream
    await upstream.stop()


@pytest.fixture
def closed_port() -> int:
    """A loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((PROXY_HOST, 0))
        return s.getsockname()[1]
