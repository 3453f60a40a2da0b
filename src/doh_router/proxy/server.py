"""Loopback forwarding proxy (plain HTTP relay + CONNECT tunnel).

Every accepted client is handled as its own asyncio task. Within one
Connection the order is fixed: resolve, then dial, then (CONNECT only)
write the tunnel-established line, then relay. No error escapes a
Connection; the listener keeps accepting.

Error mapping:
    plain HTTP: parse error -> 400, ResolutionFailure / UpstreamConnectFailure -> 502,
                anything else before relaying starts -> 500
    CONNECT:    any failure -> close without a response
"""

from __future__ import annotations

__all__ = [
    "ForwardingProxy",
    "Resolver",
]

import asyncio
import logging
from http import HTTPStatus
from typing import Protocol

from doh_router.constants import (
    CONNECTION_ESTABLISHED,
    DEFAULT_CONNECT_PORT,
    MAX_REQUEST_HEAD_BYTES,
    PROXY_HOST,
    UPSTREAM_CONNECT_TIMEOUT_SECONDS,
)
from doh_router.exceptions import RequestParseError, ResolutionFailure, UpstreamConnectFailure
from doh_router.models import RouterEvent
from doh_router.utils.logging import get_logger, log_event

from .parsing import RequestHead, build_upstream_head, parse_authority, parse_request_head, resolve_http_target
from .relay import close_writer, relay

_logger = get_logger("proxy")

_Streams = tuple[asyncio.StreamReader, asyncio.StreamWriter]


class Resolver(Protocol):
    """Anything that turns a hostname into address strings without raising."""

    async def resolve(self, hostname: str) -> list[str]: ...


async def _write_response(writer: asyncio.StreamWriter, status: int, body: str) -> None:
    """Write a small plain-text response and flush it."""
    payload = body.encode("utf-8")
    head = (
        f"HTTP/1.1 {status} {HTTPStatus(status).phrase}\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        f"Content-Length: {len(payload)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    writer.write(head.encode("ascii") + payload)
    try:
        await writer.drain()
    except OSError:
        pass  # Client went away; nothing left to report to


class ForwardingProxy:
    """Dual-mode forward proxy bound to loopback.

    State is limited to the listening server, the resolver reference and the
    set of live connection tasks (so stop() can close them).
    """

    def __init__(
        self,
        resolver: Resolver,
        port: int = 0,
        host: str = PROXY_HOST,
        *,
        session_id: str | None = None,
        connect_timeout: float = UPSTREAM_CONNECT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the proxy.

        Args:
            resolver: Shared hostname resolver.
            port: Listening port (0 = OS-assigned, see ``port`` after start()).
            host: Listening interface; loopback only.
            session_id: Session identifier attached to log events.
            connect_timeout: Upper bound for one upstream dial (seconds).
        """
        self._resolver = resolver
        self.host = host
        self.port = port
        self._session_id = session_id
        self._connect_timeout = connect_timeout
        self._server: asyncio.Server | None = None
        self._connections: set[asyncio.Task[None]] = set()

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    async def start(self) -> None:
        """Bind the listener and start accepting connections.

        Raises:
            OSError: If the port cannot be bound.
        """
        self._server = await asyncio.start_server(
            self._handle_client,
            self.host,
            self.port,
            # Bounds readuntil() for the request head; relay reads are fixed-size chunks
            limit=MAX_REQUEST_HEAD_BYTES,
        )
        self.port = self._server.sockets[0].getsockname()[1]
        log_event(
            _logger,
            logging.INFO,
            RouterEvent(
                event="proxy_started",
                message=f"Secure proxy listening on {self.host}:{self.port}",
                session_id=self._session_id,
                port=self.port,
            ),
        )

    async def stop(self) -> None:
        """Stop accepting, then close every in-flight Connection. Idempotent."""
        server, self._server = self._server, None
        if server is None:
            return

        server.close()
        connections = list(self._connections)
        for task in connections:
            task.cancel()
        await asyncio.gather(*connections, return_exceptions=True)
        await server.wait_closed()

        log_event(
            _logger,
            logging.INFO,
            RouterEvent(
                event="proxy_stopped",
                message="Secure proxy stopped",
                session_id=self._session_id,
                port=self.port,
                details={"closed_connections": len(connections)},
            ),
        )

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        try:
            head = await self._read_head(reader, writer)
            if head is None:
                return
            if head.is_connect:
                await self._handle_connect(head, reader, writer)
            else:
                await self._handle_http(head, reader, writer)
        except Exception:
            _logger.exception("Connection handler failed")
        finally:
            if task is not None:
                self._connections.discard(task)
            await close_writer(writer)

    async def _read_head(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> RequestHead | None:
        """Read and parse the request head; answers 400 itself on bad input."""
        try:
            block = await reader.readuntil(b"\r\n\r\n")
        except asyncio.IncompleteReadError:
            return None  # Client closed before finishing the head
        except asyncio.LimitOverrunError:
            await _write_response(writer, 431, "Request Header Fields Too Large")
            return None
        except OSError:
            return None

        try:
            return parse_request_head(block)
        except RequestParseError as e:
            log_event(
                _logger,
                logging.DEBUG,
                RouterEvent(event="bad_request", message=str(e), session_id=self._session_id),
            )
            await _write_response(writer, 400, "Bad Request")
            return None

    async def _resolve(self, host: str) -> str:
        """Resolve host to the first address.

        Raises:
            ResolutionFailure: If the resolver returned nothing.
        """
        addresses = await self._resolver.resolve(host)
        if not addresses:
            raise ResolutionFailure(host)
        return addresses[0]

    async def _dial(self, host: str, address: str, port: int) -> _Streams:
        """Open the upstream socket.

        Raises:
            UpstreamConnectFailure: If the dial fails or times out.
        """
        try:
            return await asyncio.wait_for(
                asyncio.open_connection(address, port),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError:
            raise UpstreamConnectFailure(host, address, port, "timed out") from None
        except OSError as e:
            raise UpstreamConnectFailure(host, address, port, str(e) or type(e).__name__) from e

    def _log_failure(self, error: Exception, host: str, port: int | None) -> None:
        failure_type = getattr(error, "failure_type", "internal_proxy_fault")
        log_event(
            _logger,
            logging.INFO,
            RouterEvent(
                event="connection_failed",
                message=str(error),
                session_id=self._session_id,
                host=host,
                port=port,
                error_type=type(error).__name__,
                details={"failure_type": failure_type},
            ),
        )

    async def _handle_http(
        self,
        head: RequestHead,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Plain HTTP: resolve, dial, forward the rewritten head, relay."""
        host = ""
        port: int | None = None
        try:
            target = resolve_http_target(head)
            host, port = target.host, target.port
            address = await self._resolve(target.host)
            upstream_reader, upstream_writer = await self._dial(target.host, address, target.port)
        except RequestParseError as e:
            self._log_failure(e, host, port)
            await _write_response(writer, 400, "Bad Request")
            return
        except ResolutionFailure as e:
            self._log_failure(e, host, port)
            await _write_response(writer, 502, "DNS Failed")
            return
        except UpstreamConnectFailure as e:
            self._log_failure(e, host, port)
            await _write_response(writer, 502, "Connection Failed")
            return
        except Exception as e:
            _logger.exception("Unexpected error while handling %s %s", head.method, head.target)
            self._log_failure(e, host, port)
            await _write_response(writer, 500, "Proxy Error")
            return

        try:
            upstream_writer.write(build_upstream_head(head, target))
            await upstream_writer.drain()
        except OSError as e:
            await close_writer(upstream_writer)
            self._log_failure(UpstreamConnectFailure(host, address, target.port, str(e)), host, port)
            await _write_response(writer, 502, "Connection Failed")
            return

        await relay(reader, writer, upstream_reader, upstream_writer)

    async def _handle_connect(
        self,
        head: RequestHead,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """CONNECT: resolve, dial, announce the tunnel, relay. Failures just close."""
        host = head.target
        port: int | None = None
        try:
            host, port = parse_authority(head.target, DEFAULT_CONNECT_PORT)
            address = await self._resolve(host)
            upstream_reader, upstream_writer = await self._dial(host, address, port)
        except (RequestParseError, ResolutionFailure, UpstreamConnectFailure) as e:
            self._log_failure(e, host, port)
            return
        except Exception as e:
            _logger.exception("Unexpected error while opening tunnel to %s", head.target)
            self._log_failure(e, host, port)
            return

        try:
            writer.write(CONNECTION_ESTABLISHED)
            await writer.drain()
        except OSError as e:
            await close_writer(upstream_writer)
            self._log_failure(e, host, port)
            return

        await relay(reader, writer, upstream_reader, upstream_writer)
