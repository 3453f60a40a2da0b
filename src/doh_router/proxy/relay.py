"""Bidirectional byte relay between a client and its upstream.

Each direction is its own task. Policy:
- client EOF half-closes the upstream and keeps the response direction open
- upstream EOF ends the Connection
- an error in either direction ends the Connection
Both streams are closed on every exit path.
"""

from __future__ import annotations

__all__ = [
    "close_writer",
    "relay",
]

import asyncio

from doh_router.constants import RELAY_CHUNK_SIZE


async def close_writer(writer: asyncio.StreamWriter) -> None:
    """Close a stream writer, ignoring errors from an already-broken socket."""
    if not writer.is_closing():
        writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass  # Peer already reset the connection


async def _pump(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    *,
    half_close: bool = False,
) -> int:
    """Copy bytes from reader to writer until EOF. Returns bytes copied."""
    total = 0
    while True:
        data = await reader.read(RELAY_CHUNK_SIZE)
        if not data:
            break
        writer.write(data)
        await writer.drain()
        total += len(data)
    if half_close and writer.can_write_eof() and not writer.is_closing():
        writer.write_eof()
    return total


async def relay(
    client_reader: asyncio.StreamReader,
    client_writer: asyncio.StreamWriter,
    upstream_reader: asyncio.StreamReader,
    upstream_writer: asyncio.StreamWriter,
) -> tuple[int, int]:
    """Relay bytes in both directions until the Connection ends.

    Bytes the client sent after the request head (already sitting in
    client_reader's buffer) are forwarded first.

    Returns:
        (bytes client->upstream, bytes upstream->client); a direction that
        failed or was cut short counts as 0.
    """
    to_upstream = asyncio.create_task(_pump(client_reader, upstream_writer, half_close=True))
    to_client = asyncio.create_task(_pump(upstream_reader, client_writer))
    try:
        await asyncio.wait({to_upstream, to_client}, return_when=asyncio.FIRST_COMPLETED)
        client_finished_cleanly = (
            to_upstream.done() and not to_upstream.cancelled() and to_upstream.exception() is None
        )
        if client_finished_cleanly and not to_client.done():
            await asyncio.wait({to_client})
    finally:
        for task in (to_upstream, to_client):
            if not task.done():
                task.cancel()
        results = await asyncio.gather(to_upstream, to_client, return_exceptions=True)
        await close_writer(upstream_writer)
        await close_writer(client_writer)

    sent, received = (r if isinstance(r, int) else 0 for r in results)
    return sent, received
