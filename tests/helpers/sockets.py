"""In-memory socket pairs standing in for accepted endpoint connections."""

from __future__ import annotations

import asyncio
import socket

from sockonsole.relay.transports import Connection


async def connection_pair(endpoint: str) -> tuple[Connection, Connection]:
    """Return ``(relay_side, client_side)`` connected through a socketpair."""
    relay_sock, client_sock = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    relay_reader, relay_writer = await asyncio.open_unix_connection(sock=relay_sock)
    client_reader, client_writer = await asyncio.open_unix_connection(sock=client_sock)
    return (
        Connection(reader=relay_reader, writer=relay_writer, endpoint=endpoint),
        Connection(reader=client_reader, writer=client_writer, endpoint=endpoint),
    )
