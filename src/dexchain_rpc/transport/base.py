"""Transport abstraction.

A transport owns exactly one physical connection. It writes request frames,
pushes every decoded inbound frame onto a queue owned by the session, and
dies on the first I/O failure. It never heals itself; redialing is the
session's job.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from ..config import SessionConfig
from ..protocol import RPCRequest, RPCResponse

PROTO_TCP = "tcp"
PROTO_HTTP = "http"
PROTO_HTTPS = "https"
PROTO_WS = "ws"
PROTO_WSS = "wss"


@runtime_checkable
class Transport(Protocol):
    """Protocol for one transport generation."""

    @property
    def is_alive(self) -> bool:
        """True until the connection fails or is closed."""
        ...

    @property
    def close_reason(self) -> BaseException | None:
        """The error that killed the transport, None if closed normally."""
        ...

    async def send(self, request: RPCRequest) -> None:
        """Queue a request for the writer.

        Raises:
            TransportClosedError: If the transport is dead
        """
        ...

    async def close(self) -> None:
        """Stop all loops and release the connection. Idempotent."""
        ...

    async def wait_closed(self) -> None:
        """Return once the transport is dead."""
        ...


Dialer = Callable[[str, "asyncio.Queue[RPCResponse]", SessionConfig], Awaitable[Transport]]


def build_ws_url(remote: str, endpoint: str = "/websocket") -> str:
    """Build the WebSocket URL for a node address.

    ``tcp://``, ``http://`` and bare ``host:port`` addresses map to ``ws://``;
    ``https://`` maps to ``wss://``. ``ws://`` and ``wss://`` are kept.

    Raises:
        ValueError: For an unsupported scheme or an empty address
    """
    if "://" in remote:
        protocol, address = remote.split("://", 1)
    else:
        protocol, address = PROTO_TCP, remote

    protocol = protocol.lower()
    if protocol in (PROTO_HTTPS, PROTO_WSS):
        scheme = PROTO_WSS
    elif protocol in (PROTO_TCP, PROTO_HTTP, PROTO_WS):
        scheme = PROTO_WS
    else:
        raise ValueError(f"Invalid addr: {remote}")

    address = address.rstrip("/")
    if not address:
        raise ValueError(f"Invalid addr: {remote}")

    if endpoint and not endpoint.startswith("/"):
        endpoint = f"/{endpoint}"
    return f"{scheme}://{address}{endpoint}"
