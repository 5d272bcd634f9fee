"""In-memory transport for testing.

No actual I/O - sent requests are recorded, and responses are produced by an
optional responder or injected with ``feed``.

Usage:
    def responder(request):
        return RPCResponse(id=request.id, result={"ok": True})

    dialer = MockDialer(responder)
    session = await dial("tcp://node:26657", dialer=dialer)

    assert dialer.current.sent[0].method == "status"
    dialer.current.kill()  # simulate a dead connection
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable

from ..config import SessionConfig
from ..errors import DialError, TransportClosedError
from ..protocol import RPCRequest, RPCResponse

logger = logging.getLogger(__name__)

Responder = Callable[[RPCRequest], "RPCResponse | None | Awaitable[RPCResponse | None]"]


class MockTransport:
    """One in-memory transport generation."""

    def __init__(
        self,
        url: str,
        inbound: asyncio.Queue[RPCResponse],
        responder: Responder | None = None,
    ):
        self.url = url
        self.responder = responder
        self._inbound = inbound
        self._sent: list[RPCRequest] = []
        self._closed = asyncio.Event()
        self._close_reason: BaseException | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def sent(self) -> list[RPCRequest]:
        """All requests written through this transport, in order."""
        return self._sent.copy()

    def sent_methods(self) -> list[str]:
        return [request.method for request in self._sent]

    @property
    def is_alive(self) -> bool:
        return not self._closed.is_set()

    @property
    def close_reason(self) -> BaseException | None:
        return self._close_reason

    async def send(self, request: RPCRequest) -> None:
        """Record the request and queue the responder's answer."""
        if not self.is_alive:
            raise TransportClosedError(self.url, self._close_reason)
        self._sent.append(request)

        if self.responder is None:
            return
        reply = self.responder(request)
        if inspect.isawaitable(reply):
            task = asyncio.create_task(self._deliver_later(reply))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif reply is not None:
            self.feed(reply)

    def feed(self, response: RPCResponse) -> None:
        """Inject an inbound frame (response or event)."""
        if not self.is_alive:
            logger.debug(f"Mock transport dead, dropping {response.id}")
            return
        self._inbound.put_nowait(response)

    def kill(self, reason: BaseException | None = None) -> None:
        """Simulate the connection dying."""
        if self._closed.is_set():
            return
        self._close_reason = reason or ConnectionResetError("connection lost")
        self._closed.set()
        for task in self._tasks:
            task.cancel()

    async def close(self) -> None:
        if not self._closed.is_set():
            self._closed.set()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def _deliver_later(self, reply: Awaitable[RPCResponse | None]) -> None:
        response = await reply
        if response is not None:
            self.feed(response)


class MockDialer:
    """Dialer that hands out MockTransport generations.

    ``refuse`` makes the next N dials fail with DialError.
    """

    def __init__(self, responder: Responder | None = None):
        self.responder = responder
        self.refuse = 0
        self.attempts = 0
        self.transports: list[MockTransport] = []

    @property
    def current(self) -> MockTransport:
        """The most recently dialed transport."""
        if not self.transports:
            raise LookupError("Nothing has been dialed yet")
        return self.transports[-1]

    async def __call__(
        self,
        url: str,
        inbound: asyncio.Queue[RPCResponse],
        config: SessionConfig,
    ) -> MockTransport:
        self.attempts += 1
        if self.refuse > 0:
            self.refuse -= 1
            raise DialError(url, "connection refused")
        transport = MockTransport(url, inbound, self.responder)
        self.transports.append(transport)
        return transport


def ack_responder(request: RPCRequest) -> RPCResponse:
    """Answer every request with an empty result."""
    return RPCResponse(id=request.id, result={})


def echo_responder(request: RPCRequest) -> RPCResponse:
    """Answer every request with its own id as the result."""
    return RPCResponse(id=request.id, result=request.id)
