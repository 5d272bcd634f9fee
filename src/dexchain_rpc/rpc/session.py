"""Persistent RPC session over a reconnecting WebSocket.

A Session owns:
- the current transport generation (swapped under a lock on redial)
- a router task that routes inbound frames to pending calls and subscriptions
- a supervisor task that redials dead transports and replays subscriptions

Callers never see the connection churn. A call issued while reconnecting
waits for the next transport inside its own timeout. A call whose frame was
already written to a transport that then died is not failed early; it waits
out its timeout.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any

from ..config import SessionConfig
from ..errors import DialError, RPCTimeoutError, SessionClosedError, TransportClosedError
from ..protocol import RPCRequest, RPCResponse
from ..transport import Dialer, Transport, WebSocketTransport, build_ws_url
from .multiplexer import RequestMultiplexer
from .subscriptions import EventStream, SubscriptionRegistry

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class Session:
    """A single logical connection to a node.

    Usage:
        async with Session("tcp://127.0.0.1:26657") as session:
            status = await session.call("status")
            async for event in await session.subscribe("tm.event='NewBlock'"):
                print(event.data.type)
    """

    def __init__(
        self,
        remote: str,
        endpoint: str = "/websocket",
        config: SessionConfig | None = None,
        dialer: Dialer | None = None,
    ):
        self.config = config or SessionConfig()
        self.url = build_ws_url(remote, endpoint)
        self._dialer: Dialer = dialer or WebSocketTransport.dial
        self._timeout = self.config.timeout
        self._state = SessionState.DISCONNECTED
        self._closed = False

        self._inbound: asyncio.Queue[RPCResponse] = asyncio.Queue()
        self._multiplexer = RequestMultiplexer()
        self._registry = SubscriptionRegistry(self._request, self._multiplexer.new_id)

        self._transport: Transport | None = None
        self._transport_lock = asyncio.Lock()
        self._connected = asyncio.Event()

        self._router_task: asyncio.Task[None] | None = None
        self._supervisor_task: asyncio.Task[None] | None = None
        self._resubscribe_task: asyncio.Task[None] | None = None

    # Introspection

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        """True iff dialed and not in the middle of a redial."""
        return (
            not self._closed
            and self._state == SessionState.CONNECTED
            and self._transport is not None
            and self._transport.is_alive
        )

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def topics(self) -> set[str]:
        """Queries currently registered."""
        return self._registry.topics

    @property
    def pending_count(self) -> int:
        """Number of calls waiting for a response."""
        return len(self._multiplexer)

    # Lifecycle

    async def start(self) -> None:
        """Dial the first transport and start the background tasks.

        Raises:
            DialError: If the first dial fails
            SessionClosedError: If the session was closed
        """
        self._ensure_open()
        if self._state != SessionState.DISCONNECTED:
            return

        self._state = SessionState.CONNECTING
        try:
            transport = await self._dialer(self.url, self._inbound, self.config)
        except BaseException:
            self._state = SessionState.DISCONNECTED
            raise

        async with self._transport_lock:
            self._install(transport)
        self._router_task = asyncio.create_task(self._route_loop(), name=f"router {self.url}")
        self._supervisor_task = asyncio.create_task(
            self._supervise(), name=f"supervisor {self.url}"
        )
        logger.info(f"Session connected to {self.url}")

    async def close(self) -> None:
        """Stop every task, end every event stream and release the socket.

        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        self._state = SessionState.CLOSED
        # Wake calls waiting for a transport so they observe the close
        self._connected.set()

        try:
            current = asyncio.current_task()
            tasks = [
                task
                for task in (self._supervisor_task, self._resubscribe_task, self._router_task)
                if task is not None and task is not current
            ]
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

            await self._registry.close()
            self._multiplexer.fail_all(SessionClosedError())
        finally:
            async with self._transport_lock:
                transport, self._transport = self._transport, None
            if transport is not None:
                await transport.close()
            logger.info(f"Session to {self.url} closed")

    async def __aenter__(self) -> Session:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # Calls

    def set_timeout(self, seconds: float) -> None:
        """Change the default timeout for calls issued from now on."""
        if seconds < 0:
            raise ValueError("timeout can't be negative")
        self._timeout = seconds

    async def call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Send a request and wait for its result.

        Args:
            method: RPC method name (e.g. "status")
            params: Method parameters
            timeout: Seconds to wait; defaults to the session timeout, 0 waits forever

        Returns:
            The decoded ``result`` member of the response

        Raises:
            RPCTimeoutError: If no response arrived in time
            RPCResponseError: If the node answered with an error object
            SessionClosedError: If the session is or gets closed
        """
        self._ensure_open()
        request = self._multiplexer.new_request(method, params)
        return await self._request(request, timeout)

    async def subscribe(self, query: str, buffer_size: int | None = None) -> EventStream:
        """Subscribe to an event query.

        Raises:
            AlreadySubscribedError: If ``query`` is already subscribed
        """
        self._ensure_open()
        return await self._registry.subscribe(query, buffer_size or self.config.buffer_size)

    async def unsubscribe(self, query: str) -> None:
        self._ensure_open()
        await self._registry.unsubscribe(query)

    async def unsubscribe_all(self) -> None:
        self._ensure_open()
        await self._registry.unsubscribe_all()

    async def _request(self, request: RPCRequest, timeout: float | None = None) -> Any:
        self._ensure_open()
        if timeout is None:
            timeout = self._timeout

        future = self._multiplexer.register(request.id)
        try:
            async with asyncio.timeout(timeout if timeout > 0 else None):
                await self._send(request)
                response = await future
        except TimeoutError as e:
            raise RPCTimeoutError(request.method, request.id, timeout) from e
        finally:
            self._multiplexer.discard(request.id)

        if response.error is not None:
            raise response.error.to_exception()
        return response.result

    async def _send(self, request: RPCRequest) -> None:
        while True:
            transport = await self._current_transport()
            try:
                await transport.send(request)
                return
            except TransportClosedError:
                self._mark_disconnected(transport)
                logger.debug(
                    f"Transport died before {request.method} ({request.id}) was sent, "
                    "waiting for reconnect"
                )

    async def _current_transport(self) -> Transport:
        while True:
            await self._connected.wait()
            self._ensure_open()
            transport = self._transport
            if transport is not None and transport.is_alive:
                return transport
            self._mark_disconnected(transport)

    # Background tasks

    async def _route_loop(self) -> None:
        while True:
            response = await self._inbound.get()
            self._route(response)

    def _route(self, response: RPCResponse) -> None:
        if self._multiplexer.dispatch(response):
            # The first response to a subscribe call is its ack
            self._registry.acknowledge(response.id)
            return
        if self._registry.dispatch(response):
            return
        logger.debug(f"Dropping frame with unknown id {response.id!r}")

    async def _supervise(self) -> None:
        while True:
            transport = self._transport
            if transport is None:
                return
            await transport.wait_closed()
            self._mark_disconnected(transport)
            logger.warning(f"Lost connection to {self.url}: {transport.close_reason}")
            await transport.close()

            new_transport = await self._redial()
            async with self._transport_lock:
                self._install(new_transport)
            logger.info(f"Reconnected to {self.url}")
            self._after_reconnect()

    async def _redial(self) -> Transport:
        self._state = SessionState.RECONNECTING
        attempt = 0
        while True:
            attempt += 1
            await asyncio.sleep(self.config.reconnect_interval)
            logger.info(f"Reconnecting to {self.url} (attempt {attempt})")
            try:
                return await self._dialer(self.url, self._inbound, self.config)
            except DialError as e:
                logger.error(f"Failed to redial: {e}")

    def _after_reconnect(self) -> None:
        if self._resubscribe_task is not None and not self._resubscribe_task.done():
            self._resubscribe_task.cancel()
        self._resubscribe_task = asyncio.create_task(
            self._resubscribe(), name=f"resubscribe {self.url}"
        )

    async def _resubscribe(self) -> None:
        await self._registry.resubscribe_all()
        callback = self.config.on_reconnect
        if callback is None:
            return
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Error in on_reconnect callback")

    # State helpers

    def _install(self, transport: Transport) -> None:
        self._transport = transport
        self._state = SessionState.CONNECTED
        self._connected.set()

    def _mark_disconnected(self, transport: Transport | None) -> None:
        if self._closed or self._transport is not transport:
            return
        if self._state == SessionState.CONNECTED:
            self._state = SessionState.RECONNECTING
        self._connected.clear()

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError()

    def __repr__(self) -> str:
        return f"<Session {self.url} {self._state.value}>"


async def dial(
    remote: str,
    endpoint: str = "/websocket",
    config: SessionConfig | None = None,
    dialer: Dialer | None = None,
) -> Session:
    """Create a session and dial its first transport.

    Raises:
        DialError: If the node cannot be reached
    """
    session = Session(remote, endpoint, config, dialer)
    await session.start()
    return session
