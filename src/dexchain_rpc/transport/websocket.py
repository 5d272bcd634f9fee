"""WebSocket transport implementation.

One instance is one transport generation: a single connection with one
reader task and one writer task. All writes funnel through the writer so
frames are never interleaved and go out in ``send`` order.

Keepalive:
- ping_period > 0: the writer sends a protocol ping whenever it has been
  idle for that long
- read_wait > 0: the connection is considered dead when neither a data
  frame nor a pong arrived within that window
- write_wait > 0: a single frame write may not take longer than that

Any read or write failure terminates both loops and closes the socket.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import SessionConfig
from ..errors import DecodeError, DialError, TransportClosedError
from ..protocol import RPCRequest, RPCResponse

logger = logging.getLogger(__name__)


class WebSocketTransport:
    """Client-side WebSocket transport for one connection."""

    def __init__(
        self,
        url: str,
        connection: ClientConnection,
        inbound: asyncio.Queue[RPCResponse],
        config: SessionConfig,
    ):
        self.url = url
        self.config = config
        self.last_ping_latency: float | None = None
        self._ws = connection
        self._inbound = inbound
        self._outbound: asyncio.Queue[RPCRequest] = asyncio.Queue(
            maxsize=max(config.send_queue_size, 0)
        )
        self._closed = asyncio.Event()
        self._close_reason: BaseException | None = None
        self._loop = asyncio.get_running_loop()
        self._last_frame_at = self._loop.time()

        self._reader_task = asyncio.create_task(self._read_loop(), name=f"ws-reader {url}")
        self._writer_task = asyncio.create_task(self._write_loop(), name=f"ws-writer {url}")

    @classmethod
    async def dial(
        cls,
        url: str,
        inbound: asyncio.Queue[RPCResponse],
        config: SessionConfig,
    ) -> WebSocketTransport:
        """Open a connection and start its reader and writer.

        Raises:
            DialError: If the connection cannot be established
        """
        try:
            connection = await connect(
                url,
                open_timeout=config.dial_timeout or None,
                # Keepalive is driven by the writer loop, not the library
                ping_interval=None,
                ping_timeout=None,
                max_size=config.max_message_size,
            )
        except (OSError, TimeoutError, WebSocketException) as e:
            raise DialError(url, str(e) or e.__class__.__name__) from e

        logger.info(f"Dialed {url}")
        return cls(url, connection, inbound, config)

    @property
    def is_alive(self) -> bool:
        return not self._closed.is_set()

    @property
    def close_reason(self) -> BaseException | None:
        return self._close_reason

    async def send(self, request: RPCRequest) -> None:
        """Hand a request to the writer, waiting if its queue is full.

        Raises:
            TransportClosedError: If the transport is dead or dies while waiting
        """
        if not self.is_alive:
            raise TransportClosedError(self.url, self._close_reason)
        try:
            self._outbound.put_nowait(request)
            return
        except asyncio.QueueFull:
            pass

        # The writer stops on death, so a full queue would never drain
        put = asyncio.create_task(self._outbound.put(request))
        closed = asyncio.create_task(self._closed.wait())
        try:
            await asyncio.wait((put, closed), return_when=asyncio.FIRST_COMPLETED)
        finally:
            put.cancel()
            closed.cancel()
        if self._closed.is_set():
            raise TransportClosedError(self.url, self._close_reason)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def close(self) -> None:
        """Close the connection and wait for both loops to stop."""
        await self._terminate(None)
        for task in (self._reader_task, self._writer_task):
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # Loops

    async def _read_loop(self) -> None:
        try:
            while True:
                data = await self._recv()
                self._touch()
                try:
                    response = RPCResponse.decode(data)
                except DecodeError as e:
                    logger.warning(f"Dropping malformed frame from {self.url}: {e}")
                    continue
                logger.debug(f"Received frame id={response.id!r}")
                self._inbound.put_nowait(response)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            logger.warning(f"Connection to {self.url} closed: {e}")
            await self._terminate(e)
        except Exception as e:
            logger.error(f"Failed to read from {self.url}: {e}")
            await self._terminate(e)

    async def _write_loop(self) -> None:
        ping_period = self.config.ping_period
        try:
            while True:
                try:
                    if ping_period > 0:
                        request = await asyncio.wait_for(self._outbound.get(), ping_period)
                    else:
                        request = await self._outbound.get()
                except TimeoutError:
                    await self._ping()
                    continue

                await self._write(request.encode())
                logger.debug(f"Sent {request.method} id={request.id}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to write to {self.url}: {e}")
            await self._terminate(e)

    # Helpers

    async def _recv(self) -> str | bytes:
        read_wait = self.config.read_wait
        if read_wait <= 0:
            return await self._ws.recv()

        while True:
            remaining = self._last_frame_at + read_wait - self._loop.time()
            if remaining <= 0:
                raise TimeoutError(f"No frame received for {read_wait}s")
            try:
                return await asyncio.wait_for(self._ws.recv(), remaining)
            except TimeoutError:
                # A pong may have moved the deadline; re-check before giving up
                continue

    async def _write(self, frame: str) -> None:
        if self.config.write_wait > 0:
            await asyncio.wait_for(self._ws.send(frame), self.config.write_wait)
        else:
            await self._ws.send(frame)

    async def _ping(self) -> None:
        pong_waiter = await self._ws.ping()
        sent_at = self._loop.time()

        def on_pong(future: asyncio.Future[Any]) -> None:
            if future.cancelled() or future.exception() is not None:
                return
            self._touch()
            self.last_ping_latency = self._loop.time() - sent_at
            logger.debug(f"Got pong from {self.url} after {self.last_ping_latency:.3f}s")

        pong_waiter.add_done_callback(on_pong)
        logger.debug(f"Sent ping to {self.url}")

    def _touch(self) -> None:
        self._last_frame_at = self._loop.time()

    async def _terminate(self, reason: BaseException | None) -> None:
        if self._closed.is_set():
            return
        self._close_reason = reason
        self._closed.set()

        current = asyncio.current_task()
        for task in (self._reader_task, self._writer_task):
            if task is not current:
                task.cancel()

        dropped = self._outbound.qsize()
        if dropped:
            logger.warning(f"Discarding {dropped} unsent request(s) for {self.url}")

        try:
            await self._ws.close()
        except (OSError, WebSocketException) as e:
            logger.debug(f"Error closing {self.url}: {e}")
        logger.info(f"Transport to {self.url} stopped")

    def __repr__(self) -> str:
        state = "alive" if self.is_alive else "dead"
        return f"<WebSocketTransport {self.url} {state}>"
