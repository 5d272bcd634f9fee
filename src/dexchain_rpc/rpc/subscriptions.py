"""Subscription bookkeeping that survives reconnects.

A subscription maps a query to the correlation id of its subscribe call.
The node acknowledges the subscribe call with one response under that id
and then streams events as ``<id>#event`` frames.

Flow for each subscription:
    router --dispatch()--> staging queue --relay task--> EventStream --> caller

The router never waits: when the staging queue is full the frame is dropped.
The relay task absorbs a slow consumer so that only that subscription loses
events.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from ..errors import AlreadySubscribedError, RPCClientError
from ..protocol import ResultEvent, RPCRequest, RPCResponse

logger = logging.getLogger(__name__)

RequestFn = Callable[[RPCRequest, "float | None"], Awaitable[Any]]

_CLOSED = object()


class EventStream:
    """Pull-based stream of events for one subscription.

    Iterate with ``async for``. The stream ends when the query is
    unsubscribed or the session is closed; it cannot be restarted.
    """

    def __init__(self, query: str, maxsize: int):
        self.query = query
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> ResultEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def put(self, event: ResultEvent) -> None:
        await self._queue.put(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # A full queue means no reader is blocked; __anext__ sees the flag once drained
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(_CLOSED)

    def __repr__(self) -> str:
        return f"<EventStream {self.query!r} closed={self._closed}>"


@dataclass
class Subscription:
    """One registered query."""

    query: str
    id: str
    stream: EventStream
    staging: asyncio.Queue[RPCResponse]
    relay_task: asyncio.Task[None] | None = None

    def offer(self, response: RPCResponse) -> bool:
        try:
            self.staging.put_nowait(response)
        except asyncio.QueueFull:
            return False
        return True


def subscribe_request(query: str, request_id: str) -> RPCRequest:
    return RPCRequest.create("subscribe", {"query": query}, request_id=request_id)


class SubscriptionRegistry:
    """Tracks active subscriptions by query and by correlation id."""

    def __init__(self, request: RequestFn, mint_id: Callable[[], str]):
        self._request = request
        self._mint_id = mint_id
        self._by_query: dict[str, Subscription] = {}
        self._by_id: dict[str, Subscription] = {}
        # Ids whose subscribe ack has been routed; only these receive events
        self._acked: set[str] = set()

    @property
    def topics(self) -> set[str]:
        return set(self._by_query)

    def get(self, query: str) -> Subscription | None:
        return self._by_query.get(query)

    def __contains__(self, query: object) -> bool:
        return query in self._by_query

    def __len__(self) -> int:
        return len(self._by_query)

    async def subscribe(
        self, query: str, buffer_size: int = 1, timeout: float | None = None
    ) -> EventStream:
        """Register a query and perform the subscribe call.

        Raises:
            AlreadySubscribedError: If the query is already registered
        """
        if query in self._by_query:
            raise AlreadySubscribedError(query)

        size = max(buffer_size, 1)
        sub = Subscription(
            query=query,
            id=self._mint_id(),
            stream=EventStream(query, size),
            staging=asyncio.Queue(maxsize=size),
        )
        # Registered before the call so events following the ack have a home
        self._by_query[query] = sub
        self._by_id[sub.id] = sub

        try:
            await self._request(subscribe_request(query, sub.id), timeout)
        except BaseException:
            self._by_query.pop(query, None)
            self._forget_id(sub.id)
            raise

        sub.relay_task = asyncio.create_task(self._relay(sub), name=f"relay {query}")
        logger.info(f"Subscribed to {query!r} (id={sub.id})")
        return sub.stream

    async def unsubscribe(self, query: str, timeout: float | None = None) -> None:
        """Unsubscribe on the wire, then drop the bookkeeping.

        An unknown query is not an error here; only the wire call can fail.
        """
        await self._request(
            RPCRequest.create("unsubscribe", {"query": query}, request_id=self._mint_id()),
            timeout,
        )
        sub = self._by_query.pop(query, None)
        if sub is not None:
            await self._stop(sub)
            logger.info(f"Unsubscribed from {query!r}")

    async def unsubscribe_all(self, timeout: float | None = None) -> None:
        await self._request(
            RPCRequest.create("unsubscribe_all", {}, request_id=self._mint_id()),
            timeout,
        )
        await self.close()
        logger.info("Unsubscribed from all queries")

    async def resubscribe_all(self, timeout: float | None = None) -> None:
        """Replay a subscribe call for every registered query.

        Failures are logged; a query that fails stays registered and its
        stream stays open. Queries whose first subscribe call is still in
        flight are skipped; that call is sent on the new transport anyway.
        """
        subs = [sub for sub in self._by_query.values() if sub.relay_task is not None]
        if not subs:
            return
        logger.info(f"Resubscribing to {len(subs)} quer{'y' if len(subs) == 1 else 'ies'}")
        await asyncio.gather(*(self._resubscribe(sub, timeout) for sub in subs))

    def acknowledge(self, request_id: str) -> None:
        """Mark the subscribe ack for ``request_id`` as seen."""
        if request_id in self._by_id:
            self._acked.add(request_id)

    def dispatch(self, response: RPCResponse) -> bool:
        """Route an event frame to its subscription without blocking.

        Returns:
            True if the frame belonged to a subscription
        """
        key = response.base_id
        sub = self._by_id.get(key)
        if sub is None:
            return False
        if key not in self._acked:
            logger.debug(f"Ignoring frame {response.id} received before the subscribe ack")
            return True
        if not sub.offer(response):
            logger.warning(f"Subscription {sub.query!r} is full, dropping event {response.id}")
        return True

    async def close(self) -> None:
        """Stop every relay and end every stream. No wire traffic."""
        subs = list(self._by_query.values())
        self._by_query.clear()
        for sub in subs:
            await self._stop(sub)
        self._by_id.clear()
        self._acked.clear()

    # Internals

    async def _resubscribe(self, sub: Subscription, timeout: float | None) -> None:
        new_id = self._mint_id()
        self._by_id[new_id] = sub
        try:
            await self._request(subscribe_request(sub.query, new_id), timeout)
        except RPCClientError as e:
            self._forget_id(new_id)
            logger.warning(f"Failed to resubscribe to {sub.query!r}: {e}")
            return
        except BaseException:
            # Cancelled by a newer reconnect; that one mints its own id
            self._forget_id(new_id)
            raise

        if self._by_query.get(sub.query) is not sub:
            # Unsubscribed while the call was in flight
            self._forget_id(new_id)
            return

        old_id, sub.id = sub.id, new_id
        self._forget_id(old_id)
        logger.info(f"Resubscribed to {sub.query!r} (id={new_id})")

    async def _stop(self, sub: Subscription) -> None:
        for request_id in [i for i, s in self._by_id.items() if s is sub]:
            self._forget_id(request_id)
        if sub.relay_task is not None:
            sub.relay_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sub.relay_task
            sub.relay_task = None
        sub.stream.close()

    def _forget_id(self, request_id: str) -> None:
        self._by_id.pop(request_id, None)
        self._acked.discard(request_id)

    async def _relay(self, sub: Subscription) -> None:
        while True:
            response = await sub.staging.get()
            if response.error is not None:
                logger.error(
                    f"Receive error from event stream {sub.query!r}: {response.error.message}"
                )
                continue
            try:
                event = ResultEvent.model_validate(response.result)
            except ValidationError:
                logger.debug(f"Unexpected data on event stream {sub.query!r}: {response.result}")
                continue
            await sub.stream.put(event)
