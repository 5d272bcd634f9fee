"""Unit tests for the session: calls, subscriptions and reconnects.

Uses MockDialer so every transport generation is in memory and the tests
can kill connections at precise points.
"""

from __future__ import annotations

import asyncio
import dataclasses
import random
from typing import Any

import pytest

from dexchain_rpc.config import SessionConfig
from dexchain_rpc.errors import (
    AlreadySubscribedError,
    DialError,
    RPCResponseError,
    RPCTimeoutError,
    SessionClosedError,
)
from dexchain_rpc.protocol import RPCErrorObject, RPCRequest, RPCResponse
from dexchain_rpc.rpc import Session, SessionState, dial
from dexchain_rpc.transport import MockDialer, echo_responder

NODE = "tcp://node.test:26657"


def event_for(request: RPCRequest, event_type: str) -> RPCResponse:
    return RPCResponse(
        id=f"{request.id}#event",
        result={"query": request.params["query"], "data": {"type": event_type}},
    )


def subscribe_requests(sent: list[RPCRequest]) -> list[RPCRequest]:
    return [r for r in sent if r.method == "subscribe"]


async def collect(stream: Any) -> list[Any]:
    return [event async for event in stream]


# =============================================================================
# Dial / Lifecycle Tests
# =============================================================================


class TestDial:
    """Tests for opening a session."""

    @pytest.mark.asyncio
    async def test_dial_connects(self, fast_config: SessionConfig, dialer: MockDialer) -> None:
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            assert session.state == SessionState.CONNECTED
            assert session.is_active
            assert session.url == "ws://node.test:26657/websocket"
            assert dialer.attempts == 1

    @pytest.mark.asyncio
    async def test_dial_failure_raises(self, fast_config: SessionConfig) -> None:
        dialer = MockDialer()
        dialer.refuse = 1

        with pytest.raises(DialError):
            await dial(NODE, config=fast_config, dialer=dialer)

    @pytest.mark.asyncio
    async def test_failed_start_can_be_retried(self, fast_config: SessionConfig) -> None:
        dialer = MockDialer()
        dialer.refuse = 1
        session = Session(NODE, config=fast_config, dialer=dialer)

        with pytest.raises(DialError):
            await session.start()
        assert session.state == SessionState.DISCONNECTED

        await session.start()
        assert session.is_active
        await session.close()

    def test_invalid_address(self) -> None:
        with pytest.raises(ValueError):
            Session("ftp://node.test:26657")

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self, fast_config: SessionConfig) -> None:
        first_dialer, second_dialer = MockDialer(echo_responder), MockDialer(echo_responder)
        async with await dial(NODE, config=fast_config, dialer=first_dialer) as first:
            async with await dial(NODE, config=fast_config, dialer=second_dialer) as second:
                await first.call("status")
                await second.call("health")

        assert first_dialer.current.sent_methods() == ["status"]
        assert second_dialer.current.sent_methods() == ["health"]


# =============================================================================
# Call Tests
# =============================================================================


class TestCall:
    """Tests for request/response calls."""

    @pytest.mark.asyncio
    async def test_call_returns_result(self, fast_config: SessionConfig) -> None:
        """The echo node answers each call with the call's own id."""
        dialer = MockDialer(echo_responder)
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            result = await session.call("ping", timeout=1.0)

            assert result == dialer.current.sent[0].id
            assert session.pending_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_ids_unique(self, fast_config: SessionConfig) -> None:
        dialer = MockDialer(echo_responder)
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            results = await asyncio.gather(*(session.call("ping") for _ in range(100)))

        assert len(set(results)) == 100
        assert set(results) == {r.id for r in dialer.current.sent}

    @pytest.mark.asyncio
    async def test_correlation_under_random_delays(self, fast_config: SessionConfig) -> None:
        """Responses arriving in random order reach exactly their own caller."""

        def responder(request: RPCRequest) -> Any:
            async def reply() -> RPCResponse:
                await asyncio.sleep(random.uniform(0, 0.02))
                return RPCResponse(id=request.id, result=request.params["n"])

            return reply()

        dialer = MockDialer(responder)
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            results = await asyncio.gather(*(session.call("echo", {"n": n}) for n in range(100)))

        assert results == list(range(100))

    @pytest.mark.asyncio
    async def test_error_response(self, fast_config: SessionConfig) -> None:
        def responder(request: RPCRequest) -> RPCResponse:
            return RPCResponse(
                id=request.id, error=RPCErrorObject(code=-32601, message="Method not found")
            )

        async with await dial(NODE, config=fast_config, dialer=MockDialer(responder)) as session:
            with pytest.raises(RPCResponseError) as exc_info:
                await session.call("nope")

        assert exc_info.value.code == -32601

    @pytest.mark.asyncio
    async def test_writes_keep_call_order(self, fast_config: SessionConfig) -> None:
        dialer = MockDialer(echo_responder)
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            tasks = [asyncio.create_task(session.call("m", {"n": n})) for n in range(3)]
            await asyncio.gather(*tasks)

        assert [r.params["n"] for r in dialer.current.sent] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_timeouts_are_independent(self, fast_config: SessionConfig) -> None:
        """A short timeout fires on time without touching a longer one."""
        async with await dial(NODE, config=fast_config, dialer=MockDialer()) as session:
            loop = asyncio.get_running_loop()
            slow = asyncio.create_task(session.call("never", timeout=10))

            start = loop.time()
            with pytest.raises(RPCTimeoutError) as exc_info:
                await session.call("never", timeout=0.1)
            elapsed = loop.time() - start

            assert 0.09 <= elapsed < 1.0
            assert exc_info.value.timeout == 0.1
            await asyncio.sleep(0.1)
            assert not slow.done()
            assert session.pending_count == 1

            slow.cancel()
            with pytest.raises(asyncio.CancelledError):
                await slow
            assert session.pending_count == 0

    @pytest.mark.asyncio
    async def test_set_timeout(self, fast_config: SessionConfig) -> None:
        async with await dial(NODE, config=fast_config, dialer=MockDialer()) as session:
            session.set_timeout(0.05)

            with pytest.raises(RPCTimeoutError) as exc_info:
                await session.call("never")

            assert session.timeout == 0.05
            assert exc_info.value.timeout == 0.05

    @pytest.mark.asyncio
    async def test_set_timeout_negative(
        self, fast_config: SessionConfig, dialer: MockDialer
    ) -> None:
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            with pytest.raises(ValueError):
                session.set_timeout(-1)

    @pytest.mark.asyncio
    async def test_timeout_is_also_builtin_timeout(self, fast_config: SessionConfig) -> None:
        async with await dial(NODE, config=fast_config, dialer=MockDialer()) as session:
            with pytest.raises(TimeoutError):
                await session.call("never", timeout=0.01)


# =============================================================================
# Subscription Tests
# =============================================================================


class TestSessionSubscriptions:
    """Tests for subscriptions through the session."""

    @pytest.mark.asyncio
    async def test_subscribe_receives_events(
        self, fast_config: SessionConfig, dialer: MockDialer
    ) -> None:
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            stream = await session.subscribe("tm.event='NewBlock'")
            request = subscribe_requests(dialer.current.sent)[0]

            dialer.current.feed(event_for(request, "block-1"))
            event = await asyncio.wait_for(stream.__anext__(), 1.0)

            assert event.event_type == "block-1"
            assert session.topics == {"tm.event='NewBlock'"}

    @pytest.mark.asyncio
    async def test_event_reusing_subscribe_id_after_ack(self, fast_config: SessionConfig) -> None:
        """The ack and an event under the same id arrive back to back."""
        dialer = MockDialer()

        def ack_then_event(request: RPCRequest) -> None:
            node = dialer.current
            node.feed(RPCResponse(id=request.id, result={}))
            if request.method == "subscribe":
                query = request.params["query"]
                node.feed(
                    RPCResponse(id=request.id, result={"query": query, "data": {"type": "first"}})
                )

        dialer.responder = ack_then_event
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            stream = await session.subscribe("tm.event='Tx'")
            event = await asyncio.wait_for(stream.__anext__(), 1.0)

            assert event.event_type == "first"
            assert session.pending_count == 0

    @pytest.mark.asyncio
    async def test_subscribe_twice_rejected(
        self, fast_config: SessionConfig, dialer: MockDialer
    ) -> None:
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            await session.subscribe("foo")

            with pytest.raises(AlreadySubscribedError):
                await session.subscribe("foo")
            assert len(subscribe_requests(dialer.current.sent)) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_then_subscribe_again(
        self, fast_config: SessionConfig, dialer: MockDialer
    ) -> None:
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            stream = await session.subscribe("foo")
            await session.unsubscribe("foo")

            assert await collect(stream) == []
            assert session.topics == set()

            await session.subscribe("foo")
            assert session.topics == {"foo"}

    @pytest.mark.asyncio
    async def test_unsubscribe_all(self, fast_config: SessionConfig, dialer: MockDialer) -> None:
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            streams = [await session.subscribe(q) for q in ("a", "b")]

            await session.unsubscribe_all()

            assert session.topics == set()
            assert all(stream.closed for stream in streams)
            assert dialer.current.sent_methods()[-1] == "unsubscribe_all"


# =============================================================================
# Reconnect Tests
# =============================================================================


class TestReconnect:
    """Tests for transport death and redial."""

    @pytest.mark.asyncio
    async def test_resubscribe_replays_all_topics(
        self, fast_config: SessionConfig, dialer: MockDialer, eventually: Any
    ) -> None:
        topics = {"A", "B", "C"}
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            streams = {q: await session.subscribe(q) for q in sorted(topics)}

            dialer.current.kill()
            assert not session.is_active

            await eventually(
                lambda: len(dialer.transports) == 2
                and {r.params["query"] for r in subscribe_requests(dialer.current.sent)}
                == topics
            )
            assert len(subscribe_requests(dialer.current.sent)) == 3
            assert session.topics == topics
            await eventually(lambda: session.is_active)

            replayed = {r.params["query"]: r for r in subscribe_requests(dialer.current.sent)}
            dialer.current.feed(event_for(replayed["B"], "after-reconnect"))
            event = await asyncio.wait_for(streams["B"].__anext__(), 1.0)
            assert event.event_type == "after-reconnect"

    @pytest.mark.asyncio
    async def test_call_during_reconnect_waits(self, fast_config: SessionConfig) -> None:
        """A call made while the transport is down goes out on the next one."""
        dialer = MockDialer(echo_responder)
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            dialer.current.kill()

            result = await session.call("status", timeout=1.0)

            assert len(dialer.transports) == 2
            assert dialer.transports[0].sent == []
            assert result == dialer.current.sent[0].id

    @pytest.mark.asyncio
    async def test_redial_retries_until_success(
        self, fast_config: SessionConfig, dialer: MockDialer, eventually: Any
    ) -> None:
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            dialer.refuse = 3
            dialer.current.kill()

            await eventually(lambda: session.state == SessionState.CONNECTED and session.is_active)

            assert dialer.attempts == 5
            assert len(dialer.transports) == 2

    @pytest.mark.asyncio
    async def test_inflight_call_waits_out_timeout(self, fast_config: SessionConfig) -> None:
        """A call already written to a transport that dies is not failed early."""
        dialer = MockDialer()
        async with await dial(NODE, config=fast_config, dialer=dialer) as session:
            loop = asyncio.get_running_loop()
            start = loop.time()
            task = asyncio.create_task(session.call("status", timeout=0.2))
            await asyncio.sleep(0.01)
            assert dialer.current.sent_methods() == ["status"]

            dialer.current.kill()

            with pytest.raises(RPCTimeoutError):
                await task
            assert loop.time() - start >= 0.19

    @pytest.mark.asyncio
    async def test_on_reconnect_sync_callback(
        self, fast_config: SessionConfig, dialer: MockDialer, eventually: Any
    ) -> None:
        calls: list[int] = []
        config = dataclasses.replace(fast_config, on_reconnect=lambda: calls.append(1))

        async with await dial(NODE, config=config, dialer=dialer):
            dialer.current.kill()
            await eventually(lambda: calls == [1])

    @pytest.mark.asyncio
    async def test_on_reconnect_async_callback(
        self, fast_config: SessionConfig, dialer: MockDialer, eventually: Any
    ) -> None:
        calls: list[int] = []

        async def on_reconnect() -> None:
            calls.append(1)

        config = dataclasses.replace(fast_config, on_reconnect=on_reconnect)
        async with await dial(NODE, config=config, dialer=dialer):
            dialer.current.kill()
            await eventually(lambda: calls == [1])

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_session(
        self, fast_config: SessionConfig, eventually: Any
    ) -> None:
        def on_reconnect() -> None:
            raise RuntimeError("boom")

        dialer = MockDialer(echo_responder)
        config = dataclasses.replace(fast_config, on_reconnect=on_reconnect)
        async with await dial(NODE, config=config, dialer=dialer) as session:
            dialer.current.kill()
            await eventually(lambda: session.is_active)

            assert await session.call("status") == dialer.current.sent[-1].id


# =============================================================================
# Close Tests
# =============================================================================


class TestClose:
    """Tests for shutting a session down."""

    @pytest.mark.asyncio
    async def test_close_is_idempotent(
        self, fast_config: SessionConfig, dialer: MockDialer
    ) -> None:
        session = await dial(NODE, config=fast_config, dialer=dialer)

        await session.close()
        await session.close()

        assert session.is_closed
        assert session.state == SessionState.CLOSED
        assert not session.is_active
        assert not dialer.current.is_alive

    @pytest.mark.asyncio
    async def test_close_ends_streams(self, fast_config: SessionConfig, dialer: MockDialer) -> None:
        session = await dial(NODE, config=fast_config, dialer=dialer)
        streams = [await session.subscribe(q) for q in ("a", "b")]

        await session.close()

        for stream in streams:
            assert await asyncio.wait_for(collect(stream), 1.0) == []

    @pytest.mark.asyncio
    async def test_calls_fail_after_close(
        self, fast_config: SessionConfig, dialer: MockDialer
    ) -> None:
        session = await dial(NODE, config=fast_config, dialer=dialer)
        await session.close()

        with pytest.raises(SessionClosedError):
            await session.call("status")
        with pytest.raises(SessionClosedError):
            await session.subscribe("foo")
        with pytest.raises(SessionClosedError):
            await session.start()

    @pytest.mark.asyncio
    async def test_close_fails_pending_calls(self, fast_config: SessionConfig) -> None:
        session = await dial(NODE, config=fast_config, dialer=MockDialer())
        task = asyncio.create_task(session.call("never", timeout=10))
        await asyncio.sleep(0.01)

        await session.close()

        with pytest.raises(SessionClosedError):
            await task

    @pytest.mark.asyncio
    async def test_close_while_reconnecting(self, fast_config: SessionConfig) -> None:
        """Close stops the redial loop and wakes calls waiting for a transport."""
        dialer = MockDialer()
        session = await dial(NODE, config=fast_config, dialer=dialer)
        dialer.refuse = 1000
        dialer.current.kill()
        task = asyncio.create_task(session.call("status", timeout=10))
        await asyncio.sleep(0.05)

        await session.close()

        with pytest.raises(SessionClosedError):
            await task
        attempts = dialer.attempts
        await asyncio.sleep(0.05)
        assert dialer.attempts == attempts
