"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from dexchain_rpc.config import SessionConfig
from dexchain_rpc.transport import MockDialer, ack_responder

NODE = "tcp://node.test:26657"


@pytest.fixture
def fast_config() -> SessionConfig:
    """Short timeouts and near-instant redials so tests stay quick."""
    return SessionConfig(timeout=1.0, reconnect_interval=0.01, write_wait=0.0)


@pytest.fixture
def dialer() -> MockDialer:
    """Mock dialer that answers every request with an empty result."""
    return MockDialer(ack_responder)


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    """Poll a condition until it holds or fail after ``timeout`` seconds."""

    async def wait(condition: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() > deadline:
                pytest.fail("condition not met in time")
            await asyncio.sleep(0.005)

    return wait
