"""Persistent WebSocket RPC client for Tendermint-based DEX chain nodes.

One Session multiplexes calls and event subscriptions over a single
socket and transparently redials when it drops.

Usage:
    from dexchain_rpc import create_client

    async with await create_client("tcp://127.0.0.1:26657") as client:
        status = await client.status()
        async for event in await client.subscribe("tm.event='NewBlock'"):
            print(event.data.type)
"""

from .config import SessionConfig
from .errors import (
    ABCIQueryError,
    AlreadySubscribedError,
    DecodeError,
    DialError,
    DuplicateRequestError,
    ParameterError,
    RPCClientError,
    RPCResponseError,
    RPCTimeoutError,
    SessionClosedError,
    TransportClosedError,
)
from .protocol import ResultEvent, RPCRequest, RPCResponse
from .rpc import (
    EventStream,
    RPCClient,
    Session,
    SessionState,
    create_client,
    create_test_client,
    dial,
)

__version__ = "0.1.0"

__all__ = [
    "SessionConfig",
    "Session",
    "SessionState",
    "dial",
    "EventStream",
    "RPCClient",
    "create_client",
    "create_test_client",
    "ResultEvent",
    "RPCRequest",
    "RPCResponse",
    "RPCClientError",
    "ABCIQueryError",
    "AlreadySubscribedError",
    "DecodeError",
    "DialError",
    "DuplicateRequestError",
    "ParameterError",
    "RPCResponseError",
    "RPCTimeoutError",
    "SessionClosedError",
    "TransportClosedError",
]
