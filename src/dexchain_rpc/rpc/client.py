"""Typed RPC client.

Wraps a Session with one method per node endpoint. Parameters are checked
client-side before anything is sent, then encoded the way the node's
JSON-RPC server expects them:
- transactions and hashes as base64
- ABCI query data as upper-case hex
- heights as decimal strings

Results are decoded into the pydantic models in ``types``.
"""

from __future__ import annotations

import base64
from typing import Any, TypeVar

from pydantic import ValidationError

from ..config import SessionConfig
from ..errors import ABCIQueryError, DecodeError
from ..transport import Dialer, MockDialer, ack_responder
from . import validate
from .session import Session, SessionState
from .subscriptions import EventStream
from .types import (
    ResultABCIInfo,
    ResultABCIQuery,
    ResultBlock,
    ResultBlockchainInfo,
    ResultBlockResults,
    ResultBroadcastTx,
    ResultBroadcastTxCommit,
    ResultCommit,
    ResultConsensusState,
    ResultDumpConsensusState,
    ResultGenesis,
    ResultHealth,
    ResultNetInfo,
    ResultStatus,
    ResultTx,
    ResultTxSearch,
    ResultUnconfirmedTxs,
    ResultValidators,
    RPCResult,
)

ResultT = TypeVar("ResultT", bound=RPCResult)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _height_params(height: int | None) -> dict[str, Any]:
    return {} if height is None else {"height": str(height)}


class RPCClient:
    """Typed calls over a persistent session.

    Usage:
        async with await create_client("tcp://127.0.0.1:26657") as client:
            status = await client.status()
            print(status.sync_info.latest_block_height)

        # Testing
        client = create_test_client()
        async with client:
            await client.health()
    """

    def __init__(self, session: Session):
        self._session = session

    @property
    def session(self) -> Session:
        """Access the underlying session."""
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session.is_active

    def set_timeout(self, seconds: float) -> None:
        self._session.set_timeout(seconds)

    async def close(self) -> None:
        await self._session.close()

    async def __aenter__(self) -> RPCClient:
        if self._session.state == SessionState.DISCONNECTED:
            await self._session.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # Subscriptions

    async def subscribe(self, query: str, buffer_size: int | None = None) -> EventStream:
        validate.validate_query(query)
        return await self._session.subscribe(query, buffer_size)

    async def unsubscribe(self, query: str) -> None:
        validate.validate_query(query)
        await self._session.unsubscribe(query)

    async def unsubscribe_all(self) -> None:
        await self._session.unsubscribe_all()

    # Info

    async def status(self) -> ResultStatus:
        return await self._call(ResultStatus, "status")

    async def abci_info(self) -> ResultABCIInfo:
        return await self._call(ResultABCIInfo, "abci_info")

    async def net_info(self) -> ResultNetInfo:
        return await self._call(ResultNetInfo, "net_info")

    async def dump_consensus_state(self) -> ResultDumpConsensusState:
        return await self._call(ResultDumpConsensusState, "dump_consensus_state")

    async def consensus_state(self) -> ResultConsensusState:
        return await self._call(ResultConsensusState, "consensus_state")

    async def health(self) -> ResultHealth:
        return await self._call(ResultHealth, "health")

    async def genesis(self) -> ResultGenesis:
        return await self._call(ResultGenesis, "genesis")

    # ABCI

    async def abci_query(self, path: str, data: bytes) -> ResultABCIQuery:
        return await self.abci_query_with_options(path, data)

    async def abci_query_with_options(
        self,
        path: str,
        data: bytes,
        height: int = 0,
        prove: bool = False,
    ) -> ResultABCIQuery:
        """Run an ABCI query.

        Args:
            path: Query path (e.g. "/store/acc/key")
            data: Raw query payload, sent hex encoded
            height: Block height to query at; 0 means latest
            prove: Ask the node to include a merkle proof
        """
        validate.validate_abci_path(path)
        validate.validate_abci_data(data)
        validate.validate_height(height)
        params = {
            "path": path,
            "data": data.hex().upper(),
            "height": str(height),
            "prove": prove,
        }
        return await self._call(ResultABCIQuery, "abci_query", params)

    async def query_store(self, key: bytes, store_name: str) -> bytes:
        """Read a raw value from an application store.

        Raises:
            ABCIQueryError: If the node answered with a non-zero ABCI code
        """
        result = await self.abci_query(f"/store/{store_name}/key", key)
        response = result.response
        if not response.is_ok():
            raise ABCIQueryError(response.code, response.log)
        return response.value or b""

    # Transactions

    async def broadcast_tx_commit(self, tx: bytes) -> ResultBroadcastTxCommit:
        validate.validate_tx(tx)
        params = {"tx": _b64(tx)}
        return await self._call(ResultBroadcastTxCommit, "broadcast_tx_commit", params)

    async def broadcast_tx_sync(self, tx: bytes) -> ResultBroadcastTx:
        validate.validate_tx(tx)
        return await self._call(ResultBroadcastTx, "broadcast_tx_sync", {"tx": _b64(tx)})

    async def broadcast_tx_async(self, tx: bytes) -> ResultBroadcastTx:
        validate.validate_tx(tx)
        return await self._call(ResultBroadcastTx, "broadcast_tx_async", {"tx": _b64(tx)})

    async def unconfirmed_txs(self, limit: int) -> ResultUnconfirmedTxs:
        validate.validate_unconfirmed_txs_limit(limit)
        return await self._call(ResultUnconfirmedTxs, "unconfirmed_txs", {"limit": str(limit)})

    async def num_unconfirmed_txs(self) -> ResultUnconfirmedTxs:
        return await self._call(ResultUnconfirmedTxs, "num_unconfirmed_txs")

    async def tx(self, tx_hash: bytes, prove: bool = False) -> ResultTx:
        validate.validate_hash(tx_hash)
        return await self._call(ResultTx, "tx", {"hash": _b64(tx_hash), "prove": prove})

    async def tx_search(
        self, query: str, prove: bool = False, page: int = 1, per_page: int = 30
    ) -> ResultTxSearch:
        validate.validate_query(query)
        params = {
            "query": query,
            "prove": prove,
            "page": str(page),
            "per_page": str(per_page),
        }
        return await self._call(ResultTxSearch, "tx_search", params)

    # Blocks

    async def blockchain_info(self, min_height: int, max_height: int) -> ResultBlockchainInfo:
        validate.validate_height_range(min_height, max_height)
        params = {"minHeight": str(min_height), "maxHeight": str(max_height)}
        return await self._call(ResultBlockchainInfo, "blockchain", params)

    async def block(self, height: int | None = None) -> ResultBlock:
        validate.validate_height(height)
        return await self._call(ResultBlock, "block", _height_params(height))

    async def block_results(self, height: int | None = None) -> ResultBlockResults:
        validate.validate_height(height)
        return await self._call(ResultBlockResults, "block_results", _height_params(height))

    async def commit(self, height: int | None = None) -> ResultCommit:
        validate.validate_height(height)
        return await self._call(ResultCommit, "commit", _height_params(height))

    async def validators(self, height: int | None = None) -> ResultValidators:
        validate.validate_height(height)
        return await self._call(ResultValidators, "validators", _height_params(height))

    async def _call(
        self,
        model: type[ResultT],
        method: str,
        params: dict[str, Any] | None = None,
    ) -> ResultT:
        result = await self._session.call(method, params or {})
        try:
            return model.model_validate(result or {})
        except ValidationError as e:
            raise DecodeError(f"Unexpected result for {method}: {e}") from e


async def create_client(
    remote: str,
    endpoint: str = "/websocket",
    config: SessionConfig | None = None,
    dialer: Dialer | None = None,
) -> RPCClient:
    """Dial a node and return a connected client.

    Raises:
        DialError: If the node cannot be reached
    """
    session = Session(remote, endpoint, config, dialer)
    await session.start()
    return RPCClient(session)


def create_test_client(
    dialer: MockDialer | None = None,
    config: SessionConfig | None = None,
) -> RPCClient:
    """Create an undialed client backed by in-memory transports.

    Enter it with ``async with`` to dial. Every request is answered with
    an empty result unless ``dialer`` carries its own responder.
    """
    dialer = dialer or MockDialer(ack_responder)
    session = Session("tcp://mock:26657", config=config, dialer=dialer)
    return RPCClient(session)
