"""Typed results for the RPC facade.

Field names follow the node's JSON. Unknown fields are kept (extra="allow")
so newer node versions don't break decoding. 64-bit integers arrive as
decimal strings and are coerced to int; byte fields arrive base64 encoded.
"""

from __future__ import annotations

from typing import Any

from pydantic import Base64Bytes, BaseModel, ConfigDict, Field


class RPCResult(BaseModel):
    """Base for all result models."""

    model_config = ConfigDict(extra="allow")


# Status


class NodeInfo(RPCResult):
    id: str = ""
    listen_addr: str = ""
    network: str = ""
    version: str = ""
    moniker: str = ""
    channels: str = ""
    protocol_version: dict[str, Any] = Field(default_factory=dict)
    other: dict[str, Any] = Field(default_factory=dict)


class SyncInfo(RPCResult):
    latest_block_hash: str = ""
    latest_app_hash: str = ""
    latest_block_height: int = 0
    latest_block_time: str = ""
    catching_up: bool = False


class ValidatorInfo(RPCResult):
    address: str = ""
    pub_key: Any = None
    voting_power: int = 0


class ResultStatus(RPCResult):
    node_info: NodeInfo = Field(default_factory=NodeInfo)
    sync_info: SyncInfo = Field(default_factory=SyncInfo)
    validator_info: ValidatorInfo = Field(default_factory=ValidatorInfo)


# ABCI


class ResponseInfo(RPCResult):
    data: str = ""
    version: str = ""
    app_version: int = 0
    last_block_height: int = 0
    last_block_app_hash: Base64Bytes | None = None


class ResultABCIInfo(RPCResult):
    response: ResponseInfo = Field(default_factory=ResponseInfo)


class ResponseQuery(RPCResult):
    code: int = 0
    log: str = ""
    info: str = ""
    index: int = 0
    key: Base64Bytes | None = None
    value: Base64Bytes | None = None
    proof: Any = None
    height: int = 0
    codespace: str = ""

    def is_ok(self) -> bool:
        return self.code == 0


class ResultABCIQuery(RPCResult):
    response: ResponseQuery = Field(default_factory=ResponseQuery)


# Transactions


class ResponseCheckTx(RPCResult):
    code: int = 0
    data: Base64Bytes | None = None
    log: str = ""
    info: str = ""
    gas_wanted: int = 0
    gas_used: int = 0
    events: list[Any] = Field(default_factory=list)
    codespace: str = ""

    def is_ok(self) -> bool:
        return self.code == 0


class ResponseDeliverTx(ResponseCheckTx):
    pass


class ResultBroadcastTx(RPCResult):
    code: int = 0
    data: Base64Bytes | None = None
    log: str = ""
    hash: str = ""

    def is_ok(self) -> bool:
        return self.code == 0


class ResultBroadcastTxCommit(RPCResult):
    check_tx: ResponseCheckTx = Field(default_factory=ResponseCheckTx)
    deliver_tx: ResponseDeliverTx = Field(default_factory=ResponseDeliverTx)
    hash: str = ""
    height: int = 0

    def is_ok(self) -> bool:
        return self.check_tx.is_ok() and self.deliver_tx.is_ok()


class ResultUnconfirmedTxs(RPCResult):
    n_txs: int = 0
    total: int = 0
    total_bytes: int = 0
    txs: list[Base64Bytes] | None = None


class ResultTx(RPCResult):
    hash: str = ""
    height: int = 0
    index: int = 0
    tx_result: ResponseDeliverTx = Field(default_factory=ResponseDeliverTx)
    tx: Base64Bytes | None = None
    proof: Any = None


class ResultTxSearch(RPCResult):
    txs: list[ResultTx] = Field(default_factory=list)
    total_count: int = 0


# Blocks and validators


class ResultBlock(RPCResult):
    block_meta: dict[str, Any] | None = None
    block: dict[str, Any] | None = None


class ResultBlockResults(RPCResult):
    height: int = 0
    results: dict[str, Any] | None = None


class ResultCommit(RPCResult):
    signed_header: dict[str, Any] = Field(default_factory=dict)
    canonical: bool = False


class ResultBlockchainInfo(RPCResult):
    last_height: int = 0
    block_metas: list[dict[str, Any]] = Field(default_factory=list)


class ResultGenesis(RPCResult):
    genesis: dict[str, Any] = Field(default_factory=dict)


class Validator(RPCResult):
    address: str = ""
    pub_key: Any = None
    voting_power: int = 0
    proposer_priority: int = 0


class ResultValidators(RPCResult):
    block_height: int = 0
    validators: list[Validator] = Field(default_factory=list)


# Network and consensus


class ResultNetInfo(RPCResult):
    listening: bool = False
    listeners: list[str] = Field(default_factory=list)
    n_peers: int = 0
    peers: list[dict[str, Any]] = Field(default_factory=list)


class ResultConsensusState(RPCResult):
    round_state: Any = None


class ResultDumpConsensusState(RPCResult):
    round_state: Any = None
    peers: list[dict[str, Any]] = Field(default_factory=list)


class ResultHealth(RPCResult):
    pass
