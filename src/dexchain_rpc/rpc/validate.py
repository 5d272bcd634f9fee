"""Client-side parameter checks, applied before anything goes on the wire."""

from __future__ import annotations

from ..errors import ParameterError

MAX_ABCI_PATH_LENGTH = 1024
MAX_ABCI_DATA_LENGTH = 1024 * 1024
MAX_TX_LENGTH = 1024 * 1024
MAX_COMMON_STRING_LENGTH = 1024
MAX_UNCONFIRMED_TXS = 100
HASH_LENGTH = 32  # sha256


def validate_abci_path(path: str) -> None:
    if len(path) > MAX_ABCI_PATH_LENGTH:
        raise ParameterError(f"the abci path exceed max length {MAX_ABCI_PATH_LENGTH}")


def validate_abci_data(data: bytes) -> None:
    if len(data) > MAX_ABCI_DATA_LENGTH:
        raise ParameterError(f"the abci data exceed max length {MAX_ABCI_DATA_LENGTH}")


def validate_tx(tx: bytes) -> None:
    if len(tx) > MAX_TX_LENGTH:
        raise ParameterError(f"the tx data exceed max length {MAX_TX_LENGTH}")


def validate_unconfirmed_txs_limit(limit: int) -> None:
    if limit < 0:
        raise ParameterError("the limit can't be negative")
    if limit > MAX_UNCONFIRMED_TXS:
        raise ParameterError(
            f"the limit of unconfirmed txs exceed max limit {MAX_UNCONFIRMED_TXS}"
        )


def validate_height(height: int | None) -> None:
    if height is not None and height < 0:
        raise ParameterError("the height can't be negative")


def validate_height_range(min_height: int, max_height: int) -> None:
    if min_height < 0 or max_height < 0:
        raise ParameterError("the height can't be negative")
    if min_height > max_height:
        raise ParameterError("the min height can't be larger than max height")


def validate_hash(tx_hash: bytes) -> None:
    if len(tx_hash) != HASH_LENGTH:
        raise ParameterError(f"the length of hash is not {HASH_LENGTH}")


def validate_query(query: str) -> None:
    if len(query) > MAX_COMMON_STRING_LENGTH:
        raise ParameterError(
            f"the query string exceed max length {MAX_COMMON_STRING_LENGTH}"
        )
