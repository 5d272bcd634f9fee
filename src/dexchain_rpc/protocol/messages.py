"""JSON-RPC envelopes exchanged with the node.

Requests go out as:
    {"jsonrpc": "2.0", "id": "<uuid>", "method": "status", "params": {}}

Responses come back as:
    {"jsonrpc": "2.0", "id": "<uuid>", "result": {...}}
    {"jsonrpc": "2.0", "id": "<uuid>", "error": {"code": -32603, "message": "..."}}

Subscription events reuse the subscribe call's id with a suffix:
    {"jsonrpc": "2.0", "id": "<uuid>#event", "result": {"query": ..., "data": ...}}

The envelope is all this layer looks at. ``result`` stays opaque until a
caller decodes it.
"""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import DecodeError, RPCResponseError

ID_SEPARATOR = "#"


def new_request_id() -> str:
    """Mint a fresh correlation id."""
    return str(uuid.uuid4())


class RPCRequest(BaseModel):
    """A request frame."""

    jsonrpc: str = "2.0"
    id: str = Field(default_factory=new_request_id)
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def create(
        cls,
        method: str,
        params: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> RPCRequest:
        """Factory method for creating requests."""
        return cls(
            id=request_id or new_request_id(),
            method=method,
            params=params or {},
        )

    def encode(self) -> str:
        """Serialize to a JSON text frame."""
        return self.model_dump_json()


class RPCErrorObject(BaseModel):
    """The ``error`` member of a response."""

    code: int = 0
    message: str = ""
    data: Any = None

    def to_exception(self) -> RPCResponseError:
        return RPCResponseError(self.code, self.message, self.data)


class RPCResponse(BaseModel):
    """A response or event frame."""

    jsonrpc: str = "2.0"
    id: str = ""
    result: Any = None
    error: RPCErrorObject | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        # Nodes answer parse errors with a null id, some servers use integers
        if value is None:
            return ""
        if isinstance(value, bool):
            raise ValueError("id must be a string or integer")
        if isinstance(value, int):
            return str(value)
        return value

    @property
    def base_id(self) -> str:
        """The correlation id without any ``#suffix``."""
        return self.id.split(ID_SEPARATOR, 1)[0]

    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def decode(cls, data: str | bytes) -> RPCResponse:
        """Parse a single inbound frame.

        Raises:
            DecodeError: If the frame is not a JSON-RPC response object
        """
        try:
            return cls.model_validate_json(data)
        except ValidationError as e:
            raise DecodeError(f"Malformed frame: {e}") from e
