"""Error taxonomy for the RPC client.

Everything raised by the client derives from RPCClientError. Errors that
have an obvious builtin counterpart also inherit from it, so callers can
catch ConnectionError / TimeoutError / ValueError as usual.
"""

from __future__ import annotations

from typing import Any


class RPCClientError(Exception):
    """Base class for all client errors."""


class DialError(RPCClientError, ConnectionError):
    """Could not establish a WebSocket connection."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to dial {url}: {reason}")


class TransportClosedError(RPCClientError, ConnectionError):
    """The transport is dead and can no longer carry frames."""

    def __init__(self, url: str, reason: BaseException | None = None):
        self.url = url
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Transport to {url} is closed{detail}")


class RPCTimeoutError(RPCClientError, TimeoutError):
    """A call did not receive its response before the deadline."""

    def __init__(self, method: str, request_id: str, timeout: float):
        self.method = method
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"{method} ({request_id}) timed out after {timeout}s")


class SessionClosedError(RPCClientError):
    """The session has been closed."""

    def __init__(self, message: str = "Session is closed"):
        super().__init__(message)


class AlreadySubscribedError(RPCClientError):
    """A subscription for the query already exists."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"Already subscribed to {query!r}")


class DuplicateRequestError(RPCClientError):
    """A request with the same correlation id is still outstanding."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request {request_id} is already in flight")


class DecodeError(RPCClientError, ValueError):
    """An inbound frame or result could not be decoded."""


class RPCResponseError(RPCClientError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        detail = f" ({data})" if data else ""
        super().__init__(f"RPC error {code}: {message}{detail}")


class ABCIQueryError(RPCClientError):
    """An ABCI query returned a non-zero code."""

    def __init__(self, code: int, log: str):
        self.code = code
        self.log = log
        super().__init__(f"ABCI query failed with code {code}: {log}")


class ParameterError(RPCClientError, ValueError):
    """A call parameter failed client-side validation."""
