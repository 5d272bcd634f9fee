"""Wire protocol layer.

Defines the JSON-RPC envelopes the session multiplexes over one socket.

Key concepts:
- Requests: client -> node, each with a unique correlation id
- Responses: node -> client, routed back to the caller by id
- Events: responses whose id is ``<subscription id>#event``
"""

from .events import EventData, ResultEvent
from .messages import RPCErrorObject, RPCRequest, RPCResponse, new_request_id

__all__ = [
    "EventData",
    "ResultEvent",
    "RPCErrorObject",
    "RPCRequest",
    "RPCResponse",
    "new_request_id",
]
