"""Transport layer.

Each transport instance is one connection generation. Sessions dial a new
generation whenever the previous one dies.

- WebSocketTransport: a real connection (websockets library)
- MockTransport / MockDialer: in-memory generations for tests
"""

from .base import Dialer, Transport, build_ws_url
from .mock import MockDialer, MockTransport, ack_responder, echo_responder
from .websocket import WebSocketTransport

__all__ = [
    "Dialer",
    "Transport",
    "build_ws_url",
    "WebSocketTransport",
    "MockDialer",
    "MockTransport",
    "ack_responder",
    "echo_responder",
]
