"""RPC layer: correlation, subscriptions, the session and the typed client."""

from .client import RPCClient, create_client, create_test_client
from .multiplexer import RequestMultiplexer
from .session import Session, SessionState, dial
from .subscriptions import EventStream, Subscription, SubscriptionRegistry

__all__ = [
    "RPCClient",
    "create_client",
    "create_test_client",
    "RequestMultiplexer",
    "Session",
    "SessionState",
    "dial",
    "EventStream",
    "Subscription",
    "SubscriptionRegistry",
]
