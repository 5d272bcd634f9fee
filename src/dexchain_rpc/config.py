"""Client configuration."""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, fields
from typing import Any

ENV_PREFIX = "DEXCHAIN_RPC_"


@dataclass
class SessionConfig:
    """Configuration for a Session and the transports it dials.

    All durations are in seconds. A zero for write_wait, read_wait or
    ping_period disables that deadline.
    """

    # Calls
    timeout: float = 5.0

    # Reconnection (fixed period, retried until the session is closed)
    reconnect_interval: float = 1.0

    # Socket
    dial_timeout: float = 10.0
    write_wait: float = 0.1
    read_wait: float = 0.0
    ping_period: float = 0.0
    send_queue_size: int = 64
    max_message_size: int | None = None

    # Subscriptions
    buffer_size: int = 1

    # Called after every successful redial
    on_reconnect: Callable[[], Awaitable[None] | None] | None = None

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> SessionConfig:
        """Build a config from DEXCHAIN_RPC_* environment variables.

        DEXCHAIN_RPC_TIMEOUT=10 sets ``timeout``, and so on. Explicit
        keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "on_reconnect":
                continue
            raw = env.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            if f.name in ("send_queue_size", "buffer_size", "max_message_size"):
                values[f.name] = int(raw)
            else:
                values[f.name] = float(raw)
        values.update(overrides)
        return cls(**values)
