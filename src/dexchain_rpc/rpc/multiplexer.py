"""Request/response correlation.

Every outbound call gets a fresh correlation id and a one-shot future. The
session's router hands each inbound frame to ``dispatch``, which resolves
the future registered under exactly the frame's id. Delivery never blocks the
router, and each call receives at most one frame: the entry is removed on
delivery, so later frames under the same id fall through to the subscriptions.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..errors import DuplicateRequestError
from ..protocol import RPCRequest, RPCResponse, new_request_id

logger = logging.getLogger(__name__)


class RequestMultiplexer:
    """Tracks outstanding requests by correlation id."""

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[RPCResponse]] = {}

    @property
    def pending_ids(self) -> set[str]:
        return set(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def new_id(self) -> str:
        """Mint an id that is not currently outstanding."""
        request_id = new_request_id()
        while request_id in self._pending:
            request_id = new_request_id()
        return request_id

    def new_request(self, method: str, params: dict[str, Any] | None = None) -> RPCRequest:
        return RPCRequest.create(method, params, request_id=self.new_id())

    def register(self, request_id: str) -> asyncio.Future[RPCResponse]:
        """Create the response future for a request.

        Raises:
            DuplicateRequestError: If the id is already outstanding
        """
        if request_id in self._pending:
            raise DuplicateRequestError(request_id)
        future: asyncio.Future[RPCResponse] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        return future

    def discard(self, request_id: str) -> None:
        future = self._pending.pop(request_id, None)
        if future is not None and not future.done():
            future.cancel()

    def dispatch(self, response: RPCResponse) -> bool:
        """Deliver a response to its waiter.

        Returns:
            True if the frame belonged to an outstanding request
        """
        # Exact match only; "<id>#event" frames belong to subscriptions
        future = self._pending.pop(response.id, None)
        if future is None:
            return False
        if future.done():
            logger.debug(f"Dropping response for {response.id}: caller gave up")
        else:
            future.set_result(response)
        return True

    def fail_all(self, exc: BaseException) -> None:
        """Fail every outstanding request with ``exc``."""
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()
