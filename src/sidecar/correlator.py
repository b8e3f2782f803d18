"""Correlator — matches worker responses to outstanding requests by id."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class Correlator:
    """Tracks one single-use future per in-flight request id.

    Ids come from a per-session counter starting at 1 and are never reused.
    Every mutation of the pending map is a lookup-and-remove with no
    ``await`` in between, so a late response and a timeout racing for the
    same id cannot both see the entry.  Whichever removes it first wins.
    """

    def __init__(self) -> None:
        self._last_id = 0
        self._pending: dict[int, asyncio.Future[Any]] = {}

    @property
    def pending(self) -> int:
        """Number of requests still awaiting a response."""
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def next_id(self) -> int:
        """Return the next request id (1, 2, 3, ...)."""
        self._last_id += 1
        return self._last_id

    def register(self, request_id: int) -> asyncio.Future[Any]:
        """Create and store the completion future for *request_id*.

        Raises ``RuntimeError`` if the id is already pending.
        """
        if request_id in self._pending:
            msg = f"Duplicate pending request id: {request_id}"
            raise RuntimeError(msg)
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        self._pending[request_id] = future
        return future

    def resolve(self, request_id: int, result: Any) -> bool:
        """Fulfil *request_id* with *result*.

        Returns ``False`` when the id is unknown, already answered, or
        timed out.  Such late responses are dropped.
        """
        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            logger.debug("dropping response for unknown id %d", request_id)
            return False
        future.set_result(result)
        return True

    def reject(self, request_id: int, exc: BaseException) -> bool:
        """Fail *request_id* with *exc*.  Same no-op rules as ``resolve``."""
        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            logger.debug("dropping error for unknown id %d", request_id)
            return False
        future.set_exception(exc)
        return True

    def cancel(self, request_id: int) -> bool:
        """Remove *request_id* without fulfilling it (timeout cleanup)."""
        future = self._pending.pop(request_id, None)
        if future is None:
            return False
        if not future.done():
            future.cancel()
        return True

    def fail_all(self, make_error: Callable[[], BaseException]) -> int:
        """Fail every pending request and clear the map.

        *make_error* is called once per request so no two waiters share
        an exception instance.
        """
        pending = list(self._pending.items())
        self._pending.clear()
        failed = 0
        for request_id, future in pending:
            if not future.done():
                exc = make_error()
                future.set_exception(exc)
                # The waiter may already be gone.
                future.exception()
                failed += 1
                logger.debug("failed pending request %d: %s", request_id, exc)
        return failed
