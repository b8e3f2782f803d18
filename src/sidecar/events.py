"""EventSink — publish/subscribe fan-out for unsolicited worker events."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sidecar.constants import EventHandler, WildcardHandler

logger = logging.getLogger(__name__)

#: Number of recent events kept for inspection.
_HISTORY_SIZE = 50


@dataclass(slots=True)
class _Subscription:
    handler: EventHandler
    once: bool = False


class EventSink:
    """Delivers events to subscribers keyed by event name.

    Delivery is best-effort and fire-and-forget.  Synchronous handlers run
    inline in publish order; coroutine handlers are scheduled as tasks.
    A handler that raises is logged and never affects other handlers.
    Events with no subscribers are discarded.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[_Subscription]] = {}
        self._wildcards: list[WildcardHandler] = []
        self._history: deque[tuple[str, Any]] = deque(maxlen=_HISTORY_SIZE)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def history(self) -> list[tuple[str, Any]]:
        """Most recent ``(name, data)`` pairs, oldest first."""
        return list(self._history)

    def subscriber_count(self, name: str) -> int:
        return len(self._subscribers.get(name, ()))

    # ------------------------------------------------------------------ #
    # Subscription
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        name: str,
        handler: EventHandler,
        *,
        once: bool = False,
    ) -> Callable[[], bool]:
        """Register *handler* for *name*.  Returns an unsubscribe callable."""
        self._subscribers.setdefault(name, []).append(
            _Subscription(handler=handler, once=once)
        )
        return lambda: self.unsubscribe(name, handler)

    def subscribe_all(self, handler: WildcardHandler) -> Callable[[], bool]:
        """Register *handler* to receive ``(name, data)`` for every event."""
        self._wildcards.append(handler)

        def _remove() -> bool:
            if handler in self._wildcards:
                self._wildcards.remove(handler)
                return True
            return False

        return _remove

    def unsubscribe(self, name: str, handler: EventHandler) -> bool:
        """Remove the first registration of *handler* for *name*."""
        subs = self._subscribers.get(name)
        if not subs:
            return False
        for i, sub in enumerate(subs):
            if sub.handler == handler:
                del subs[i]
                if not subs:
                    del self._subscribers[name]
                return True
        return False

    async def wait_for(self, name: str, timeout: float | None = None) -> Any:
        """Wait for the next *name* event and return its data.

        Raises ``TimeoutError`` if *timeout* elapses first.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        def _deliver(data: Any) -> None:
            if not future.done():
                future.set_result(data)

        self.subscribe(name, _deliver, once=True)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self.unsubscribe(name, _deliver)

    # ------------------------------------------------------------------ #
    # Publishing
    # ------------------------------------------------------------------ #

    def publish(self, name: str, data: Any) -> int:
        """Deliver *data* to every subscriber of *name*.

        Returns the number of handlers invoked.
        """
        self._history.append((name, data))

        subs = self._subscribers.get(name, [])
        current = list(subs)
        if any(sub.once for sub in current):
            remaining = [sub for sub in subs if not sub.once]
            if remaining:
                self._subscribers[name] = remaining
            else:
                self._subscribers.pop(name, None)

        delivered = 0
        for sub in current:
            self._invoke(name, sub.handler, data)
            delivered += 1
        for wildcard in list(self._wildcards):
            self._invoke(name, wildcard, name, data)
            delivered += 1

        if not delivered:
            logger.debug("no subscribers for event %r", name)
        return delivered

    def _invoke(self, name: str, handler: Callable[..., Any], *args: Any) -> None:
        try:
            outcome = handler(*args)
        except Exception:
            logger.exception("event handler error for %r", name)
            return
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(self._guard(name, outcome))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _guard(name: str, awaitable: Any) -> None:
        try:
            await awaitable
        except Exception:
            logger.exception("async event handler error for %r", name)

    async def drain(self) -> None:
        """Wait for scheduled async handlers to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
