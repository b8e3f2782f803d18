"""Supervisor — owns the worker's lifecycle and the public call facade."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from sidecar.config.models import SidecarConfig
from sidecar.constants import (
    EXIT_EVENT,
    READY_EVENT,
    EventHandler,
    LineSink,
    WildcardHandler,
)
from sidecar.errors import ChannelClosedError, NotStartedError
from sidecar.events import EventSink
from sidecar.session import SidecarSession

logger = logging.getLogger(__name__)


class Supervisor:
    """Keeps at most one live ``SidecarSession`` and fronts it.

    Higher layers only ever use ``call`` and the subscription methods;
    the process, its pipes, and the pending map stay private.

    Usage::

        async with Supervisor(config) as sidecar:
            servers = await sidecar.call("getServers")
    """

    def __init__(
        self,
        config: SidecarConfig,
        *,
        events: EventSink | None = None,
        on_stderr: LineSink | None = None,
    ) -> None:
        self._config = config
        self._events = events if events is not None else EventSink()
        self._on_stderr = on_stderr
        self._session: SidecarSession | None = None
        self._start_lock = asyncio.Lock()
        self._ready: asyncio.Future[Any] | None = None
        self._events.subscribe(READY_EVENT, self._on_ready)
        self._events.subscribe(EXIT_EVENT, self._on_exit)

    @property
    def config(self) -> SidecarConfig:
        return self._config

    @property
    def events(self) -> EventSink:
        return self._events

    @property
    def running(self) -> bool:
        return self._session is not None and self._session.running

    @property
    def pid(self) -> int | None:
        return self._session.pid if self._session is not None else None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Spawn the worker unless a live session already exists.

        A session whose process has exited is replaced, restarting the
        request ids at 1.

        Raises ``SpawnError`` if the worker cannot be launched.
        """
        async with self._start_lock:
            if self.running:
                return
            if self._session is not None:
                logger.info("%s: replacing exited session", self._config.name)
                await self._session.close()
                self._session = None

            self._ready = asyncio.get_running_loop().create_future()
            self._session = await SidecarSession.spawn(
                self._config, self._events, on_stderr=self._on_stderr
            )

    async def shutdown(self) -> None:
        """Graceful stop: final ``shutdown`` call, then terminate.  Idempotent.

        Waits for a ``start()`` already in progress and stops the worker it
        launched.
        """
        async with self._start_lock:
            session = self._session
            if session is None:
                return
            self._session = None
            await session.close(
                shutdown_timeout=self._config.shutdown_timeout,
                terminate_timeout=self._config.terminate_timeout,
            )
            self._fail_ready(f"{self._config.name} shut down before ready")
            logger.info("%s: shut down", self._config.name)

    async def wait_ready(self, timeout: float | None = None) -> Any:
        """Wait for the worker's ``ready`` event and return its payload.

        Returns immediately if the event already arrived for this session.

        Raises:
            NotStartedError: If ``start()`` has not been called.
            TimeoutError: If *timeout* elapses first.
        """
        if self._ready is None:
            msg = f"{self._config.name} not started"
            raise NotStartedError(msg)
        return await asyncio.wait_for(asyncio.shield(self._ready), timeout=timeout)

    async def wait_closed(self) -> int | None:
        """Wait for the worker to exit; returns its exit code."""
        if self._session is None:
            return None
        return await self._session.wait_closed()

    def _on_ready(self, data: Any) -> None:
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(data)
        logger.info("%s: worker ready", self._config.name)

    def _on_exit(self, data: Any) -> None:
        self._fail_ready(f"{self._config.name} exited before ready: {data}")

    def _fail_ready(self, reason: str) -> None:
        ready = self._ready
        if ready is not None and not ready.done():
            ready.set_exception(ChannelClosedError(reason))
            ready.exception()

    async def __aenter__(self) -> Supervisor:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------ #
    # Facade
    # ------------------------------------------------------------------ #

    async def call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Call *method* on the worker and return its result.

        Raises ``NotStartedError`` immediately, without writing anything,
        when no live session exists.  See ``SidecarSession.call`` for the
        per-call failures.
        """
        session = self._session
        if session is None or not session.running:
            msg = f"{self._config.name} not started"
            raise NotStartedError(msg)
        return await session.call(method, params, timeout=timeout)

    def subscribe(
        self,
        name: str,
        handler: EventHandler,
        *,
        once: bool = False,
    ) -> Callable[[], bool]:
        """Subscribe *handler* to worker events named *name*."""
        return self._events.subscribe(name, handler, once=once)

    def subscribe_all(self, handler: WildcardHandler) -> Callable[[], bool]:
        """Subscribe *handler* to every worker event as ``(name, data)``."""
        return self._events.subscribe_all(handler)
