"""SidecarSession — one run of the worker process and its RPC channel."""

from __future__ import annotations

import asyncio
import atexit
import contextlib
import logging
import os
import shutil
import signal
from pathlib import Path
from typing import Any

from sidecar.config.models import SidecarConfig, WorkerConfig
from sidecar.constants import (
    DEFAULT_CALL_TIMEOUT,
    DEFAULT_MAX_LINE_BYTES,
    DEFAULT_SHUTDOWN_TIMEOUT,
    DEFAULT_TERMINATE_TIMEOUT,
    EXIT_EVENT,
    RESERVED_EVENT_PREFIX,
    SHUTDOWN_METHOD,
    LineSink,
)
from sidecar.correlator import Correlator
from sidecar.errors import (
    CallTimeoutError,
    ChannelClosedError,
    RemoteError,
    SidecarError,
    SpawnError,
    WriteError,
)
from sidecar.events import EventSink
from sidecar.protocol import Event, Message, Request, encode_request
from sidecar.streams import forward_lines, read_messages

logger = logging.getLogger(__name__)
worker_logger = logging.getLogger("sidecar.worker")

#: Seconds the exit watcher lets the stdout reader drain after exit.
_DRAIN_WAIT = 1.0

#: PIDs of live workers, killed if the host exits without shutting down.
_LIVE_PIDS: set[int] = set()


def _kill_orphans() -> None:
    sig = getattr(signal, "SIGKILL", signal.SIGTERM)
    for pid in list(_LIVE_PIDS):
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.kill(pid, sig)
    _LIVE_PIDS.clear()


atexit.register(_kill_orphans)


def resolve_argv(worker: WorkerConfig) -> list[str]:
    """Check that the worker command can be launched and return its argv.

    Raises ``SpawnError`` when the working directory or executable is missing.
    """
    if worker.cwd is not None and not worker.cwd.is_dir():
        msg = f"Worker directory not found: {worker.cwd}"
        raise SpawnError(msg)

    argv = worker.argv
    exe = argv[0]
    if os.sep in exe or (os.altsep and os.altsep in exe):
        path = Path(exe)
        if not path.is_absolute() and worker.cwd is not None:
            path = worker.cwd / path
        if not path.exists():
            msg = f"Sidecar executable not found at {path}"
            raise SpawnError(msg)
    elif shutil.which(exe) is None:
        msg = (
            f"Command not found: {exe}. "
            f"Make sure '{exe}' is installed and on your PATH."
        )
        raise SpawnError(msg)
    return argv


class SidecarSession:
    """A live worker process with its readers, write gate and pending calls.

    Created by ``spawn()``; unusable once the process exits or ``close()``
    runs.  All pending calls fail with ``ChannelClosedError`` at that point
    rather than waiting out their timeouts.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        events: EventSink,
        *,
        name: str = "sidecar",
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
        on_stderr: LineSink | None = None,
    ) -> None:
        self.name = name
        self._process = process
        self._events = events
        self._call_timeout = call_timeout
        self._max_line_bytes = max_line_bytes
        self._on_stderr = on_stderr or self._log_stderr

        self._correlator = Correlator()
        self._write_lock = asyncio.Lock()
        self._closed = False
        self._closing = False

        self._stdout_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._watch_task: asyncio.Task[None] | None = None

    @classmethod
    async def spawn(
        cls,
        config: SidecarConfig,
        events: EventSink,
        *,
        on_stderr: LineSink | None = None,
    ) -> SidecarSession:
        """Start the worker and its readers.

        Readers are running before this returns, so no output is lost
        between spawn and the first call.
        """
        worker = config.worker
        argv = resolve_argv(worker)
        env = {**os.environ, **worker.env} if worker.env else None

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=worker.cwd,
                env=env,
                limit=config.max_line_bytes,
            )
        except FileNotFoundError as exc:
            msg = f"Command not found: {argv[0]}"
            raise SpawnError(msg) from exc
        except OSError as exc:
            msg = f"Failed to spawn sidecar: {exc}"
            raise SpawnError(msg) from exc

        session = cls(
            process,
            events,
            name=config.name,
            call_timeout=config.call_timeout,
            max_line_bytes=config.max_line_bytes,
            on_stderr=on_stderr,
        )
        session.start_readers()
        logger.info("%s: started (PID %s): %s", config.name, process.pid, worker.command)
        return session

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def running(self) -> bool:
        """True while the process is alive and the session is usable."""
        return not self._closed and self._process.returncode is None

    @property
    def pending(self) -> int:
        """Number of calls awaiting a response."""
        return self._correlator.pending

    # ------------------------------------------------------------------ #
    # Readers
    # ------------------------------------------------------------------ #

    def start_readers(self) -> None:
        """Launch the stdout reader, stderr forwarder and exit watcher."""
        if self._watch_task is not None:
            return
        proc = self._process
        if isinstance(proc.pid, int):
            _LIVE_PIDS.add(proc.pid)
        if proc.stdout is not None:
            self._stdout_task = asyncio.create_task(
                read_messages(
                    proc.stdout,
                    self._dispatch,
                    name=self.name,
                    max_line_bytes=self._max_line_bytes,
                )
            )
        if proc.stderr is not None:
            self._stderr_task = asyncio.create_task(
                forward_lines(proc.stderr, self._on_stderr, name=self.name)
            )
        self._watch_task = asyncio.create_task(self._watch_exit())

    def _dispatch(self, message: Message) -> None:
        """Route one decoded stdout message."""
        if isinstance(message, Event):
            if message.event.startswith(RESERVED_EVENT_PREFIX):
                logger.warning(
                    "%s: dropping worker event with reserved name %r",
                    self.name,
                    message.event,
                )
                return
            self._events.publish(message.event, message.data)
        elif message.error is not None:
            err = message.error
            self._correlator.reject(
                message.id, RemoteError(err.message, code=err.code, data=err.data)
            )
        else:
            self._correlator.resolve(message.id, message.result)

    async def _watch_exit(self) -> None:
        returncode = await self._process.wait()

        # Responses written just before exit are still in the pipe.
        if self._stdout_task is not None:
            await asyncio.wait({self._stdout_task}, timeout=_DRAIN_WAIT)

        if returncode != 0 and not self._closing:
            logger.error("%s: worker exited with code %s", self.name, returncode)
        else:
            logger.info("%s: worker exited with code %s", self.name, returncode)

        self._mark_closed(f"Sidecar exited with code {returncode}")
        self._events.publish(EXIT_EVENT, {"returncode": returncode})

    def _mark_closed(self, reason: str) -> None:
        if self._closed:
            return
        self._closed = True
        if isinstance(self._process.pid, int):
            _LIVE_PIDS.discard(self._process.pid)
        failed = self._correlator.fail_all(lambda: ChannelClosedError(reason))
        if failed:
            logger.warning("%s: %d pending call(s) failed: %s", self.name, failed, reason)

    @staticmethod
    def _log_stderr(line: str) -> None:
        worker_logger.info("%s", line)

    # ------------------------------------------------------------------ #
    # Calls
    # ------------------------------------------------------------------ #

    async def call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Send one request and wait for its response.

        Raises:
            ChannelClosedError: The session is closed or closes mid-call.
            WriteError: The request could not be written.
            RemoteError: The worker answered with an error.
            CallTimeoutError: No response within *timeout* seconds.
        """
        if self._closed:
            msg = f"{self.name} session is closed"
            raise ChannelClosedError(msg)

        wait = self._call_timeout if timeout is None else timeout
        request_id = self._correlator.next_id()
        request = Request(id=request_id, method=method, params=params or {})
        line = encode_request(request)
        future = self._correlator.register(request_id)

        try:
            await self._write(line)
            logger.debug("%s: rpc → %s(id=%d)", self.name, method, request_id)
            return await asyncio.wait_for(future, timeout=wait)
        except TimeoutError:
            logger.warning(
                "%s: %s(id=%d) timed out after %gs", self.name, method, request_id, wait
            )
            raise CallTimeoutError(method, wait) from None
        finally:
            # No-op once the reader has resolved it.
            self._correlator.cancel(request_id)

    async def _write(self, line: bytes) -> None:
        """Write one framed line; concurrent writers never interleave."""
        async with self._write_lock:
            stdin = self._process.stdin
            if self._closed or stdin is None or stdin.is_closing():
                msg = f"{self.name} stdin not available"
                raise WriteError(msg)
            try:
                stdin.write(line)
                await stdin.drain()
            except (BrokenPipeError, ConnectionResetError, OSError) as exc:
                msg = f"Failed to write to {self.name}: {exc}"
                raise WriteError(msg) from exc

    # ------------------------------------------------------------------ #
    # Teardown
    # ------------------------------------------------------------------ #

    async def close(
        self,
        *,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        terminate_timeout: float = DEFAULT_TERMINATE_TIMEOUT,
    ) -> None:
        """Graceful stop: shutdown RPC -> wait -> SIGTERM -> SIGKILL.

        Every wait is bounded.  Idempotent.
        """
        if self._closing:
            return
        self._closing = True
        proc = self._process

        # 1. Ask the worker to shut itself down.
        if self.running:
            try:
                await asyncio.wait_for(
                    self.call(SHUTDOWN_METHOD, {}, timeout=shutdown_timeout),
                    timeout=shutdown_timeout,
                )
            except (SidecarError, TimeoutError) as exc:
                logger.info("%s: shutdown call did not complete: %s", self.name, exc)

        # 2. Wait for exit, then escalate.
        if proc.returncode is None:
            self._close_stdin()
            try:
                await asyncio.wait_for(proc.wait(), timeout=shutdown_timeout)
            except TimeoutError:
                with contextlib.suppress(ProcessLookupError):
                    proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), timeout=terminate_timeout)
                except TimeoutError:
                    logger.warning("%s: worker ignored SIGTERM, killing", self.name)
                    with contextlib.suppress(ProcessLookupError):
                        proc.kill()
                    try:
                        await asyncio.wait_for(proc.wait(), timeout=terminate_timeout)
                    except TimeoutError:
                        logger.error("%s: worker did not exit after SIGKILL", self.name)

        # 3. Let the watcher report the exit, then stop the readers.
        if self._watch_task is not None and not self._watch_task.done():
            await asyncio.wait({self._watch_task}, timeout=_DRAIN_WAIT)
        self._mark_closed(f"{self.name} session closed")

        for task in (self._watch_task, self._stdout_task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    def _close_stdin(self) -> None:
        stdin = self._process.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()

    async def wait_closed(self) -> int | None:
        """Wait until the worker exits and return its exit code."""
        if self._watch_task is not None:
            await asyncio.wait({self._watch_task})
        return self._process.returncode
