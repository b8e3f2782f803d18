"""Shared constants and type aliases for the sidecar runtime."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

#: Seconds a call waits for its response before failing.
DEFAULT_CALL_TIMEOUT = 30.0

#: Seconds allowed for the final ``shutdown`` RPC and the exit that follows.
DEFAULT_SHUTDOWN_TIMEOUT = 2.0

#: Seconds to wait after SIGTERM before SIGKILL.
DEFAULT_TERMINATE_TIMEOUT = 3.0

#: Seconds the CLI waits for the worker's ``ready`` event.
DEFAULT_READY_TIMEOUT = 10.0

#: Maximum bytes per JSONL line from the worker (1 MB).
DEFAULT_MAX_LINE_BYTES = 1_048_576

#: RPC method sent to the worker during graceful shutdown.
SHUTDOWN_METHOD = "shutdown"

#: Event the worker emits once it is ready to accept calls.
READY_EVENT = "ready"

#: Prefix of locally published lifecycle events; workers may not use it.
RESERVED_EVENT_PREFIX = "sidecar:"

#: Local event published when the worker process exits.
EXIT_EVENT = f"{RESERVED_EVENT_PREFIX}exit"

#: Event handler: ``handler(data)``, sync or async.
EventHandler = Callable[[Any], Awaitable[None] | None]

#: Wildcard handler: ``handler(name, data)``, sync or async.
WildcardHandler = Callable[[str, Any], Awaitable[None] | None]

#: Sink for worker stderr lines.
LineSink = Callable[[str], None]
