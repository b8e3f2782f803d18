"""Sidecar — supervised worker process with a line-delimited JSON-RPC channel."""

__version__ = "0.1.0"

from sidecar.errors import (  # noqa: E402
    CallTimeoutError,
    ChannelClosedError,
    NotStartedError,
    RemoteError,
    SidecarError,
    SpawnError,
    WriteError,
)
from sidecar.events import EventSink  # noqa: E402
from sidecar.session import SidecarSession  # noqa: E402
from sidecar.supervisor import Supervisor  # noqa: E402

__all__ = [
    "CallTimeoutError",
    "ChannelClosedError",
    "EventSink",
    "NotStartedError",
    "RemoteError",
    "SidecarError",
    "SidecarSession",
    "SpawnError",
    "Supervisor",
    "WriteError",
    "__version__",
]
