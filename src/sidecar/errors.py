"""Error taxonomy for sidecar calls and lifecycle."""

from __future__ import annotations

from typing import Any


class SidecarError(Exception):
    """Base class for every error surfaced to sidecar callers."""


class SpawnError(SidecarError):
    """The worker executable is missing or the OS refused to start it."""


class NotStartedError(SidecarError):
    """A call was attempted while no live session exists."""


class WriteError(SidecarError):
    """The request could not be written to the worker's stdin."""


class RemoteError(SidecarError):
    """The worker answered a request with an error object."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        data: Any = None,
    ) -> None:
        self.message = message
        self.code = code
        self.data = data
        super().__init__(message)


class CallTimeoutError(SidecarError, TimeoutError):
    """No response arrived within the call timeout."""

    def __init__(self, method: str, timeout: float) -> None:
        self.method = method
        self.timeout = timeout
        super().__init__(f"Sidecar call '{method}' timed out ({timeout:g}s)")


class ChannelClosedError(SidecarError):
    """The session ended before the request was answered."""


class ProtocolError(SidecarError):
    """A line from the worker is not valid UTF-8 JSON."""
