"""Line-delimited JSON-RPC framing between the host and the worker.

One JSON value per UTF-8 line, terminated by ``\\n``::

    host   → worker:  {"id": N, "method": "...", "params": {...}}
    worker → host:    {"id": N, "result": ...}  or  {"id": N, "error": {...}}
    worker → host:    {"event": "...", "data": ...}

Pure data, no I/O.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sidecar.errors import ProtocolError

#: Message used when the worker reports an error without one.
UNKNOWN_ERROR_MESSAGE = "Unknown sidecar error"


class Request(BaseModel):
    """A call from the host to the worker."""

    model_config = ConfigDict(extra="forbid")

    id: int = Field(ge=1, description="Session-unique correlation id")
    method: str = Field(min_length=1, description="Remote method name")
    params: dict[str, Any] = Field(default_factory=dict)


class ErrorBody(BaseModel):
    """The ``error`` object of a failed response."""

    message: str = UNKNOWN_ERROR_MESSAGE
    code: int | None = None
    data: Any = None


class Response(BaseModel):
    """The worker's answer to one request."""

    id: int = Field(ge=0)
    result: Any = None
    error: ErrorBody | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Event(BaseModel):
    """An unsolicited notification pushed by the worker."""

    event: str
    data: Any = None


Message = Response | Event


def encode_request(request: Request) -> bytes:
    """Serialise *request* as one compact JSON line."""
    return request.model_dump_json().encode("utf-8") + b"\n"


def decode_line(line: bytes) -> Message | None:
    """Parse one line from the worker's stdout.

    Returns ``None`` for blank lines and for JSON that is neither an event
    nor a response.

    Raises:
        ProtocolError: If the line is not valid UTF-8 JSON.
    """
    try:
        text = line.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        msg = f"Invalid UTF-8 from worker: {exc}"
        raise ProtocolError(msg) from exc
    if not text:
        return None

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON from worker: {exc.msg} (column {exc.colno})"
        raise ProtocolError(msg) from exc

    return classify(raw)


def classify(raw: Any) -> Message | None:
    """Turn a parsed JSON value into an ``Event`` or ``Response``.

    A string ``event`` field wins over ``id``; an ``id`` must be a
    non-negative integer.  Anything else is discarded.
    """
    if not isinstance(raw, dict):
        return None

    name = raw.get("event")
    if isinstance(name, str):
        return Event(event=name, data=raw.get("data"))

    req_id = raw.get("id")
    if not _is_uint(req_id):
        return None

    error = raw.get("error")
    if error is not None:
        return Response(id=req_id, error=_error_body(error))
    return Response(id=req_id, result=raw.get("result"))


def _is_uint(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _error_body(error: Any) -> ErrorBody:
    if not isinstance(error, dict):
        return ErrorBody()
    message = error.get("message")
    code = error.get("code")
    return ErrorBody(
        message=message if isinstance(message, str) else UNKNOWN_ERROR_MESSAGE,
        code=code if isinstance(code, int) and not isinstance(code, bool) else None,
        data=error.get("data"),
    )
