"""Stream readers for the worker's stdout (protocol) and stderr (diagnostics)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from sidecar.constants import DEFAULT_MAX_LINE_BYTES, LineSink
from sidecar.errors import ProtocolError
from sidecar.protocol import Message, decode_line

logger = logging.getLogger(__name__)

#: Characters of an offending line included in log messages.
_PREVIEW_LEN = 200


async def read_messages(
    stream: asyncio.StreamReader,
    dispatch: Callable[[Message], None],
    *,
    name: str = "sidecar",
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
) -> None:
    """Read JSONL from *stream* until EOF, passing each message to *dispatch*.

    Lines are handled strictly one at a time, so events and responses reach
    their handlers in wire order.  Malformed lines are logged and skipped.
    """
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            # StreamReader raises once a line overruns its limit.
            logger.warning(
                "%s: stdout line exceeds %d bytes, skipping",
                name,
                max_line_bytes,
            )
            continue
        if not line:
            break

        if len(line) > max_line_bytes:
            logger.warning(
                "%s: stdout line exceeds %d bytes, skipping",
                name,
                max_line_bytes,
            )
            continue

        try:
            message = decode_line(line)
        except ProtocolError as exc:
            preview = line[:_PREVIEW_LEN].decode(errors="replace").rstrip()
            logger.warning("%s: %s; line: %s", name, exc, preview)
            continue

        if message is None:
            continue

        try:
            dispatch(message)
        except Exception:
            logger.exception("%s: dispatch error", name)

    logger.info("%s: stdout stream ended", name)


async def forward_lines(
    stream: asyncio.StreamReader,
    sink: LineSink,
    *,
    name: str = "sidecar",
) -> None:
    """Forward each line of *stream* verbatim to *sink* until EOF."""
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            logger.warning("%s: stderr line too long, skipping", name)
            continue
        if not line:
            break
        try:
            sink(line.decode(errors="replace").rstrip("\r\n"))
        except Exception:
            logger.exception("%s: stderr sink error", name)

    logger.info("%s: stderr stream ended", name)
