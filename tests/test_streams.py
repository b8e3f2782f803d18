"""Tests for the stdout/stderr stream readers."""

from __future__ import annotations

import asyncio
import logging

import pytest

from sidecar.protocol import Event, Message, Response
from sidecar.streams import forward_lines, read_messages


def _reader(data: bytes, limit: int = 2**16) -> asyncio.StreamReader:
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(data)
    reader.feed_eof()
    return reader


class TestReadMessages:
    async def test_messages_dispatched_in_wire_order(self) -> None:
        data = (
            b'{"id":1,"result":"a"}\n'
            b'{"event":"logUpdate","data":{"msg":"tick"}}\n'
            b'{"id":2,"result":"b"}\n'
        )
        seen: list[Message] = []
        await read_messages(_reader(data), seen.append)

        assert [type(m) for m in seen] == [Response, Event, Response]
        assert isinstance(seen[0], Response) and seen[0].result == "a"
        assert isinstance(seen[1], Event) and seen[1].event == "logUpdate"

    async def test_malformed_line_is_skipped(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        data = b'not json\n{"id":1,"result":"ok"}\n'
        seen: list[Message] = []
        with caplog.at_level(logging.WARNING, logger="sidecar.streams"):
            await read_messages(_reader(data), seen.append, name="worker")

        assert len(seen) == 1
        assert "Invalid JSON" in caplog.text
        assert "not json" in caplog.text

    async def test_blank_and_unclassified_lines_skipped(self) -> None:
        data = b'\n   \n[1,2]\n{"foo":"bar"}\n{"id":3,"result":null}\n'
        seen: list[Message] = []
        await read_messages(_reader(data), seen.append)
        assert len(seen) == 1

    async def test_oversized_line_is_skipped(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        big = b'{"id":1,"result":"' + b"x" * 5000 + b'"}\n'
        data = big + b'{"id":2,"result":"small"}\n'
        seen: list[Message] = []
        with caplog.at_level(logging.WARNING, logger="sidecar.streams"):
            await read_messages(_reader(data), seen.append, max_line_bytes=1024)

        assert [m.id for m in seen if isinstance(m, Response)] == [2]
        assert "exceeds 1024 bytes" in caplog.text

    async def test_dispatch_error_does_not_stop_reader(self) -> None:
        data = b'{"id":1,"result":1}\n{"id":2,"result":2}\n'
        seen: list[int] = []

        def dispatch(message: Message) -> None:
            assert isinstance(message, Response)
            if message.id == 1:
                raise RuntimeError("boom")
            seen.append(message.id)

        await read_messages(_reader(data), dispatch)
        assert seen == [2]

    async def test_end_of_stream_is_logged(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="sidecar.streams"):
            await read_messages(_reader(b""), lambda m: None, name="worker")
        assert "worker: stdout stream ended" in caplog.text


class TestForwardLines:
    async def test_lines_forwarded_verbatim(self) -> None:
        data = b"first line\n  indented {not json}\r\nlast without newline"
        lines: list[str] = []
        await forward_lines(_reader(data), lines.append)
        assert lines == ["first line", "  indented {not json}", "last without newline"]

    async def test_invalid_utf8_replaced(self) -> None:
        lines: list[str] = []
        await forward_lines(_reader(b"bad \xff byte\n"), lines.append)
        assert lines == ["bad � byte"]

    async def test_sink_error_does_not_stop_forwarding(self) -> None:
        lines: list[str] = []

        def sink(line: str) -> None:
            if line == "boom":
                raise RuntimeError("sink bug")
            lines.append(line)

        await forward_lines(_reader(b"boom\nafter\n"), sink)
        assert lines == ["after"]
