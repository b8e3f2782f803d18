"""Tests for the EventSink publish/subscribe fan-out."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

from sidecar.events import EventSink


class TestPublish:
    def test_no_subscribers_is_discarded(self) -> None:
        sink = EventSink()
        assert sink.publish("logUpdate", {"msg": "tick"}) == 0

    def test_subscriber_receives_data(self) -> None:
        sink = EventSink()
        received: list[Any] = []
        sink.subscribe("logUpdate", received.append)
        assert sink.publish("logUpdate", {"level": "info", "msg": "tick"}) == 1
        assert received == [{"level": "info", "msg": "tick"}]

    def test_only_matching_name_delivered(self) -> None:
        sink = EventSink()
        received: list[Any] = []
        sink.subscribe("a", received.append)
        sink.publish("b", 1)
        assert received == []

    def test_delivery_in_publish_order(self) -> None:
        sink = EventSink()
        received: list[Any] = []
        sink.subscribe("tick", received.append)
        for i in range(5):
            sink.publish("tick", i)
        assert received == [0, 1, 2, 3, 4]

    def test_raising_handler_is_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        sink = EventSink()
        received: list[Any] = []

        def broken(data: Any) -> None:
            raise RuntimeError("handler bug")

        sink.subscribe("x", broken)
        sink.subscribe("x", received.append)
        with caplog.at_level(logging.ERROR, logger="sidecar.events"):
            assert sink.publish("x", 1) == 2
        assert received == [1]
        assert "event handler error" in caplog.text

    def test_history_is_bounded(self) -> None:
        sink = EventSink()
        for i in range(60):
            sink.publish("n", i)
        history = sink.history
        assert len(history) == 50
        assert history[0] == ("n", 10)
        assert history[-1] == ("n", 59)


class TestSubscriptions:
    def test_unsubscribe_callable(self) -> None:
        sink = EventSink()
        received: list[Any] = []
        unsubscribe = sink.subscribe("x", received.append)
        assert unsubscribe() is True
        sink.publish("x", 1)
        assert received == []
        assert sink.subscriber_count("x") == 0

    def test_unsubscribe_unknown(self) -> None:
        assert EventSink().unsubscribe("x", print) is False

    def test_once_fires_a_single_time(self) -> None:
        sink = EventSink()
        received: list[Any] = []
        sink.subscribe("ready", received.append, once=True)
        sink.publish("ready", 1)
        sink.publish("ready", 2)
        assert received == [1]

    def test_wildcard_receives_name_and_data(self) -> None:
        sink = EventSink()
        seen: list[tuple[str, Any]] = []
        remove = sink.subscribe_all(lambda name, data: seen.append((name, data)))
        sink.publish("a", 1)
        sink.publish("b", 2)
        assert seen == [("a", 1), ("b", 2)]
        assert remove() is True
        sink.publish("c", 3)
        assert len(seen) == 2


class TestAsyncHandlers:
    async def test_coroutine_handler_is_scheduled(self) -> None:
        sink = EventSink()
        received: list[Any] = []

        async def handler(data: Any) -> None:
            await asyncio.sleep(0)
            received.append(data)

        sink.subscribe("x", handler)
        sink.publish("x", "payload")
        assert received == []
        await sink.drain()
        assert received == ["payload"]

    async def test_coroutine_handler_error_is_logged(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        sink = EventSink()

        async def handler(data: Any) -> None:
            raise ValueError("async bug")

        sink.subscribe("x", handler)
        with caplog.at_level(logging.ERROR, logger="sidecar.events"):
            sink.publish("x", 1)
            await sink.drain()
        assert "async event handler error" in caplog.text

    async def test_wait_for(self) -> None:
        sink = EventSink()
        waiter = asyncio.create_task(sink.wait_for("ready", timeout=1.0))
        await asyncio.sleep(0)
        sink.publish("ready", {"pid": 1})
        assert await waiter == {"pid": 1}
        assert sink.subscriber_count("ready") == 0

    async def test_wait_for_timeout(self) -> None:
        sink = EventSink()
        with pytest.raises(TimeoutError):
            await sink.wait_for("never", timeout=0.01)
        assert sink.subscriber_count("never") == 0
