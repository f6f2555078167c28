"""Unit tests for NotificationDispatcher and its sinks."""

from __future__ import annotations

import logging

from easel.models.notifications import NotificationLevel
from easel.routing.dispatcher import NotificationDispatcher
from easel.routing.sinks import NotificationSink
from easel.routing.sinks.logging_sink import LoggingSink
from easel.routing.sinks.memory import MemorySink


class BrokenSink:
    @property
    def sink_name(self) -> str:
        return "broken"

    def accept(self, notification) -> None:
        raise RuntimeError("sink offline")


class TestDispatcher:
    def test_fans_out_to_every_sink(self):
        dispatcher = NotificationDispatcher()
        first, second = MemorySink(), MemorySink()
        dispatcher.register_sink(first)
        dispatcher.register_sink(second)
        dispatcher.warning("collection_emptied", "All images removed", record_id="r1")
        assert first.codes() == ["collection_emptied"]
        assert second.codes() == ["collection_emptied"]
        assert first.notifications[0].record_id == "r1"

    def test_broken_sink_does_not_block_others(self, caplog):
        dispatcher = NotificationDispatcher()
        memory = MemorySink()
        dispatcher.register_sink(BrokenSink())
        dispatcher.register_sink(memory)
        with caplog.at_level(logging.WARNING):
            notification = dispatcher.error("edition_sale_failed", "Could not save")
            succeeded = dispatcher.dispatch(notification)
        assert succeeded == ["memory"]
        assert len(memory.notifications) == 2
        assert "sink offline" in caplog.text

    def test_no_sinks_is_a_no_op(self):
        assert NotificationDispatcher().dispatch(
            NotificationDispatcher().info("x", "y")
        ) == []

    def test_register_is_idempotent(self):
        dispatcher = NotificationDispatcher()
        sink = MemorySink()
        dispatcher.register_sink(sink)
        dispatcher.register_sink(sink)
        assert len(dispatcher.registered_sinks) == 1
        dispatcher.unregister_sink(sink)
        assert dispatcher.registered_sinks == []


class TestSinks:
    def test_sinks_satisfy_protocol(self):
        assert isinstance(MemorySink(), NotificationSink)
        assert isinstance(LoggingSink(), NotificationSink)

    def test_memory_sink_is_bounded(self):
        sink = MemorySink(max_items=2)
        dispatcher = NotificationDispatcher()
        dispatcher.register_sink(sink)
        for code in ("a", "b", "c"):
            dispatcher.info(code, code)
        assert sink.codes() == ["b", "c"]

    def test_memory_sink_by_level(self, notifier, memory_sink):
        notifier.info("saved", "Saved")
        notifier.error("failed", "Failed")
        assert [n.code for n in memory_sink.by_level(NotificationLevel.ERROR)] == ["failed"]
        memory_sink.clear()
        assert memory_sink.notifications == []

    def test_logging_sink_uses_level(self, caplog):
        dispatcher = NotificationDispatcher()
        dispatcher.register_sink(LoggingSink())
        with caplog.at_level(logging.INFO):
            dispatcher.warning("async_trigger_failed", "Worker down", record_id="r1")
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "async_trigger_failed" in record.getMessage()
