"""Unit tests for SSE framing and stream lifetime."""

from __future__ import annotations

import json

import pytest

from modules.realtime.connections import QueueConnection
from modules.realtime.registry import Broadcast, ChannelRegistry
from modules.realtime.views import EventStream, format_event

pytestmark = pytest.mark.unit


def test_format_event():
    message = {"type": "order_created", "orderId": "o-1", "payload": {}, "timestamp": "t"}

    frame = format_event(message)

    event_line, data_line, blank, end = frame.split("\n")
    assert event_line == "event: order_created"
    assert json.loads(data_line[len("data: "):]) == message
    assert (blank, end) == ("", "")


def test_stream_yields_retry_then_messages_then_keepalive():
    connection = QueueConnection()
    connection.send({"type": "order_updated", "orderId": "o-1"})
    frames = iter(EventStream(connection, keepalive_seconds=0.01))

    assert next(frames) == "retry: 3000\n\n"
    assert next(frames).startswith("event: order_updated\n")
    assert next(frames) == ": keep-alive\n\n"


def test_stream_ends_when_connection_closes():
    connection = QueueConnection()
    frames = iter(EventStream(connection, keepalive_seconds=0.01))
    next(frames)

    connection.close()

    assert list(frames) == []


def test_closing_unread_stream_unsubscribes():
    registry = ChannelRegistry()
    connection = QueueConnection()
    registry.subscribe("cashier", "cashier", Broadcast(), connection)
    stream = EventStream(connection, keepalive_seconds=0.01)

    stream.close()

    assert connection.closed
    assert len(registry) == 0


def test_abandoned_iteration_unsubscribes():
    registry = ChannelRegistry()
    connection = QueueConnection()
    registry.subscribe("cashier", "cashier", Broadcast(), connection)
    frames = iter(EventStream(connection, keepalive_seconds=0.01))
    next(frames)

    frames.close()

    assert len(registry) == 0
