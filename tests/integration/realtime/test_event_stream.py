"""Integration tests for the Server-Sent Events order stream."""

from __future__ import annotations

import json

import pytest

from modules.core.permissions import ActorRole
from modules.orders.constants import OrderStatus
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.realtime.hub import channel_registry
from modules.realtime.messages import MessageType, OrderEventMessage

pytestmark = pytest.mark.integration

STREAM_URL = "/api/v1/realtime/stream/"
SSE = "text/event-stream"


@pytest.fixture()
def app_service():
    """Service on the app-wide bus, where the broadcaster is registered."""
    return OrderService(order_repository=OrderDjangoRepository())


def _frames(response, count):
    content = iter(response.streaming_content)
    return [next(content).decode() for _ in range(count)]


def _finish(response, order_id=""):
    """Close the stream's connection and drain the body to its end.

    Ending the body lets the test client run its own cleanup.
    """
    lookup = OrderEventMessage(type=MessageType.ORDER_UPDATED, order_id=order_id, payload={})
    for subscription in channel_registry.subscriptions_for(lookup):
        subscription.connection.close()
    for _ in response.streaming_content:
        pass


def _event(frame):
    lines = frame.strip().split("\n")
    assert lines[0].startswith("event: ")
    return lines[0][len("event: "):], json.loads(lines[1][len("data: "):])


class TestOrderEventStream:
    def test_staff_stream_receives_order_updates(
        self, cashier_client, app_service, make_order
    ):
        before = len(channel_registry)
        order = make_order()
        response = cashier_client.get(STREAM_URL, HTTP_ACCEPT=SSE)
        try:
            assert response.status_code == 200
            assert response["Content-Type"].startswith(SSE)
            assert response["Cache-Control"] == "no-cache"
            assert len(channel_registry) == before + 1

            app_service.transition_status(
                order.id, OrderStatus.PREPARING, ActorRole.CASHIER
            )
            retry, frame = _frames(response, 2)
        finally:
            _finish(response)

        assert retry == "retry: 3000\n\n"
        event_type, message = _event(frame)
        assert event_type == "order_updated"
        assert message["orderId"] == str(order.id)
        assert message["payload"]["status"] == "preparing"
        assert len(channel_registry) == before

    def test_customer_follows_order_by_number(self, api_client, app_service, make_order):
        mine, other = make_order(), make_order()
        response = api_client.get(
            STREAM_URL, {"order_number": mine.order_number}, HTTP_ACCEPT=SSE
        )
        try:
            assert response.status_code == 200
            app_service.transition_status(
                other.id, OrderStatus.PREPARING, ActorRole.CASHIER
            )
            app_service.transition_status(
                mine.id, OrderStatus.CANCELLED, ActorRole.CASHIER
            )
            _, frame = _frames(response, 2)
        finally:
            _finish(response, order_id=str(mine.id))

        _, message = _event(frame)
        assert message["orderId"] == str(mine.id)
        assert message["payload"]["status"] == "cancelled"
        assert "customer_email" not in message["payload"]

    def test_idle_stream_sends_keepalive(self, cashier_client):
        response = cashier_client.get(STREAM_URL, HTTP_ACCEPT=SSE)
        try:
            _, keepalive = _frames(response, 2)
        finally:
            _finish(response)

        assert keepalive == ": keep-alive\n\n"

    def test_customer_without_order_number_gets_400(self, api_client):
        before = len(channel_registry)

        response = api_client.get(STREAM_URL)

        assert response.status_code == 400
        assert len(channel_registry) == before

    def test_unknown_order_number_gets_404(self, api_client):
        response = api_client.get(STREAM_URL, {"order_number": "BAK-20260101-ZZZZZZ"})
        assert response.status_code == 404
