"""End-to-end order lifecycle with real-time subscribers attached.

Wires the service, the event bus, the broadcaster and the fan-out the
same way the app does, but on private instances so nothing leaks
between tests.
"""

from __future__ import annotations

import pytest

from modules.core.permissions import ActorRole
from modules.orders.constants import DeliveryMethod, OrderStatus, PaymentStatus
from modules.orders.exceptions import InvalidTransition
from modules.orders.handlers import OrderEventBroadcaster, register_order_event_handlers
from modules.realtime.connections import QueueConnection
from modules.realtime.fanout import NotificationFanOut
from modules.realtime.registry import Broadcast, ChannelRegistry, ForOrder

pytestmark = pytest.mark.integration


@pytest.fixture()
def registry(event_bus):
    registry = ChannelRegistry()
    fanout = NotificationFanOut(registry, max_consecutive_failures=5)
    register_order_event_handlers(event_bus, OrderEventBroadcaster(fanout))
    return registry


def _drain(connection: QueueConnection) -> list[dict]:
    messages = []
    while (message := connection.receive(timeout=0.01)) is not None:
        messages.append(message)
    return messages


def _statuses(messages: list[dict]) -> list[tuple[str, str]]:
    return [(m["type"], m["payload"]["status"]) for m in messages]


class TestPickupLifecycle:
    def test_staff_and_customer_follow_order_to_completion(
        self, service, make_order, registry
    ):
        cashier = QueueConnection()
        registry.subscribe("cashier-1", ActorRole.CASHIER, Broadcast(), cashier)

        order = make_order()

        customer = QueueConnection()
        registry.subscribe("customer-1", ActorRole.CUSTOMER, ForOrder(order.id), customer)

        service.transition_status(order.id, OrderStatus.PREPARING, ActorRole.CASHIER)
        service.transition_status(order.id, OrderStatus.READY, ActorRole.KITCHEN)
        service.transition_status(order.id, OrderStatus.COMPLETED, ActorRole.CASHIER)

        assert _statuses(_drain(cashier)) == [
            ("order_created", "pending"),
            ("order_updated", "preparing"),
            ("order_updated", "ready"),
            ("order_updated", "completed"),
        ]
        assert _statuses(_drain(customer)) == [
            ("order_updated", "preparing"),
            ("order_updated", "ready"),
            ("order_updated", "completed"),
        ]

        order = service.get_order(order.id)
        assert [h.new_status for h in order.status_history.all()] == [
            "pending",
            "preparing",
            "ready",
            "completed",
        ]

    def test_messages_carry_order_id_and_snapshot(self, service, make_order, registry):
        cashier = QueueConnection()
        registry.subscribe("cashier-1", ActorRole.CASHIER, Broadcast(), cashier)

        order = make_order(customer_email="layla@example.com")
        (created,) = _drain(cashier)

        assert created["orderId"] == str(order.id)
        assert created["payload"]["order_number"] == order.order_number
        assert created["payload"]["total"] == "27.54"
        assert len(created["payload"]["items"]) == 2
        assert "customer_email" not in created["payload"]
        assert created["timestamp"]

    def test_customer_does_not_see_other_orders(self, service, make_order, registry):
        mine, theirs = make_order(), make_order()
        customer = QueueConnection()
        registry.subscribe("customer-1", ActorRole.CUSTOMER, ForOrder(mine.id), customer)

        service.transition_status(theirs.id, OrderStatus.PREPARING, ActorRole.CASHIER)
        service.transition_status(mine.id, OrderStatus.PREPARING, ActorRole.CASHIER)

        messages = _drain(customer)
        assert [m["orderId"] for m in messages] == [str(mine.id)]

    def test_rejected_transition_publishes_nothing(self, service, make_order, registry):
        order = make_order()
        cashier = QueueConnection()
        registry.subscribe("cashier-1", ActorRole.CASHIER, Broadcast(), cashier)

        with pytest.raises(InvalidTransition):
            service.transition_status(order.id, OrderStatus.COMPLETED, ActorRole.CASHIER)

        assert _drain(cashier) == []


class TestDeliveryLifecycle:
    def test_delivery_goes_out_for_delivery_before_completion(
        self, service, make_order, registry
    ):
        cashier = QueueConnection()
        registry.subscribe("cashier-1", ActorRole.CASHIER, Broadcast(), cashier)

        order = make_order(DeliveryMethod.DELIVERY)
        for target, role in [
            (OrderStatus.PREPARING, ActorRole.CASHIER),
            (OrderStatus.READY, ActorRole.KITCHEN),
            (OrderStatus.OUT_FOR_DELIVERY, ActorRole.CASHIER),
            (OrderStatus.COMPLETED, ActorRole.ADMIN),
        ]:
            service.transition_status(order.id, target, role)

        assert [s for _, s in _statuses(_drain(cashier))] == [
            "pending",
            "preparing",
            "ready",
            "out_for_delivery",
            "completed",
        ]

    def test_payment_change_is_pushed_as_update(self, service, make_order, registry):
        order = make_order(DeliveryMethod.DELIVERY)
        customer = QueueConnection()
        registry.subscribe("customer-1", ActorRole.CUSTOMER, ForOrder(order.id), customer)

        service.update_payment_status(order.id, PaymentStatus.PAID)

        (message,) = _drain(customer)
        assert message["type"] == "order_updated"
        assert message["payload"]["payment_status"] == "paid"
        assert message["payload"]["status"] == "pending"


class TestSlowSubscriber:
    def test_full_mailbox_does_not_block_the_transition(
        self, service, make_order, registry
    ):
        slow = QueueConnection(maxsize=1)
        healthy = QueueConnection()
        registry.subscribe("slow", ActorRole.KITCHEN, Broadcast(), slow)
        registry.subscribe("healthy", ActorRole.CASHIER, Broadcast(), healthy)

        order = make_order()
        service.transition_status(order.id, OrderStatus.PREPARING, ActorRole.CASHIER)

        assert len(_drain(slow)) == 1
        assert len(_drain(healthy)) == 2
        assert service.get_order(order.id).status == OrderStatus.PREPARING
