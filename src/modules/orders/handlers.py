"""Event handlers for Orders domain events."""

from __future__ import annotations

from typing import Type

import structlog

from modules.orders.events import ORDER_EVENTS, OrderCreated
from modules.realtime.fanout import NotificationFanOut
from modules.realtime.messages import MessageType, OrderEventMessage
from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class OrderEventBroadcaster(IEventHandler[DomainEvent]):
    """Forwards order events to real-time subscribers.

    Creation goes out as ``order_created``; every later change (status,
    payment, items) as ``order_updated`` with the fresh snapshot.
    """

    def __init__(self, fanout: NotificationFanOut) -> None:
        self._fanout = fanout

    def handle(self, event: DomainEvent) -> None:
        message_type = (
            MessageType.ORDER_CREATED
            if isinstance(event, OrderCreated)
            else MessageType.ORDER_UPDATED
        )
        message = OrderEventMessage(
            type=message_type,
            order_id=str(event.aggregate_id),
            payload=getattr(event, "snapshot", {}),
            timestamp=event.occurred_on,
        )
        delivered = self._fanout.publish(message)
        logger.info(
            "order.event_broadcast",
            event_name=event.event_name,
            order_id=message.order_id,
            delivered=delivered,
        )


def register_order_event_handlers(
    bus: IEventBus, handler: IEventHandler[DomainEvent]
) -> None:
    event_class: Type[DomainEvent]
    for event_class in ORDER_EVENTS:
        bus.subscribe(event_class, handler)
