"""Notification fan-out.

Delivers each order event to every matching subscriber.  Delivery is
per-subscriber: one failing connection is counted and skipped, never
propagated, and is dropped after ``MAX_CONSECUTIVE_FAILURES`` failures in
a row.
"""

from __future__ import annotations

from typing import Optional

import structlog
from django.conf import settings

from modules.realtime.exceptions import DeliveryFailed
from modules.realtime.messages import OrderEventMessage
from modules.realtime.registry import ChannelRegistry, Subscription

logger = structlog.get_logger(__name__)


class NotificationFanOut:
    def __init__(
        self,
        registry: ChannelRegistry,
        max_consecutive_failures: Optional[int] = None,
    ) -> None:
        self._registry = registry
        if max_consecutive_failures is None:
            max_consecutive_failures = settings.REALTIME["MAX_CONSECUTIVE_FAILURES"]
        self._max_failures = max_consecutive_failures

    @property
    def registry(self) -> ChannelRegistry:
        return self._registry

    def publish(self, message: OrderEventMessage) -> int:
        """Send *message* to its subscribers; returns how many accepted it."""
        wire = message.to_wire()
        delivered = 0
        for subscription in self._registry.subscriptions_for(message):
            try:
                subscription.connection.send(wire)
            except DeliveryFailed as exc:
                self._on_failure(subscription, message, exc)
            else:
                self._registry.record_success(subscription.subscriber_id)
                delivered += 1

        logger.debug(
            "realtime.published",
            message_type=str(message.type),
            order_id=message.order_id,
            delivered=delivered,
        )
        return delivered

    def _on_failure(
        self, subscription: Subscription, message: OrderEventMessage, exc: DeliveryFailed
    ) -> None:
        subscriber_id = subscription.subscriber_id
        failures = self._registry.record_failure(subscriber_id)
        log = logger.bind(
            subscriber_id=subscriber_id,
            order_id=message.order_id,
            consecutive_failures=failures,
        )
        log.warning("realtime.delivery_dropped", error=str(exc))
        if failures >= self._max_failures:
            self._registry.unsubscribe(subscriber_id)
            # Ends the stream; the client reconnects and reloads full state.
            subscription.connection.close()
            log.warning("realtime.subscriber_dropped")
