"""Subscription registry for the real-time push channel.

Tracks who listens to what:

- staff (cashier, kitchen, admin) may subscribe to every order
  (``Broadcast``) or to a single order (``ForOrder``);
- customers may only subscribe to one order (``ForOrder``).

The registry is safe to use from many request threads at once.  A
subscriber id maps to at most one subscription; subscribing again with
the same id replaces the previous entry.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Union

import structlog

from modules.core.permissions import STAFF_ROLES, ActorRole
from modules.realtime.exceptions import InvalidSubscription
from modules.realtime.messages import OrderEventMessage

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Broadcast:
    """Every order event."""


@dataclass(frozen=True)
class ForOrder:
    """Events of one order only."""

    order_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "order_id", str(self.order_id))


SubscriptionScope = Union[Broadcast, ForOrder]


class Connection(Protocol):
    def send(self, message: Dict[str, Any]) -> None: ...

    def add_close_callback(self, callback: Callable[[], None]) -> None: ...

    def close(self) -> None: ...


@dataclass
class Subscription:
    subscriber_id: str
    role: ActorRole
    scope: SubscriptionScope
    connection: Connection
    consecutive_failures: int = field(default=0)

    def matches(self, message: OrderEventMessage) -> bool:
        if isinstance(self.scope, Broadcast):
            return True
        return self.scope.order_id == message.order_id


class ChannelRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, Subscription] = {}

    def subscribe(
        self,
        subscriber_id: str,
        role: str,
        scope: SubscriptionScope,
        connection: Connection,
    ) -> Subscription:
        """Register *connection* to receive messages matching *scope*.

        Raises:
            InvalidSubscription: unknown role, unknown scope, or a
                customer asking for a broadcast subscription.
        """
        try:
            role = ActorRole(role)
        except ValueError as exc:
            raise InvalidSubscription(f"Unknown role: {role}.") from exc
        if not isinstance(scope, (Broadcast, ForOrder)):
            raise InvalidSubscription(f"Unknown subscription scope: {scope!r}.")
        if isinstance(scope, Broadcast) and role not in STAFF_ROLES:
            raise InvalidSubscription("Customers may only follow a single order.")

        subscription = Subscription(
            subscriber_id=subscriber_id, role=role, scope=scope, connection=connection
        )
        with self._lock:
            previous = self._subscriptions.get(subscriber_id)
            self._subscriptions[subscriber_id] = subscription
        replaced = previous is not None
        if replaced and previous.connection is not connection:
            previous.connection.close()

        connection.add_close_callback(
            lambda: self._discard(subscriber_id, connection, reason="closed")
        )
        logger.info(
            "realtime.subscribed",
            subscriber_id=subscriber_id,
            role=role,
            scope=_describe(scope),
            replaced=replaced,
        )
        return subscription

    def unsubscribe(self, subscriber_id: str) -> bool:
        """Remove a subscriber; returns ``False`` if it was not registered."""
        with self._lock:
            removed = self._subscriptions.pop(subscriber_id, None)
        if removed is not None:
            logger.info("realtime.unsubscribed", subscriber_id=subscriber_id)
        return removed is not None

    def subscribers_for(self, message: OrderEventMessage) -> Set[str]:
        """Ids of every subscriber that must receive *message*."""
        return {s.subscriber_id for s in self.subscriptions_for(message)}

    def subscriptions_for(self, message: OrderEventMessage) -> List[Subscription]:
        with self._lock:
            return [s for s in self._subscriptions.values() if s.matches(message)]

    def get(self, subscriber_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(subscriber_id)

    def record_failure(self, subscriber_id: str) -> int:
        """Count a failed delivery; returns the consecutive failure count."""
        with self._lock:
            subscription = self._subscriptions.get(subscriber_id)
            if subscription is None:
                return 0
            subscription.consecutive_failures += 1
            return subscription.consecutive_failures

    def record_success(self, subscriber_id: str) -> None:
        with self._lock:
            subscription = self._subscriptions.get(subscriber_id)
            if subscription is not None:
                subscription.consecutive_failures = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _discard(self, subscriber_id: str, connection: Connection, reason: str) -> None:
        # A replaced subscription's old connection must not remove its successor.
        with self._lock:
            current = self._subscriptions.get(subscriber_id)
            if current is None or current.connection is not connection:
                return
            del self._subscriptions[subscriber_id]
        logger.info("realtime.unsubscribed", subscriber_id=subscriber_id, reason=reason)


def _describe(scope: SubscriptionScope) -> str:
    if isinstance(scope, ForOrder):
        return f"order:{scope.order_id}"
    return "broadcast"
