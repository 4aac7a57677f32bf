"""Event bus contracts.

Aggregates record what happened as ``DomainEvent`` objects; the bus hands
them to every handler subscribed to the event's exact class.  Delivery is
synchronous and in subscription order, so a caller that publishes the
events of one aggregate one after another also delivers them in that
order.
"""

from __future__ import annotations

from typing import Generic, Protocol, Type, TypeVar

from shared.domain.events import DomainEvent

E = TypeVar("E", bound=DomainEvent, contravariant=True)


class IEventHandler(Protocol, Generic[E]):
    def handle(self, event: E) -> None: ...


class IEventBus(Protocol):
    def publish(self, event: DomainEvent) -> None:
        """Deliver *event* to its handlers; handler failures stay inside the bus."""
        ...

    def subscribe(self, event_class: Type[E], handler: IEventHandler[E]) -> None:
        """Register *handler* for *event_class*; registering twice is a no-op."""
        ...

    def unsubscribe(self, event_class: Type[E], handler: IEventHandler[E]) -> None: ...
