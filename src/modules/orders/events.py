"""Domain events for the Orders bounded context.

Every event carries ``snapshot``: the JSON-ready order representation
taken right after the mutation was persisted.  Subscribers (the
real-time fan-out) forward it without reading the store again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is created."""

    snapshot: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an order status changes."""

    old_status: str = ""
    new_status: str = ""
    actor_role: str = ""
    snapshot: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OrderPaymentStatusChanged(DomainEvent):
    """Raised when an order payment status changes."""

    old_payment_status: str = ""
    new_payment_status: str = ""
    snapshot: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OrderItemsChanged(DomainEvent):
    """Raised when the line items of a pending order are replaced."""

    snapshot: Dict[str, Any] = field(default_factory=dict)


ORDER_EVENTS = (
    OrderCreated,
    OrderStatusChanged,
    OrderPaymentStatusChanged,
    OrderItemsChanged,
)
