"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

Input DTOs only coerce types; business validation (empty orders,
missing delivery address, negative prices) belongs to the service so
every caller gets the same domain errors.

- ``OrderLineDTO``: a single line item (input and cart storage).
- ``CreateOrderDTO``: input for order creation (nested items).
- ``OrderItemOutputDTO``: output for a single line item.
- ``StatusHistoryDTO``: output for a status history record.
- ``OrderOutputDTO``: the order snapshot pushed to subscribers.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderItem, OrderStatusHistory


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class OrderLineDTO(BaseModel):
    """Immutable line item: opaque product reference plus price snapshot."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    name: str = ""
    unit_price: Decimal
    quantity: int


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests."""

    model_config = ConfigDict(frozen=True)

    items: List[OrderLineDTO]
    delivery_method: str = "pickup"
    delivery_address: Optional[str] = None
    payment_method: str = "cash"
    customer_name: str = "Guest"
    customer_email: str = ""
    customer_phone: str = ""
    notes: str = ""
    estimated_time_minutes: Optional[int] = None


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class OrderItemOutputDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal

    @classmethod
    def from_entity(cls, item: OrderItem) -> OrderItemOutputDTO:
        return cls(
            product_id=item.product_id,
            name=item.name,
            unit_price=item.unit_price,
            quantity=item.quantity,
            line_total=item.line_total,
        )


class StatusHistoryDTO(BaseModel):
    """Immutable DTO for order status history records."""

    model_config = ConfigDict(frozen=True)

    old_status: Optional[str]
    new_status: str
    actor_role: str
    notes: str
    created_at: datetime

    @classmethod
    def from_entity(cls, history: OrderStatusHistory) -> StatusHistoryDTO:
        return cls(
            old_status=history.old_status,
            new_status=history.new_status,
            actor_role=history.actor_role,
            notes=history.notes,
            created_at=history.created_at,
        )


class OrderOutputDTO(BaseModel):
    """Immutable order representation used as the real-time payload."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    order_number: str
    status: str
    payment_status: str
    payment_method: str
    delivery_method: str
    delivery_address: str
    customer_name: str
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    total: Decimal
    estimated_time_minutes: int
    time_remaining_minutes: int
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemOutputDTO]

    @classmethod
    def from_entity(
        cls, order: Order, now: Optional[datetime] = None
    ) -> OrderOutputDTO:
        """Build an output DTO from an Order model instance.

        Contact details (email, phone) are left out: the snapshot is
        delivered to customer subscribers as well as staff.
        """
        return cls(
            id=order.id,
            order_number=order.order_number,
            status=order.status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            delivery_method=order.delivery_method,
            delivery_address=order.delivery_address,
            customer_name=order.customer_name,
            subtotal=order.subtotal,
            tax=order.tax,
            delivery_fee=order.delivery_fee,
            total=order.total,
            estimated_time_minutes=order.estimated_time_minutes,
            time_remaining_minutes=order.time_remaining_minutes(now),
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[OrderItemOutputDTO.from_entity(i) for i in order.items.all()],
        )
