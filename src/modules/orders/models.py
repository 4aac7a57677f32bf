"""Order, OrderItem, and OrderStatusHistory models.

Business rules implemented:
- Status changes follow the state machine in ``constants`` (enforced at
  the service layer through ``Order.can_transition_to``).
- Each status change generates an append-only history record.
- Order number is a human-readable identifier (``BAK-YYYYMMDD-XXXXXX``)
  generated on first save; the UUIDv7 ``id`` is the internal key.
- OrderItem snapshots the name and price at checkout time.
- Money totals are stored, recomputed by the service whenever items change.
- Orders are never deleted; terminal orders stay for history.
"""

from __future__ import annotations

import math
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import structlog
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import IntegrityError, models, transaction
from django.utils import timezone

from modules.core.models import BaseModel
from modules.core.permissions import ActorRole
from modules.orders.constants import (
    DEFAULT_ESTIMATED_TIME_MINUTES,
    DELIVERY_ONLY_TARGETS,
    ORDER_NUMBER_MAX_RETRIES,
    READY_COMPLETION_METHOD,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    DeliveryMethod,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.exceptions import StoreUnavailable
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)

_MONEY = {"max_digits": 10, "decimal_places": 2, "default": Decimal("0.00")}


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``order_number`` doubles as the customer's proof of ownership: a
    customer may cancel a pending order only by presenting it.
    ``time_remaining_minutes`` is derived on read from ``created_at`` and
    ``estimated_time_minutes``; it is never stored.
    """

    order_number: models.CharField = models.CharField(
        max_length=32, unique=True, editable=False
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
    )
    payment_method: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CASH,
    )
    delivery_method: models.CharField = models.CharField(
        max_length=20,
        choices=DeliveryMethod.choices,
        default=DeliveryMethod.PICKUP,
    )
    delivery_address: models.TextField = models.TextField(blank=True, default="")
    customer_name: models.CharField = models.CharField(
        max_length=150, blank=True, default="Guest"
    )
    customer_email: models.CharField = models.CharField(
        max_length=254, blank=True, default=""
    )
    customer_phone: models.CharField = models.CharField(
        max_length=32, blank=True, default=""
    )
    notes: models.TextField = models.TextField(blank=True, default="")
    subtotal: models.DecimalField = models.DecimalField(**_MONEY)
    tax: models.DecimalField = models.DecimalField(**_MONEY)
    delivery_fee: models.DecimalField = models.DecimalField(**_MONEY)
    total: models.DecimalField = models.DecimalField(**_MONEY)
    estimated_time_minutes: models.PositiveIntegerField = (
        models.PositiveIntegerField(default=DEFAULT_ESTIMATED_TIME_MINUTES)
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is in a terminal state."""
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether *new_status* is an edge out of the current status.

        Leaving ``ready`` depends on the delivery method: delivery orders
        go out for delivery, pickup orders complete directly.
        """
        if new_status not in VALID_TRANSITIONS.get(self.status, set()):
            return False
        if new_status in DELIVERY_ONLY_TARGETS:
            return self.delivery_method == DeliveryMethod.DELIVERY
        if self.status == OrderStatus.READY and new_status == OrderStatus.COMPLETED:
            return self.delivery_method == READY_COMPLETION_METHOD
        return True

    def time_remaining_minutes(self, now: Optional[datetime] = None) -> int:
        """Minutes left on the estimate; zero once terminal or overdue."""
        if self.is_terminal or self.created_at is None:
            return 0
        now = now or timezone.now()
        elapsed = max(0.0, (now - self.created_at).total_seconds() / 60)
        return max(0, self.estimated_time_minutes - math.floor(elapsed))

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``BAK-YYYYMMDD-XXXXXX``."""
        prefix = settings.ORDERS["ORDER_NUMBER_PREFIX"]
        now = timezone.localtime()
        suffix = secrets.token_hex(3).upper()
        return f"{prefix}-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.order_number:
            super().save(*args, **kwargs)
            return
        # The unique index decides; a colliding insert only rolls back its savepoint.
        for attempt in range(1, ORDER_NUMBER_MAX_RETRIES + 1):
            candidate = self.generate_order_number()
            self.order_number = candidate
            try:
                with transaction.atomic():
                    super().save(*args, **kwargs)
                return
            except IntegrityError:
                self.order_number = ""
                if not Order.objects.filter(order_number=candidate).exists():
                    raise
                logger.warning("order.number_collision", attempt=attempt)
        raise StoreUnavailable(
            f"Could not allocate a unique order number after "
            f"{ORDER_NUMBER_MAX_RETRIES} attempts."
        )

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Line item snapshot.

    ``product_id`` is an opaque catalog reference; ``name`` and
    ``unit_price`` are copied at checkout and never follow later menu
    changes.  ``line_total`` is always ``quantity * unit_price``.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    position: models.PositiveSmallIntegerField = models.PositiveSmallIntegerField(
        default=0
    )
    product_id: models.CharField = models.CharField(max_length=64)
    name: models.CharField = models.CharField(max_length=200, blank=True, default="")
    unit_price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    line_total: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["position"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.line_total = Decimal(self.quantity) * Decimal(self.unit_price)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name or self.product_id} x{self.quantity}"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    ``old_status`` is empty for the creation record.  ``actor_role`` is the
    role that requested the change (``system`` for automatic changes).
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    actor_role: models.CharField = models.CharField(
        max_length=20, blank=True, default=ActorRole.CUSTOMER
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} : {self.old_status} -> {self.new_status}"
