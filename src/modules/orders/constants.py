"""Order domain constants.

Defines the status / payment choices and the order state machine.
"""

from decimal import Decimal

from django.db import models

from modules.core.permissions import ActorRole


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PREPARING = "preparing", "Preparing"
    READY = "ready", "Ready"
    OUT_FOR_DELIVERY = "out_for_delivery", "Out for delivery"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class PaymentStatus(models.TextChoices):
    UNPAID = "unpaid", "Unpaid"
    PAID = "paid", "Paid"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"


class DeliveryMethod(models.TextChoices):
    DELIVERY = "delivery", "Delivery"
    PICKUP = "pickup", "Pickup"


class PaymentMethod(models.TextChoices):
    CASH = "cash", "Cash"
    CARD = "card", "Card"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

# Edges out of READY depend on how the order leaves the restaurant.
DELIVERY_ONLY_TARGETS: set[str] = {OrderStatus.OUT_FOR_DELIVERY}
READY_COMPLETION_METHOD = DeliveryMethod.PICKUP

TERMINAL_STATES: set[str] = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}

TRANSITION_ROLES: dict[str, set[str]] = {
    OrderStatus.PREPARING: {ActorRole.CASHIER, ActorRole.ADMIN},
    OrderStatus.READY: {ActorRole.CASHIER, ActorRole.ADMIN, ActorRole.KITCHEN},
    OrderStatus.OUT_FOR_DELIVERY: {ActorRole.CASHIER, ActorRole.ADMIN},
    OrderStatus.COMPLETED: {ActorRole.CASHIER, ActorRole.ADMIN},
    OrderStatus.CANCELLED: {ActorRole.CASHIER, ActorRole.ADMIN},
}

# A customer may cancel their own order only before the kitchen starts on it.
CUSTOMER_CANCELLABLE_STATES: set[str] = {OrderStatus.PENDING}

TAX_RATE = Decimal("0.08")

DEFAULT_ESTIMATED_TIME_MINUTES = 30

ORDER_NUMBER_MAX_RETRIES = 5
