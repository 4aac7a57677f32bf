"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import DeliveryMethod, PaymentMethod, PaymentStatus
from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class OrderLineSerializer(serializers.Serializer):
    """Validates a single line item."""

    product_id = serializers.CharField(max_length=64)
    name = serializers.CharField(
        max_length=200, required=False, default="", allow_blank=True
    )
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2)
    quantity = serializers.IntegerField()


class CustomerDetailsSerializer(serializers.Serializer):
    """Contact and fulfilment details shared by order creation and checkout."""

    delivery_method = serializers.ChoiceField(
        choices=DeliveryMethod.choices, default=DeliveryMethod.PICKUP
    )
    delivery_address = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default=None
    )
    payment_method = serializers.ChoiceField(
        choices=PaymentMethod.choices, default=PaymentMethod.CASH
    )
    customer_name = serializers.CharField(
        max_length=150, required=False, default="Guest", allow_blank=True
    )
    customer_email = serializers.CharField(
        max_length=254, required=False, default="", allow_blank=True
    )
    customer_phone = serializers.CharField(
        max_length=32, required=False, default="", allow_blank=True
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class CreateOrderSerializer(CustomerDetailsSerializer):
    """Validates the order creation request payload."""

    items = OrderLineSerializer(many=True)
    estimated_time_minutes = serializers.IntegerField(
        required=False, allow_null=True, default=None
    )


class StatusUpdateSerializer(serializers.Serializer):
    # Free text: unknown targets are reported by the state machine.
    status = serializers.CharField(max_length=32)
    notes = serializers.CharField(required=False, default="", allow_blank=True)
    order_number = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentUpdateSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices)


class ItemsUpdateSerializer(serializers.Serializer):
    items = OrderLineSerializer(many=True)


class CartItemSerializer(OrderLineSerializer):
    quantity = serializers.IntegerField(default=1)


class CartQuantitySerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=0)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for order items (price snapshot)."""

    class Meta:
        model = OrderItem
        fields = [
            "product_id",
            "name",
            "unit_price",
            "quantity",
            "line_total",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "old_status",
            "new_status",
            "actor_role",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history (staff view)."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)
    time_remaining_minutes = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "payment_status",
            "payment_method",
            "delivery_method",
            "delivery_address",
            "customer_name",
            "customer_email",
            "customer_phone",
            "notes",
            "subtotal",
            "tax",
            "delivery_fee",
            "total",
            "estimated_time_minutes",
            "time_remaining_minutes",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields

    def get_time_remaining_minutes(self, obj: Order) -> int:
        return obj.time_remaining_minutes()


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    time_remaining_minutes = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "payment_status",
            "delivery_method",
            "customer_name",
            "total",
            "time_remaining_minutes",
            "created_at",
        ]
        read_only_fields = fields

    def get_time_remaining_minutes(self, obj: Order) -> int:
        return obj.time_remaining_minutes()


class OrderTrackingSerializer(serializers.ModelSerializer):
    """Public tracking view: no contact details, no audit trail."""

    items = OrderItemSerializer(many=True, read_only=True)
    time_remaining_minutes = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "payment_status",
            "delivery_method",
            "subtotal",
            "tax",
            "delivery_fee",
            "total",
            "estimated_time_minutes",
            "time_remaining_minutes",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields

    def get_time_remaining_minutes(self, obj: Order) -> int:
        return obj.time_remaining_minutes()


class CartSerializer(serializers.Serializer):
    items = OrderLineSerializer(many=True)
    subtotal = serializers.DecimalField(max_digits=10, decimal_places=2)
    tax = serializers.DecimalField(max_digits=10, decimal_places=2)
    delivery_fee = serializers.DecimalField(max_digits=10, decimal_places=2)
    total = serializers.DecimalField(max_digits=10, decimal_places=2)

