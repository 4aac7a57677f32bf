"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.
Write operations are wrapped in ``transaction.atomic()`` so the Order
aggregate (Order + OrderItems) is persisted atomically.

Concurrency control on mutations uses ``select_for_update()`` on the
order row; the service pairs it with the in-process per-order lock.
Database failures surface as ``StoreUnavailable``.
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.db.models import QuerySet

from modules.orders.exceptions import StoreUnavailable
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _store_errors(func: F) -> F:
    """Translate backend failures into ``StoreUnavailable``."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except DatabaseError as exc:
            logger.error(
                "order.store_unavailable", operation=func.__name__, error=str(exc)
            )
            raise StoreUnavailable("Order store is unavailable.") from exc

    return wrapper  # type: ignore[return-value]


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    def queryset(self) -> QuerySet[Order]:
        """Base queryset with items and history eager-loaded (no N+1)."""
        return Order.objects.prefetch_related("items", "status_history")

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @_store_errors
    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically."""
        items = list(data.pop("items", []))
        order = Order(**data)
        order.save()
        self._insert_items(order, items)

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(items),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @_store_errors
    def get(self, id: str) -> Optional[Order]:
        """Retrieve an order; ``None`` for non-existent or invalid IDs."""
        try:
            return self.queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    @_store_errors
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Must be called inside ``transaction.atomic()``.  Returns ``None``
        for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.select_for_update()
                .prefetch_related("items", "status_history")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    @_store_errors
    def get_by_order_number(self, order_number: str) -> Optional[Order]:
        return self.queryset().filter(order_number=order_number).first()

    @_store_errors
    def query(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        """List orders with optional filters.

        Supported filter keys are plain ORM lookups, e.g. ``status``,
        ``payment_status``, ``delivery_method``, ``created_at__range``.
        """
        queryset = self.queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @_store_errors
    def save(self, entity: Order) -> Order:
        """Persist (create or update) an order."""
        entity.save()
        logger.debug("order.saved", order_id=str(entity.id))
        return entity

    @_store_errors
    @transaction.atomic
    def replace_items(self, order: Order, items: Iterable[Any]) -> None:
        OrderItem.objects.filter(order=order).delete()
        self._insert_items(order, list(items))
        # Drop the stale prefetch cache so readers see the new lines.
        prefetched = getattr(order, "_prefetched_objects_cache", None)
        if prefetched:
            prefetched.pop("items", None)

    @_store_errors
    def add_history(
        self,
        order_id: UUID,
        status: str,
        actor_role: str,
        notes: str = "",
        old_status: Optional[str] = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            actor_role=actor_role,
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
        )
        return history

    @staticmethod
    def _insert_items(order: Order, items: List[Any]) -> None:
        for position, line in enumerate(items):
            OrderItem(
                order=order,
                position=position,
                product_id=line.product_id,
                name=line.name,
                unit_price=line.unit_price,
                quantity=line.quantity,
            ).save()
