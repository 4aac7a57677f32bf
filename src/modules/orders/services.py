"""Order service layer (Use Cases).

Orchestrates order creation, status transitions, payment status and
line-item edits.  Every mutation of an existing order runs under the
per-order lock and a ``transaction.atomic()`` block with the row locked
(``SELECT FOR UPDATE``); its domain events are published after commit
while the per-order lock is still held, so each order's events reach
subscribers in the order the mutations were applied.

Business rules enforced:
- Status changes follow the state machine (``Order.can_transition_to``).
- Each transition is gated by the acting role; customers may only cancel
  their own pending order, proven by its order number.
- Re-applying the current status of a live order is a silent no-op.
- Line items may only change while the order is pending.
- A cancelled order can never be marked paid.
- A paid order is refunded at most once.
- History is recorded on every status change.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction

from modules.core.permissions import ActorRole
from modules.orders.constants import (
    CUSTOMER_CANCELLABLE_STATES,
    TRANSITION_ROLES,
    DeliveryMethod,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.dtos import OrderOutputDTO
from modules.orders.events import (
    OrderCreated,
    OrderItemsChanged,
    OrderPaymentStatusChanged,
    OrderStatusChanged,
)
from modules.orders.exceptions import (
    InvalidOrderData,
    InvalidTransition,
    ItemsLocked,
    OrderNotFound,
    TransitionNotPermitted,
)
from modules.orders.locks import OrderLockRegistry, order_locks
from modules.orders.pricing import calculate_totals, delivery_fee_for
from shared.infrastructure.bus import event_bus as default_event_bus

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderDTO, OrderLineDTO
    from modules.orders.models import Order
    from modules.orders.payments import PaymentGateway
    from modules.orders.repositories.interfaces import IOrderRepository
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)

SYSTEM_ACTOR = "system"


class OrderService:
    """Application service for Order use-cases.

    Receives the repository via constructor injection (DIP); the event
    bus and lock registry default to the process-wide instances.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        event_bus: Optional[IEventBus] = None,
        locks: Optional[OrderLockRegistry] = None,
    ) -> None:
        self._order_repo = order_repository
        self._event_bus = event_bus if event_bus is not None else default_event_bus
        self._locks = locks if locks is not None else order_locks

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Create a pending, unpaid order and announce it.

        Raises:
            InvalidOrderData: no items, unknown delivery/payment method,
                delivery without an address, or a bad time estimate.
            InvalidLineItem: a line has a negative price or quantity < 1.
            StoreUnavailable: the store failed; nothing was persisted.
        """
        log = logger.bind(
            delivery_method=dto.delivery_method, item_count=len(dto.items)
        )
        log.info("order.creation_started")

        if not dto.items:
            raise InvalidOrderData("Order must contain at least one item.")
        if dto.delivery_method not in DeliveryMethod.values:
            raise InvalidOrderData(f"Unknown delivery method: {dto.delivery_method}.")
        if dto.payment_method not in PaymentMethod.values:
            raise InvalidOrderData(f"Unknown payment method: {dto.payment_method}.")
        address = (dto.delivery_address or "").strip()
        if dto.delivery_method == DeliveryMethod.DELIVERY and not address:
            raise InvalidOrderData("Delivery orders require a delivery address.")

        estimated = dto.estimated_time_minutes
        if estimated is None:
            estimated = settings.ORDERS["DEFAULT_ESTIMATED_TIME_MINUTES"]
        if estimated < 1:
            raise InvalidOrderData("Estimated time must be at least one minute.")

        totals = calculate_totals(
            dto.items, delivery_fee=delivery_fee_for(dto.delivery_method)
        )

        with transaction.atomic():
            order = self._order_repo.create(
                {
                    "items": dto.items,
                    "delivery_method": dto.delivery_method,
                    "delivery_address": address,
                    "payment_method": dto.payment_method,
                    "customer_name": dto.customer_name or "Guest",
                    "customer_email": dto.customer_email,
                    "customer_phone": dto.customer_phone,
                    "notes": dto.notes,
                    "estimated_time_minutes": estimated,
                    **totals.as_dict(),
                }
            )
            self._order_repo.add_history(
                order_id=order.id,
                status=OrderStatus.PENDING,
                actor_role=ActorRole.CUSTOMER,
                notes="Order created",
            )
            order.add_domain_event(
                OrderCreated(aggregate_id=order.id, snapshot=self._snapshot(order))
            )

        log.info(
            "order.created",
            order_id=str(order.id),
            order_number=order.order_number,
            total=str(order.total),
        )
        with self._locks.hold(order.id):
            self._dispatch(order)
        return order

    def transition_status(
        self,
        order_id: UUID | str,
        target_status: str,
        actor_role: str,
        customer_reference: Optional[str] = None,
        notes: str = "",
    ) -> Order:
        """Move an order along the state machine on behalf of *actor_role*.

        Raises:
            OrderNotFound: order does not exist.
            InvalidTransition: not an edge from the current status
                (terminal orders admit none).
            TransitionNotPermitted: the role may not take this edge.
        """
        role = self._coerce_role(actor_role)
        log = logger.bind(
            order_id=str(order_id), target_status=target_status, actor_role=role
        )

        with self._locks.hold(order_id):
            with transaction.atomic():
                order = self._lock_order(order_id)
                log = log.bind(current_status=order.status)

                if order.is_terminal:
                    log.warning("order.invalid_transition", reason="terminal")
                    raise InvalidTransition(
                        f"Order {order.order_number} is {order.status}; "
                        f"no further transitions are allowed."
                    )
                if order.status == target_status:
                    log.info("order.transition_noop")
                    return order
                if not order.can_transition_to(target_status):
                    log.warning("order.invalid_transition")
                    raise InvalidTransition(
                        f"Cannot transition from {order.status} to {target_status}."
                    )
                self._authorize(order, target_status, role, customer_reference, log)

                old_status = order.status
                order.status = target_status
                self._order_repo.save(order)
                self._order_repo.add_history(
                    order_id=order.id,
                    status=target_status,
                    actor_role=role,
                    notes=notes,
                    old_status=old_status,
                )
                order.add_domain_event(
                    OrderStatusChanged(
                        aggregate_id=order.id,
                        old_status=old_status,
                        new_status=target_status,
                        actor_role=role,
                        snapshot=self._snapshot(order),
                    )
                )

            log.info("order.status_updated", old_status=old_status)
            self._dispatch(order)

        if target_status == OrderStatus.CANCELLED:
            self._on_order_cancelled(order)
        return order

    def update_payment_status(
        self, order_id: UUID | str, new_payment_status: str
    ) -> Order:
        """Record a payment status change.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderData: unknown payment status value.
            InvalidTransition: marking a cancelled order as paid.
        """
        if new_payment_status not in PaymentStatus.values:
            raise InvalidOrderData(f"Unknown payment status: {new_payment_status}.")
        log = logger.bind(order_id=str(order_id), payment_status=new_payment_status)

        with self._locks.hold(order_id):
            with transaction.atomic():
                order = self._lock_order(order_id)
                if order.payment_status == new_payment_status:
                    log.info("order.payment_noop")
                    return order
                if (
                    new_payment_status == PaymentStatus.PAID
                    and order.status == OrderStatus.CANCELLED
                ):
                    log.warning("order.payment_rejected", status=order.status)
                    raise InvalidTransition("A cancelled order cannot be marked paid.")

                old_payment_status = order.payment_status
                order.payment_status = new_payment_status
                self._order_repo.save(order)
                order.add_domain_event(
                    OrderPaymentStatusChanged(
                        aggregate_id=order.id,
                        old_payment_status=old_payment_status,
                        new_payment_status=new_payment_status,
                        snapshot=self._snapshot(order),
                    )
                )

            log.info("order.payment_updated", old_payment_status=old_payment_status)
            self._dispatch(order)
        return order

    def refund_payment(
        self, order_id: UUID | str, gateway: PaymentGateway
    ) -> Optional[str]:
        """Refund a paid order and mark it ``refunded``.

        The paid check, the gateway call and the status write happen under
        the order's lock, so concurrent or redelivered refunds reach the
        gateway once.  The gateway gets an idempotency key derived from the
        order id; a retry after a failed write reuses it.

        Returns the refund reference, or ``None`` when the order is not paid.

        Raises:
            OrderNotFound: order does not exist.
            PaymentGatewayError: the gateway failed; nothing was written.
        """
        log = logger.bind(order_id=str(order_id))

        with self._locks.hold(order_id):
            with transaction.atomic():
                order = self._lock_order(order_id)
                if order.payment_status != PaymentStatus.PAID:
                    log.info("payment.refund_skipped", payment_status=order.payment_status)
                    return None

                reference = gateway.refund(order, idempotency_key=f"refund:{order.id}")
                order.payment_status = PaymentStatus.REFUNDED
                self._order_repo.save(order)
                order.add_domain_event(
                    OrderPaymentStatusChanged(
                        aggregate_id=order.id,
                        old_payment_status=PaymentStatus.PAID,
                        new_payment_status=PaymentStatus.REFUNDED,
                        snapshot=self._snapshot(order),
                    )
                )

            log.info("payment.refunded", reference=reference)
            self._dispatch(order)
        return reference

    def update_items(
        self, order_id: UUID | str, items: Sequence[OrderLineDTO]
    ) -> Order:
        """Replace the line items of a pending order and recompute totals.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderData: empty item list.
            InvalidLineItem: a line has a negative price or quantity < 1.
            ItemsLocked: the order is past ``pending``.
        """
        if not items:
            raise InvalidOrderData("Order must contain at least one item.")
        log = logger.bind(order_id=str(order_id), item_count=len(items))

        with self._locks.hold(order_id):
            with transaction.atomic():
                order = self._lock_order(order_id)
                if order.status != OrderStatus.PENDING:
                    log.warning("order.items_locked", status=order.status)
                    raise ItemsLocked(
                        f"Items of order {order.order_number} can no longer change "
                        f"(status {order.status})."
                    )
                totals = calculate_totals(items, delivery_fee=order.delivery_fee)
                self._order_repo.replace_items(order, items)
                for field, value in totals.as_dict().items():
                    setattr(order, field, value)
                self._order_repo.save(order)
                order.add_domain_event(
                    OrderItemsChanged(
                        aggregate_id=order.id, snapshot=self._snapshot(order)
                    )
                )

            log.info("order.items_updated", total=str(order.total))
            self._dispatch(order)
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: UUID | str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def get_by_order_number(self, order_number: str) -> Order:
        order = self._order_repo.get_by_order_number(order_number)
        if not order:
            raise OrderNotFound(f"Order {order_number} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        """Return a list of orders, optionally filtered."""
        return self._order_repo.query(filters)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_order(self, order_id: UUID | str) -> Order:
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    @staticmethod
    def _coerce_role(actor_role: str) -> ActorRole:
        try:
            return ActorRole(actor_role)
        except ValueError as exc:
            raise TransitionNotPermitted(f"Unknown role: {actor_role}.") from exc

    @staticmethod
    def _authorize(
        order: Order,
        target_status: str,
        role: ActorRole,
        customer_reference: Optional[str],
        log: Any,
    ) -> None:
        if role in TRANSITION_ROLES.get(target_status, set()):
            return
        if target_status == OrderStatus.CANCELLED and role == ActorRole.CUSTOMER:
            if order.status not in CUSTOMER_CANCELLABLE_STATES:
                log.warning("order.transition_denied", reason="not_pending")
                raise TransitionNotPermitted(
                    "Orders can only be cancelled by the customer while pending."
                )
            if not customer_reference or customer_reference != order.order_number:
                log.warning("order.transition_denied", reason="reference_mismatch")
                raise TransitionNotPermitted("Order reference does not match.")
            return
        log.warning("order.transition_denied", reason="role")
        raise TransitionNotPermitted(
            f"Role {role} may not move an order to {target_status}."
        )

    @staticmethod
    def _snapshot(order: Order) -> Dict[str, Any]:
        return OrderOutputDTO.from_entity(order).model_dump(mode="json")

    def _dispatch(self, order: Order) -> None:
        """Publish the events collected on *order*.  Caller holds its lock."""
        for event in order.pull_domain_events():
            self._event_bus.publish(event)

    def _on_order_cancelled(self, order: Order) -> None:
        """Hook: fired after an order is cancelled.

        Paid orders get their payment reversed asynchronously once the
        cancellation is committed.
        """
        if order.payment_status != PaymentStatus.PAID:
            return
        from modules.orders.tasks import refund_payment

        order_id = str(order.id)
        logger.info("order.refund_scheduled", order_id=order_id)
        transaction.on_commit(lambda: refund_payment.delay(order_id))
