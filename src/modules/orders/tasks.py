"""Asynchronous tasks of the orders module."""

import structlog
from celery import shared_task

from modules.orders.exceptions import StoreUnavailable
from modules.orders.payments import PaymentGatewayError, get_payment_gateway
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService

logger = structlog.get_logger(__name__)


@shared_task(
    name="orders.refund_payment",
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(PaymentGatewayError, StoreUnavailable),
    retry_backoff=True,
)
def refund_payment(self, order_id: str) -> dict:
    """Refund a cancelled order that had been paid.

    Orders whose payment is no longer ``paid`` (already refunded, or
    changed by staff meanwhile) are skipped, so duplicate deliveries and
    concurrent workers refund once.  A retry after a failed status write
    repeats the gateway call with the same idempotency key.
    """
    log = logger.bind(order_id=order_id, task_id=self.request.id)
    service = OrderService(order_repository=OrderDjangoRepository())
    reference = service.refund_payment(order_id, get_payment_gateway())

    if reference is None:
        return {"status": "skipped", "order_id": order_id}
    log.info("payment.refund_task_done", reference=reference)
    return {"status": "refunded", "order_id": order_id, "reference": reference}
