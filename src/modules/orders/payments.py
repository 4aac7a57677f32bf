"""Payment gateway boundary.

The order core never talks to a payment processor directly: it records
payment status and, when a paid order is cancelled, asks the configured
gateway for a refund.  ``ORDERS["PAYMENT_GATEWAY"]`` holds the dotted
path of the gateway class.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog
from django.conf import settings
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


class PaymentGatewayError(Exception):
    """The gateway could not complete the request; safe to retry."""


class PaymentGateway(Protocol):
    def refund(self, order: Order, idempotency_key: str) -> str:
        """Reverse the payment of *order* and return the refund reference.

        Repeated calls with the same *idempotency_key* must refund once.
        """
        ...


class LoggingPaymentGateway:
    """Gateway for cash tills and local development: records the refund only."""

    def refund(self, order: Order, idempotency_key: str) -> str:
        reference = f"refund-{order.order_number}"
        logger.info(
            "payment.refund_recorded",
            order_id=str(order.id),
            amount=str(order.total),
            method=order.payment_method,
            reference=reference,
            idempotency_key=idempotency_key,
        )
        return reference


def get_payment_gateway() -> PaymentGateway:
    gateway_class = import_string(settings.ORDERS["PAYMENT_GATEWAY"])
    return gateway_class()
