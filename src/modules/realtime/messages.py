"""Wire format of messages pushed to subscribers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from django.db import models


class MessageType(models.TextChoices):
    ORDER_CREATED = "order_created", "Order created"
    ORDER_UPDATED = "order_updated", "Order updated"


@dataclass(frozen=True)
class OrderEventMessage:
    """One order event as seen by subscribers.

    ``payload`` is the full JSON-ready order snapshot, so clients can
    replace their copy instead of patching it.
    """

    type: str
    order_id: str
    payload: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_wire(self) -> Dict[str, Any]:
        return {
            "type": str(self.type),
            "orderId": self.order_id,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }
