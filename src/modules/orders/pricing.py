"""Cart / order total calculation.

Pure functions: no I/O, no hidden state.  Money is handled as
``Decimal`` quantized to cents with ROUND_HALF_UP (half away from zero),
so the same items always produce the same totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Protocol

from django.conf import settings

from modules.orders.constants import TAX_RATE, DeliveryMethod
from modules.orders.exceptions import InvalidLineItem

CENT = Decimal("0.01")


class PricedLine(Protocol):
    unit_price: Any
    quantity: Any


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    total: Decimal

    def as_dict(self) -> dict[str, Decimal]:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "delivery_fee": self.delivery_fee,
            "total": self.total,
        }


def to_money(value: Any) -> Decimal:
    """Convert *value* to a cent-quantized ``Decimal``.

    Floats go through ``str`` so ``10.1`` becomes ``Decimal("10.1")``
    rather than its binary expansion.
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidLineItem(f"Invalid monetary amount: {value!r}.") from exc
    if not amount.is_finite():
        raise InvalidLineItem(f"Invalid monetary amount: {value!r}.")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _validate_line(index: int, line: PricedLine) -> tuple[Decimal, int]:
    quantity = line.quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidLineItem(f"Item {index}: quantity must be an integer.")
    if quantity < 1:
        raise InvalidLineItem(f"Item {index}: quantity must be at least 1.")
    if isinstance(line.unit_price, float):
        unit_price = Decimal(str(line.unit_price))
    else:
        try:
            unit_price = Decimal(line.unit_price)
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise InvalidLineItem(f"Item {index}: invalid unit price.") from exc
    if not unit_price.is_finite() or unit_price < 0:
        raise InvalidLineItem(f"Item {index}: unit price must not be negative.")
    if unit_price != unit_price.quantize(CENT):
        raise InvalidLineItem(f"Item {index}: unit price must be in whole cents.")
    return unit_price, quantity


def calculate_totals(
    items: Iterable[PricedLine], delivery_fee: Any = Decimal("0.00")
) -> OrderTotals:
    """Return subtotal, tax, delivery fee and total for *items*.

    ``tax = round(subtotal * TAX_RATE, 2)`` and
    ``total = subtotal + tax + delivery_fee``.  Each line is multiplied
    exactly before the subtotal is rounded once.

    Raises:
        InvalidLineItem: negative or sub-cent price, or non-positive quantity.
    """
    raw_subtotal = Decimal("0")
    for index, line in enumerate(items):
        unit_price, quantity = _validate_line(index, line)
        raw_subtotal += unit_price * quantity

    fee = to_money(delivery_fee)
    if fee < 0:
        raise InvalidLineItem("Delivery fee must not be negative.")

    subtotal = raw_subtotal.quantize(CENT, rounding=ROUND_HALF_UP)
    tax = (subtotal * TAX_RATE).quantize(CENT, rounding=ROUND_HALF_UP)
    total = subtotal + tax + fee
    return OrderTotals(subtotal=subtotal, tax=tax, delivery_fee=fee, total=total)


def delivery_fee_for(delivery_method: str) -> Decimal:
    """Flat fee for delivery orders; pickup orders pay nothing."""
    if delivery_method == DeliveryMethod.DELIVERY:
        return to_money(settings.ORDERS["DELIVERY_FEE"])
    return Decimal("0.00")
