"""Session-backed shopping cart.

The cart belongs to the visitor's Django session: nothing is shared
between visitors and nothing is persisted before checkout.  Lines are
stored as plain JSON (prices as strings) and read back as
``OrderLineDTO`` so checkout feeds them straight to ``OrderService``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, List

from modules.orders.dtos import OrderLineDTO
from modules.orders.exceptions import InvalidLineItem
from modules.orders.pricing import OrderTotals, calculate_totals, delivery_fee_for

SESSION_KEY = "cart"


class SessionCart:
    def __init__(self, session: Any) -> None:
        self._session = session

    def items(self) -> List[OrderLineDTO]:
        return [OrderLineDTO(**line) for line in self._session.get(SESSION_KEY, [])]

    def __len__(self) -> int:
        return sum(line.quantity for line in self.items())

    def add(
        self, product_id: str, name: str, unit_price: Decimal, quantity: int = 1
    ) -> OrderLineDTO:
        """Add *quantity* of a product, merging with an existing line."""
        lines = self.items()
        for index, line in enumerate(lines):
            if line.product_id == product_id:
                quantity += line.quantity
                lines.pop(index)
                break
        new_line = OrderLineDTO(
            product_id=product_id, name=name, unit_price=unit_price, quantity=quantity
        )
        calculate_totals([new_line])  # raises InvalidLineItem
        lines.append(new_line)
        self._store(lines)
        return new_line

    def set_quantity(self, product_id: str, quantity: int) -> bool:
        """Change a line's quantity; zero removes the line.

        Returns ``False`` when the product is not in the cart.
        """
        if quantity < 0:
            raise InvalidLineItem("Quantity must not be negative.")
        if quantity == 0:
            return self.remove(product_id)
        lines = self.items()
        for index, line in enumerate(lines):
            if line.product_id == product_id:
                lines[index] = line.model_copy(update={"quantity": quantity})
                self._store(lines)
                return True
        return False

    def remove(self, product_id: str) -> bool:
        lines = self.items()
        kept = [line for line in lines if line.product_id != product_id]
        self._store(kept)
        return len(kept) != len(lines)

    def clear(self) -> None:
        self._session.pop(SESSION_KEY, None)
        self._session.modified = True

    def totals(self, delivery_method: str) -> OrderTotals:
        return calculate_totals(
            self.items(), delivery_fee=delivery_fee_for(delivery_method)
        )

    def _store(self, lines: List[OrderLineDTO]) -> None:
        self._session[SESSION_KEY] = [line.model_dump(mode="json") for line in lines]
        self._session.modified = True
