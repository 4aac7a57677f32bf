"""Unit tests for order total calculation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.orders.dtos import OrderLineDTO
from modules.orders.exceptions import InvalidLineItem, InvalidOrderData
from modules.orders.pricing import calculate_totals, delivery_fee_for, to_money

pytestmark = pytest.mark.unit


def _line(price: str, quantity: int) -> OrderLineDTO:
    return OrderLineDTO(product_id="X", unit_price=Decimal(price), quantity=quantity)


class TestCalculateTotals:
    def test_reference_order(self, baklava_lines):
        totals = calculate_totals(baklava_lines)

        assert totals.subtotal == Decimal("25.50")
        assert totals.tax == Decimal("2.04")
        assert totals.delivery_fee == Decimal("0.00")
        assert totals.total == Decimal("27.54")

    def test_delivery_fee_added_to_total_not_taxed(self, baklava_lines):
        totals = calculate_totals(baklava_lines, delivery_fee=Decimal("2.99"))

        assert totals.tax == Decimal("2.04")
        assert totals.total == Decimal("30.53")

    def test_empty_items_yield_zero(self):
        totals = calculate_totals([])

        assert totals.subtotal == Decimal("0.00")
        assert totals.total == Decimal("0.00")

    def test_tax_rounds_to_nearest_cent(self):
        assert calculate_totals([_line("0.63", 1)]).tax == Decimal("0.05")  # 0.0504
        assert calculate_totals([_line("0.69", 1)]).tax == Decimal("0.06")  # 0.0552
        assert calculate_totals([_line("6.25", 1)]).tax == Decimal("0.50")

    @pytest.mark.parametrize("price", ["0.125", "0.3125", "4.999"])
    def test_sub_cent_price_rejected(self, price):
        with pytest.raises(InvalidLineItem, match="whole cents"):
            calculate_totals([_line("1.00", 1), _line(price, 2)])

    def test_trailing_zero_digits_are_whole_cents(self):
        assert calculate_totals([_line("4.500", 2)]).subtotal == Decimal("9.00")

    def test_total_identity_holds(self):
        items = [_line("3.33", 3), _line("0.99", 7), _line("12.10", 1)]
        totals = calculate_totals(items, delivery_fee="2.99")

        assert totals.total == totals.subtotal + totals.tax + totals.delivery_fee
        assert totals.subtotal == Decimal("29.02")

    def test_zero_price_item_is_valid(self):
        totals = calculate_totals([_line("0.00", 2)])
        assert totals.total == Decimal("0.00")

    def test_same_items_same_totals(self, baklava_lines):
        assert calculate_totals(baklava_lines) == calculate_totals(baklava_lines)

    def test_negative_price_rejected(self):
        with pytest.raises(InvalidLineItem, match="Item 1"):
            calculate_totals([_line("1.00", 1), _line("-0.01", 1)])

    def test_zero_quantity_rejected(self):
        with pytest.raises(InvalidLineItem, match="at least 1"):
            calculate_totals([_line("1.00", 0)])

    def test_invalid_line_is_invalid_order_data(self):
        with pytest.raises(InvalidOrderData):
            calculate_totals([_line("1.00", -2)])


class TestMoneyHelpers:
    def test_to_money_quantizes(self):
        assert to_money("2.999") == Decimal("3.00")
        assert to_money(10.1) == Decimal("10.10")

    def test_to_money_rejects_garbage(self):
        with pytest.raises(InvalidLineItem):
            to_money("abc")

    def test_delivery_fee_only_for_delivery(self, settings):
        settings.ORDERS = {**settings.ORDERS, "DELIVERY_FEE": "2.99"}

        assert delivery_fee_for("delivery") == Decimal("2.99")
        assert delivery_fee_for("pickup") == Decimal("0.00")
