"""Integration tests for Order API endpoints.

Covers:
- Anonymous checkout via POST /api/v1/orders/.
- Staff-only list / retrieve, public tracking by order number.
- Status changes for staff roles and customer self-cancellation.
- Payment status and line item replacement.
- Domain exception mapping (400, 403, 404, 409).
"""

from __future__ import annotations

import uuid

import pytest

from modules.core.permissions import ActorRole
from modules.orders.constants import OrderStatus

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/orders/"


def _payload(**overrides):
    payload = {
        "items": [
            {
                "product_id": "BAK-CLASSIC",
                "name": "Classic Walnut Baklava",
                "unit_price": "10.00",
                "quantity": 2,
            },
            {
                "product_id": "TEA-MINT",
                "name": "Mint Tea",
                "unit_price": "5.50",
                "quantity": 1,
            },
        ],
        "delivery_method": "pickup",
        "customer_name": "Layla",
        "customer_email": "layla@example.com",
    }
    payload.update(overrides)
    return payload


def _status_url(order) -> str:
    return f"{ORDERS_URL}{order.id}/status/"


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreateOrder:
    def test_anonymous_checkout_returns_201(self, api_client):
        response = api_client.post(ORDERS_URL, _payload(), format="json")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["payment_status"] == "unpaid"
        assert data["order_number"].startswith("BAK-")
        assert data["subtotal"] == "25.50"
        assert data["tax"] == "2.04"
        assert data["delivery_fee"] == "0.00"
        assert data["total"] == "27.54"
        assert data["time_remaining_minutes"] == 30
        assert [i["line_total"] for i in data["items"]] == ["20.00", "5.50"]
        assert data["status_history"][0]["new_status"] == "pending"

    def test_delivery_adds_fee(self, api_client):
        response = api_client.post(
            ORDERS_URL,
            _payload(delivery_method="delivery", delivery_address="12 Cedar Street"),
            format="json",
        )

        assert response.status_code == 201
        assert response.json()["delivery_fee"] == "2.99"
        assert response.json()["total"] == "30.53"

    def test_delivery_without_address_returns_400(self, api_client):
        response = api_client.post(
            ORDERS_URL, _payload(delivery_method="delivery"), format="json"
        )

        assert response.status_code == 400
        assert "address" in response.json()["detail"]

    def test_empty_items_returns_400(self, api_client):
        response = api_client.post(ORDERS_URL, _payload(items=[]), format="json")
        assert response.status_code == 400

    def test_zero_quantity_returns_400(self, api_client):
        payload = _payload()
        payload["items"][0]["quantity"] = 0

        response = api_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == 400

    def test_missing_items_returns_400(self, api_client):
        payload = _payload()
        del payload["items"]

        response = api_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == 400
        assert "items" in response.json()


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


class TestReadOrders:
    def test_list_requires_staff(self, api_client, make_order):
        make_order()
        response = api_client.get(ORDERS_URL)
        assert response.status_code in (401, 403)

    def test_list_is_paginated_for_staff(self, cashier_client, make_order):
        make_order()
        make_order()

        response = cashier_client.get(ORDERS_URL)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert "customer_email" not in data["results"][0]

    def test_list_filters_by_status(self, service, cashier_client, make_order):
        started = make_order()
        make_order()
        service.transition_status(started.id, OrderStatus.PREPARING, ActorRole.CASHIER)

        response = cashier_client.get(ORDERS_URL, {"status": "preparing"})

        assert [o["id"] for o in response.json()["results"]] == [str(started.id)]

    def test_retrieve_includes_contact_details(self, cashier_client, make_order):
        order = make_order(customer_email="layla@example.com")

        response = cashier_client.get(f"{ORDERS_URL}{order.id}/")

        assert response.status_code == 200
        assert response.json()["customer_email"] == "layla@example.com"

    def test_retrieve_unknown_returns_404(self, cashier_client):
        response = cashier_client.get(f"{ORDERS_URL}{uuid.uuid4()}/")
        assert response.status_code == 404

    def test_track_is_public_and_hides_contact_details(self, api_client, make_order):
        order = make_order(customer_email="layla@example.com")

        response = api_client.get(f"{ORDERS_URL}track/{order.order_number}/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        assert "customer_email" not in data
        assert "status_history" not in data

    def test_track_unknown_number_returns_404(self, api_client):
        response = api_client.get(f"{ORDERS_URL}track/BAK-20260101-ZZZZZZ/")
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class TestChangeStatus:
    def test_cashier_starts_preparation(self, cashier_client, make_order):
        order = make_order()

        response = cashier_client.post(
            _status_url(order), {"status": "preparing", "notes": "On it"}, format="json"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "preparing"
        assert data["status_history"][-1]["actor_role"] == "cashier"
        assert data["status_history"][-1]["notes"] == "On it"

    def test_kitchen_may_mark_ready_but_not_start(
        self, service, kitchen_client, make_order
    ):
        order = make_order()

        denied = kitchen_client.post(
            _status_url(order), {"status": "preparing"}, format="json"
        )
        service.transition_status(order.id, OrderStatus.PREPARING, ActorRole.CASHIER)
        allowed = kitchen_client.post(
            _status_url(order), {"status": "ready"}, format="json"
        )

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["status"] == "ready"

    def test_invalid_edge_returns_409(self, cashier_client, make_order):
        order = make_order()

        response = cashier_client.post(
            _status_url(order), {"status": "completed"}, format="json"
        )

        assert response.status_code == 409

    def test_unknown_status_returns_409(self, cashier_client, make_order):
        order = make_order()

        response = cashier_client.post(
            _status_url(order), {"status": "teleported"}, format="json"
        )

        assert response.status_code == 409

    def test_customer_cancels_own_pending_order(self, api_client, make_order):
        order = make_order(customer_email="layla@example.com")

        response = api_client.post(
            _status_url(order),
            {"status": "cancelled", "order_number": order.order_number},
            format="json",
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert "customer_email" not in response.json()

    def test_customer_without_reference_is_forbidden(self, api_client, make_order):
        order = make_order()

        response = api_client.post(
            _status_url(order), {"status": "cancelled"}, format="json"
        )

        assert response.status_code == 403

    def test_customer_cannot_cancel_after_preparation_started(
        self, service, api_client, make_order
    ):
        order = make_order()
        service.transition_status(order.id, OrderStatus.PREPARING, ActorRole.CASHIER)

        response = api_client.post(
            _status_url(order),
            {"status": "cancelled", "order_number": order.order_number},
            format="json",
        )

        assert response.status_code == 403

    def test_customer_cannot_advance_order(self, api_client, make_order):
        order = make_order()

        response = api_client.post(
            _status_url(order),
            {"status": "preparing", "order_number": order.order_number},
            format="json",
        )

        assert response.status_code == 403

    def test_terminal_order_returns_409(self, service, cashier_client, make_order):
        order = make_order()
        service.transition_status(order.id, OrderStatus.CANCELLED, ActorRole.CASHIER)

        response = cashier_client.post(
            _status_url(order), {"status": "cancelled"}, format="json"
        )

        assert response.status_code == 409

    def test_unknown_order_returns_404(self, cashier_client):
        response = cashier_client.post(
            f"{ORDERS_URL}{uuid.uuid4()}/status/", {"status": "preparing"}, format="json"
        )
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Payment / items
# ---------------------------------------------------------------------------


class TestPaymentAndItems:
    def test_cashier_marks_order_paid(self, cashier_client, make_order):
        order = make_order()

        response = cashier_client.post(
            f"{ORDERS_URL}{order.id}/payment/", {"payment_status": "paid"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["payment_status"] == "paid"

    def test_payment_requires_staff(self, api_client, make_order):
        order = make_order()

        response = api_client.post(
            f"{ORDERS_URL}{order.id}/payment/", {"payment_status": "paid"}, format="json"
        )

        assert response.status_code in (401, 403)

    def test_cancelled_order_cannot_be_marked_paid(
        self, service, cashier_client, make_order
    ):
        order = make_order()
        service.transition_status(order.id, OrderStatus.CANCELLED, ActorRole.CASHIER)

        response = cashier_client.post(
            f"{ORDERS_URL}{order.id}/payment/", {"payment_status": "paid"}, format="json"
        )

        assert response.status_code == 409

    def test_replace_items_recalculates_totals(self, cashier_client, make_order):
        order = make_order()

        response = cashier_client.put(
            f"{ORDERS_URL}{order.id}/items/",
            {
                "items": [
                    {
                        "product_id": "KNAFEH",
                        "name": "Knafeh",
                        "unit_price": "8.75",
                        "quantity": 2,
                    }
                ]
            },
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["subtotal"] == "17.50"
        assert data["tax"] == "1.40"
        assert data["total"] == "18.90"
        assert [i["product_id"] for i in data["items"]] == ["KNAFEH"]

    def test_items_locked_once_preparing(self, service, cashier_client, make_order):
        order = make_order()
        service.transition_status(order.id, OrderStatus.PREPARING, ActorRole.CASHIER)

        response = cashier_client.put(
            f"{ORDERS_URL}{order.id}/items/",
            {"items": [{"product_id": "KNAFEH", "unit_price": "8.75", "quantity": 1}]},
            format="json",
        )

        assert response.status_code == 409
