from __future__ import annotations

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient

from modules.orders.constants import DeliveryMethod
from modules.orders.dtos import CreateOrderDTO, OrderLineDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from shared.infrastructure.bus import InMemoryEventBus

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


def _user_in_group(username: str, role: str):
    user = User.objects.create_user(username=username, password="testpass123")
    group, _ = Group.objects.get_or_create(name=role)
    user.groups.add(group)
    return user


@pytest.fixture()
def cashier_user():
    return _user_in_group("cashier-user", "cashier")


@pytest.fixture()
def kitchen_user():
    return _user_in_group("kitchen-user", "kitchen")


@pytest.fixture()
def cashier_client(cashier_user):
    client = APIClient()
    client.force_authenticate(user=cashier_user)
    return client


@pytest.fixture()
def kitchen_client(kitchen_user):
    client = APIClient()
    client.force_authenticate(user=kitchen_user)
    return client


@pytest.fixture()
def event_bus():
    """Private bus so tests never see handlers registered by the apps."""
    return InMemoryEventBus()


@pytest.fixture()
def service(event_bus):
    return OrderService(order_repository=OrderDjangoRepository(), event_bus=event_bus)


@pytest.fixture()
def baklava_lines():
    """2 x 10.00 + 1 x 5.50: subtotal 25.50, tax 2.04, total 27.54."""
    return [
        OrderLineDTO(
            product_id="BAK-CLASSIC",
            name="Classic Walnut Baklava",
            unit_price=Decimal("10.00"),
            quantity=2,
        ),
        OrderLineDTO(
            product_id="TEA-MINT",
            name="Mint Tea",
            unit_price=Decimal("5.50"),
            quantity=1,
        ),
    ]


@pytest.fixture()
def make_order(service, baklava_lines):
    def _make(delivery_method: str = DeliveryMethod.PICKUP, **overrides):
        data = {
            "items": baklava_lines,
            "delivery_method": delivery_method,
            "customer_name": "Layla",
        }
        if delivery_method == DeliveryMethod.DELIVERY:
            data["delivery_address"] = "12 Cedar Street"
        data.update(overrides)
        return service.create_order(CreateOrderDTO(**data))

    return _make
