from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from modules.core.permissions import STAFF_ROLES, ActorRole
from modules.orders.constants import DeliveryMethod, OrderStatus, PaymentStatus
from modules.orders.dtos import CreateOrderDTO, OrderLineDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService

MENU = [
    ("BAK-CLASSIC", "Classic Walnut Baklava", Decimal("4.50")),
    ("BAK-PISTACHIO", "Pistachio Baklava", Decimal("5.25")),
    ("BAK-CHOC", "Chocolate Baklava", Decimal("5.00")),
    ("KNAFEH", "Knafeh", Decimal("8.75")),
    ("TEA-MINT", "Mint Tea", Decimal("2.50")),
    ("COFFEE-TR", "Turkish Coffee", Decimal("3.25")),
]

# Each path is walked from pending by the role allowed to take every step.
_PICKUP_PATHS = [
    [],
    [OrderStatus.PREPARING],
    [OrderStatus.PREPARING, OrderStatus.READY],
    [OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.COMPLETED],
    [OrderStatus.CANCELLED],
]
_DELIVERY_PATH = [
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
]


class Command(BaseCommand):
    help = "Seed database with staff accounts and sample orders for development."

    def add_arguments(self, parser):
        parser.add_argument("--orders", type=int, default=12)

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_staff()
        orders_created = self._seed_orders(options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                f"Seed completed: users={users_created}, orders={orders_created}"
            )
        )

    def _seed_staff(self) -> int:
        User = get_user_model()
        created = 0
        for role in sorted(STAFF_ROLES):
            group, _ = Group.objects.get_or_create(name=role)
            username = f"{role}1"
            if User.objects.filter(username=username).exists():
                continue
            user = User.objects.create_user(username, password=f"{role}123")
            user.groups.add(group)
            created += 1
        return created

    def _seed_orders(self, count: int) -> int:
        self.stdout.write("Creating orders...")
        service = OrderService(order_repository=OrderDjangoRepository())

        for i in range(count):
            delivery = i % 3 == 2
            lines = [
                OrderLineDTO(
                    product_id=product_id,
                    name=name,
                    unit_price=price,
                    quantity=random.randint(1, 4),
                )
                for product_id, name, price in random.sample(MENU, k=random.randint(1, 3))
            ]
            order = service.create_order(
                CreateOrderDTO(
                    items=lines,
                    delivery_method=(
                        DeliveryMethod.DELIVERY if delivery else DeliveryMethod.PICKUP
                    ),
                    delivery_address="12 Cedar Street" if delivery else None,
                    customer_name=f"Guest {i + 1}",
                    notes="Seed order",
                )
            )
            if i % 2:
                service.update_payment_status(order.id, PaymentStatus.PAID)

            path = _DELIVERY_PATH if delivery else _PICKUP_PATHS[i % len(_PICKUP_PATHS)]
            for target in path:
                service.transition_status(order.id, target, ActorRole.CASHIER)

        self.stdout.write(self.style.SUCCESS("Creating orders... Done!"))
        return count
