from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.orders"
    label = "orders"

    def ready(self) -> None:
        from modules.orders.handlers import (
            OrderEventBroadcaster,
            register_order_event_handlers,
        )
        from modules.realtime.hub import notification_fanout
        from shared.infrastructure.bus import event_bus

        register_order_event_handlers(
            event_bus, OrderEventBroadcaster(notification_fanout)
        )
