from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.orders"
    label = "orders"

    def ready(self) -> None:
        from modules.orders.events import (
            OrderCancelled,
            OrderCreated,
            OrderPaymentCompleted,
            OrderPaymentFailed,
            OrderRefunded,
            OrderStatusChanged,
        )
        from modules.orders.handlers import (
            order_cancelled_handler,
            order_created_handler,
            order_payment_completed_handler,
            order_payment_failed_handler,
            order_refunded_handler,
            order_status_changed_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(OrderCreated, order_created_handler)
        event_bus.subscribe(OrderPaymentCompleted, order_payment_completed_handler)
        event_bus.subscribe(OrderPaymentFailed, order_payment_failed_handler)
        event_bus.subscribe(OrderCancelled, order_cancelled_handler)
        event_bus.subscribe(OrderRefunded, order_refunded_handler)
        event_bus.subscribe(OrderStatusChanged, order_status_changed_handler)
