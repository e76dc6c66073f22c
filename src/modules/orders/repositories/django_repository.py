"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.
All write operations are wrapped in ``transaction.atomic()`` to ensure
the Order aggregate (Order + OrderItems) is persisted atomically.

Payment reconciliation relies on **conditional updates** instead of
locks: ``UPDATE ... WHERE payment_status <> 'COMPLETED'`` either matches
the row or not, so exactly one of several concurrent triggers wins.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from modules.core.outbox import store_domain_events
from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository
from modules.payments.constants import PaymentStatus

logger = structlog.get_logger(__name__)

OUTBOX_TOPIC = "orders"


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        items = data.pop("items", [])
        order = Order(**data)
        order.save()

        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product_id=item["product_id"],
                    product_name=item["product_name"],
                    price=item["price"],
                    quantity=item["quantity"],
                )
                for item in items
            ]
        )

        log = logger.bind(order_id=str(order.id), item_count=len(items))
        log.info("order.created", order_number=order.order_number)
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with items and history prefetched.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.prefetch_related("items", "status_history")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_by_payment_id(self, payment_id: str) -> Optional[Order]:
        if not payment_id:
            return None
        return (
            Order.objects.prefetch_related("items", "status_history")
            .filter(payment_id=payment_id)
            .first()
        )

    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Must be called inside a transaction.  Returns ``None`` for
        non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.select_for_update()
                .prefetch_related("items")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist an order and its pending domain events."""
        entity.save()
        self.store_events(entity)
        logger.info("order.saved", order_id=str(entity.id))
        return entity

    def store_events(self, entity: Order) -> None:
        rows = store_domain_events(entity, topic=OUTBOX_TOPIC)
        if rows:
            logger.info(
                "order.events_stored",
                order_id=str(entity.id),
                event_count=len(rows),
            )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_history(
        self,
        order_id: Any,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
        )
        return history

    # ------------------------------------------------------------------
    # Conditional updates
    # ------------------------------------------------------------------

    def claim_payment_completion(self, id: str, values: Dict[str, Any]) -> bool:
        updated = (
            Order.objects.filter(id=id)
            .exclude(payment_status=PaymentStatus.COMPLETED)
            .update(**values, updated_at=timezone.now())
        )
        return updated == 1

    def mark_payment_failed(self, id: str, payment_status: str) -> bool:
        updated = (
            Order.objects.filter(id=id)
            .exclude(payment_status__in=[PaymentStatus.COMPLETED, PaymentStatus.REFUNDED])
            .update(
                status=OrderStatus.CANCELLED,
                payment_status=payment_status,
                updated_at=timezone.now(),
            )
        )
        return updated == 1
