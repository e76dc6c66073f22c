"""Integration tests for payment completion and failure on orders.

Covers:
- Completion is applied exactly once; only the winner moves stock.
- Unlimited stock is never touched and finite stock never goes negative.
- Failures never downgrade a completed payment.
- Webhook updates resolve the order by id or provider payment id.
- Outbox events are published after commit.
"""

from __future__ import annotations

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.orders.constants import OrderStatus
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.payments.constants import PaymentStatus
from modules.payments.dtos import WebhookOrderUpdate
from modules.products.repositories.django_repository import ProductDjangoRepository

pytestmark = pytest.mark.integration


def _reload(order) -> Order:
    return Order.objects.get(id=order.id)


class TestCompleteOrderPayment:
    def test_first_trigger_wins(self, order_service, place_order, make_product):
        mug = make_product(stock=5)
        order = place_order((mug, 2))

        first = order_service.complete_order_payment(
            str(order.id), "CAP-1", order.total, payer_email="payer@example.com"
        )
        second = order_service.complete_order_payment(str(order.id), "CAP-2", order.total)

        assert first.updated is True
        assert second.updated is False
        paid = _reload(order)
        assert paid.status == OrderStatus.CONFIRMED
        assert paid.payment_status == PaymentStatus.COMPLETED
        assert paid.transaction_id == "CAP-1"
        assert paid.payer_email == "payer@example.com"
        assert paid.paid_at is not None
        mug.refresh_from_db()
        assert mug.stock == 3

    def test_completion_event_is_stored_once(self, order_service, place_order, make_product):
        order = place_order((make_product(), 1))

        order_service.complete_order_payment(str(order.id), "CAP-1", order.total)
        order_service.complete_order_payment(str(order.id), "CAP-1", order.total)

        events = OutboxEvent.objects.filter(
            aggregate_id=str(order.id), event_type="OrderPaymentCompleted"
        )
        assert events.count() == 1
        assert events.get().payload["transaction_id"] == "CAP-1"

    def test_unlimited_stock_is_untouched(self, order_service, place_order, make_product):
        ebook = make_product(name="E-Book", stock=None, is_digital=True)
        order = place_order((ebook, 4))

        order_service.complete_order_payment(str(order.id), "CAP-1", order.total)

        ebook.refresh_from_db()
        assert ebook.stock is None

    def test_oversold_stock_floors_at_zero(self, order_service, place_order, make_product):
        poster = make_product(name="Poster", stock=3)
        first = place_order((poster, 3))
        second = place_order((poster, 2))

        order_service.complete_order_payment(str(first.id), "CAP-1", first.total)
        order_service.complete_order_payment(str(second.id), "CAP-2", second.total)

        poster.refresh_from_db()
        assert poster.stock == 0
        assert _reload(second).payment_status == PaymentStatus.COMPLETED

    def test_missing_order(self, order_service):
        result = order_service.complete_order_payment(
            "0190f0c2-7a1e-7d4c-9a55-3f1d2c4b5a60", "CAP-1", 100
        )

        assert result.updated is False
        assert result.order is None


class StaleReadOrderRepository(OrderDjangoRepository):
    """Serves a snapshot taken before a competing completion committed."""

    def __init__(self, snapshot: Order) -> None:
        super().__init__()
        self._snapshot = snapshot
        self.claims: list = []

    def get_by_id(self, id: str):
        if self._snapshot is not None:
            snapshot, self._snapshot = self._snapshot, None
            return snapshot
        return super().get_by_id(id)

    def claim_payment_completion(self, id, values) -> bool:
        claimed = super().claim_payment_completion(id, values)
        self.claims.append(claimed)
        return claimed


class TestCompletionRace:
    """Capture and webhook both read the order as unpaid before either writes."""

    def test_stale_reader_loses_conditional_update(
        self, order_service, settings_store, payment_service, place_order, make_product
    ):
        mug = make_product(stock=5)
        order = place_order((mug, 2))
        repository = StaleReadOrderRepository(OrderDjangoRepository().get_by_id(str(order.id)))
        webhook_side = OrderService(
            order_repository=repository,
            product_repository=ProductDjangoRepository(),
            settings_store=settings_store,
            payment_service=payment_service,
        )

        captured = order_service.complete_order_payment(str(order.id), "CAP-1", order.total)
        late = webhook_side.complete_order_payment(str(order.id), "CAP-WEBHOOK", order.total)

        assert captured.updated is True
        assert late.updated is False
        assert repository.claims == [False]
        assert late.order.transaction_id == "CAP-1"
        mug.refresh_from_db()
        assert mug.stock == 3
        assert (
            OutboxEvent.objects.filter(
                aggregate_id=str(order.id), event_type="OrderPaymentCompleted"
            ).count()
            == 1
        )
        history = _reload(order).status_history
        assert history.filter(notes__startswith="Payment completed").count() == 1


class TestMarkOrderAsFailed:
    def test_unpaid_order_is_cancelled(self, order_service, place_order, make_product):
        order = place_order((make_product(), 1))

        assert order_service.mark_order_as_failed(str(order.id), reason="Card declined")

        failed = _reload(order)
        assert failed.status == OrderStatus.CANCELLED
        assert failed.payment_status == PaymentStatus.FAILED
        assert failed.status_history.filter(notes="Card declined").exists()

    def test_completed_payment_is_never_downgraded(
        self, order_service, place_order, make_product
    ):
        order = place_order((make_product(), 1))
        order_service.complete_order_payment(str(order.id), "CAP-1", order.total)

        assert not order_service.mark_order_as_failed(str(order.id))

        assert _reload(order).payment_status == PaymentStatus.COMPLETED


class TestWebhookUpdates:
    def test_completed_by_provider_payment_id(self, order_service, place_order, make_product):
        mug = make_product(stock=2)
        order = place_order((mug, 1))
        Order.objects.filter(id=order.id).update(payment_id="PAYPAL-ORDER-7")

        changed = order_service.update_order_from_webhook(
            WebhookOrderUpdate(
                order_id="PAYPAL-ORDER-7",
                status=PaymentStatus.COMPLETED,
                transaction_id="CAP-7",
                paid_amount=order.total,
            )
        )

        assert changed is True
        assert _reload(order).transaction_id == "CAP-7"
        mug.refresh_from_db()
        assert mug.stock == 1

    def test_missing_paid_amount_defaults_to_total(
        self, order_service, place_order, make_product
    ):
        order = place_order((make_product(), 1))

        order_service.update_order_from_webhook(
            WebhookOrderUpdate(order_id=str(order.id), status=PaymentStatus.COMPLETED)
        )

        assert _reload(order).paid_amount == order.total

    def test_cancelled_payment_cancels_order(self, order_service, place_order, make_product):
        order = place_order((make_product(), 1))

        changed = order_service.update_order_from_webhook(
            WebhookOrderUpdate(
                order_id=str(order.id),
                status=PaymentStatus.CANCELLED,
                failure_reason="Buyer abandoned checkout",
            )
        )

        assert changed is True
        cancelled = _reload(order)
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.payment_status == PaymentStatus.CANCELLED

    def test_refund_webhook_is_acknowledged_only(
        self, order_service, place_order, make_product
    ):
        order = place_order((make_product(), 1))
        order_service.complete_order_payment(str(order.id), "CAP-1", order.total)

        changed = order_service.update_order_from_webhook(
            WebhookOrderUpdate(order_id=str(order.id), status=PaymentStatus.REFUNDED)
        )

        assert changed is False
        assert _reload(order).refund_amount == 0

    def test_unknown_order_is_ignored(self, order_service):
        assert not order_service.update_order_from_webhook(
            WebhookOrderUpdate(order_id="PAYPAL-UNKNOWN", status=PaymentStatus.COMPLETED),
            payment_id="PAYPAL-UNKNOWN",
        )


class TestOutboxPublication:
    def test_events_are_published_after_commit(
        self, order_service, place_order, make_product, django_capture_on_commit_callbacks
    ):
        order = place_order((make_product(), 1))

        with django_capture_on_commit_callbacks(execute=True):
            order_service.complete_order_payment(str(order.id), "CAP-1", order.total)

        event = OutboxEvent.objects.get(
            aggregate_id=str(order.id), event_type="OrderPaymentCompleted"
        )
        assert event.status == EventStatus.PUBLISHED
