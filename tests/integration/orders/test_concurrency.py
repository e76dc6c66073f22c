"""Concurrent payment completion against a real database.

Several triggers (client capture, webhook, recovery) racing to complete
the same order must produce exactly one winner and one stock decrement.
SQLite serialises writers per connection and the in-memory test database
is not shared across threads, so these tests run on PostgreSQL only.
The same interleaving is replayed deterministically on every backend in
``test_payment_completion.py``.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import connection

from modules.core.models import OutboxEvent
from modules.orders.models import Order
from modules.payments.constants import PaymentStatus

pytestmark = [
    pytest.mark.integration,
    pytest.mark.django_db(transaction=True),
    pytest.mark.skipif(
        connection.vendor == "sqlite", reason="needs a database with row-level locking"
    ),
]

RACERS = 5


def test_exactly_one_completion_wins(order_service, place_order, make_product):
    mug = make_product(stock=10)
    order = place_order((mug, 3))

    def complete(n: int) -> bool:
        try:
            result = order_service.complete_order_payment(
                str(order.id), f"CAP-{n}", order.total
            )
            return result.updated
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=RACERS) as pool:
        outcomes = list(pool.map(complete, range(RACERS)))

    assert outcomes.count(True) == 1
    assert Order.objects.get(id=order.id).payment_status == PaymentStatus.COMPLETED
    mug.refresh_from_db()
    assert mug.stock == 7
    assert (
        OutboxEvent.objects.filter(
            aggregate_id=str(order.id), event_type="OrderPaymentCompleted"
        ).count()
        == 1
    )


def test_parallel_orders_never_drive_stock_negative(
    order_service, place_order, make_product
):
    poster = make_product(name="Poster", stock=4)
    orders = [place_order((poster, 2)) for _ in range(RACERS)]

    def complete(order) -> bool:
        try:
            return order_service.complete_order_payment(
                str(order.id), f"CAP-{order.id}", order.total
            ).updated
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=RACERS) as pool:
        assert all(pool.map(complete, orders))

    poster.refresh_from_db()
    assert poster.stock == 0
