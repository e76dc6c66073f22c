"""Integration tests for POST /api/v1/checkout/.

Covers:
- A clean cart becomes a PENDING order with item snapshots and totals.
- Stock shortfalls answer 409 and persist nothing until confirmed.
- Digital carts need no address and never store one.
- Hard errors (empty cart, bad form, stale price) answer 400.
"""

from __future__ import annotations

import pytest

from modules.core.models import OutboxEvent
from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.payments.constants import PaymentStatus

pytestmark = pytest.mark.integration

URL = "/api/v1/checkout/"

ADDRESS = {
    "line1": "12 Analytical Row",
    "city": "London",
    "postal_code": "N1 9GU",
    "country": "GB",
}


def _line(product, quantity=1, **overrides):
    line = {
        "id": str(product.id),
        "name": product.name,
        "price": product.price,
        "quantity": quantity,
        "is_digital": product.is_digital,
    }
    line.update(overrides)
    return line


def _payload(*lines, **overrides):
    payload = {
        "customer_name": "Ada Lovelace",
        "customer_email": "Ada@Example.com ",
        "customer_phone": "+44 20 7946 0000",
        "shipping_address": ADDRESS,
        "payment_method": "paypal",
        "items": list(lines),
    }
    payload.update(overrides)
    return payload


class TestSuccessfulCheckout:
    def test_creates_pending_order(self, api_client, make_product):
        mug = make_product(price=1000, stock=5)
        poster = make_product(name="Poster", price=2500, stock=2)

        response = api_client.post(
            URL, _payload(_line(mug, 2), _line(poster, 1)), format="json"
        )

        assert response.status_code == 201
        order = Order.objects.get(id=response.data["order_id"])
        assert response.data["order_number"] == order.order_number
        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.payment_provider_id == "paypal"
        assert order.customer_email == "ada@example.com"
        assert order.subtotal == 4500
        assert order.shipping_amount == 2500
        assert order.tax_amount == 765
        assert order.total == 4500 + 2500 + 765
        assert order.shipping_city == "London"
        assert sorted((i.product_name, i.price, i.quantity) for i in order.items.all()) == [
            ("Ceramic Mug", 1000, 2),
            ("Poster", 2500, 1),
        ]

    def test_stock_is_untouched_until_payment(self, api_client, make_product):
        mug = make_product(stock=5)

        api_client.post(URL, _payload(_line(mug, 3)), format="json")

        mug.refresh_from_db()
        assert mug.stock == 5

    def test_history_and_outbox_are_written(self, api_client, make_product):
        mug = make_product()

        response = api_client.post(URL, _payload(_line(mug)), format="json")

        order_id = response.data["order_id"]
        history = OrderStatusHistory.objects.get(order_id=order_id)
        assert history.new_status == OrderStatus.PENDING
        assert history.notes == "Order created"
        event = OutboxEvent.objects.get(aggregate_id=order_id)
        assert event.event_type == "OrderCreated"
        assert event.topic == "orders"

    def test_free_shipping_threshold_applies(self, api_client, make_product, settings_store):
        settings_store.update_setting("store.operational.free_shipping_threshold", "5000")
        lamp = make_product(name="Lamp", price=6000)

        response = api_client.post(URL, _payload(_line(lamp)), format="json")

        assert Order.objects.get(id=response.data["order_id"]).shipping_amount == 0


class TestStockConfirmation:
    def test_shortfall_asks_for_confirmation(self, api_client, make_product):
        poster = make_product(name="Poster", price=2000, stock=1)

        response = api_client.post(URL, _payload(_line(poster, 3)), format="json")

        assert response.status_code == 409
        assert response.data["needs_confirmation"] is True
        (issue,) = response.data["stock_issues"]
        assert issue == {
            "product_id": str(poster.id),
            "product_name": "Poster",
            "requested_quantity": 3,
            "available_quantity": 1,
            "action": "reduced",
        }
        assert response.data["adjusted_total"] == 2000
        assert not Order.objects.exists()
        assert not OutboxEvent.objects.exists()

    def test_confirmed_checkout_applies_adjustments(self, api_client, make_product):
        poster = make_product(name="Poster", price=2000, stock=1)
        candle = make_product(name="Candle", price=1500, stock=0)
        mug = make_product(price=1000, stock=10)

        response = api_client.post(
            URL,
            _payload(_line(poster, 3), _line(candle, 1), _line(mug, 2), confirmed=True),
            format="json",
        )

        assert response.status_code == 201
        order = Order.objects.get(id=response.data["order_id"])
        assert sorted((i.product_name, i.quantity) for i in order.items.all()) == [
            ("Ceramic Mug", 2),
            ("Poster", 1),
        ]
        assert order.subtotal == 2000 + 2000

    def test_confirming_an_empty_result_fails(self, api_client, make_product):
        candle = make_product(name="Candle", stock=0)

        response = api_client.post(
            URL, _payload(_line(candle), confirmed=True), format="json"
        )

        assert response.status_code == 400
        assert response.data["detail"] == "All items in your cart are out of stock"
        assert not Order.objects.exists()


class TestDigitalCheckout:
    def test_digital_cart_needs_no_address(self, api_client, make_product):
        ebook = make_product(name="E-Book", price=1500, stock=None, is_digital=True)

        response = api_client.post(
            URL, _payload(_line(ebook, 3), shipping_address=None), format="json"
        )

        assert response.status_code == 201
        order = Order.objects.get(id=response.data["order_id"])
        assert order.is_digital is True
        assert order.shipping_amount == 0
        assert order.total == 4500 + 765

    def test_address_is_dropped_for_digital_orders(self, api_client, make_product):
        ebook = make_product(name="E-Book", stock=None, is_digital=True)

        response = api_client.post(URL, _payload(_line(ebook)), format="json")

        order = Order.objects.get(id=response.data["order_id"])
        assert order.shipping_line1 is None
        assert order.shipping_country is None

    def test_client_cannot_claim_a_physical_product_is_digital(self, api_client, make_product):
        mug = make_product()

        response = api_client.post(
            URL,
            _payload(_line(mug, is_digital=True), shipping_address=None),
            format="json",
        )

        assert response.status_code == 400
        assert "shipping_address.line1" in response.data["field_errors"]
        assert not Order.objects.exists()


class TestRejectedCheckout:
    def test_empty_cart(self, api_client):
        response = api_client.post(URL, _payload(), format="json")

        assert response.status_code == 400
        assert response.data["detail"] == "Cart is empty"

    def test_form_errors_are_reported_per_field(self, api_client, make_product):
        mug = make_product()

        response = api_client.post(
            URL,
            _payload(_line(mug), customer_email="nope", shipping_address={"line1": "x"}),
            format="json",
        )

        assert response.status_code == 400
        assert response.data["field_errors"]["customer_email"] == ["Enter a valid email address"]
        assert response.data["field_errors"]["shipping_address.city"] == ["City is required"]

    def test_stale_price_is_rejected(self, api_client, make_product):
        mug = make_product(price=1200)

        response = api_client.post(URL, _payload(_line(mug, price=1000)), format="json")

        assert response.status_code == 400
        assert "has changed" in response.data["detail"]
        assert not Order.objects.exists()

    def test_errors_are_combined(self, api_client, make_product):
        gone = make_product(name="Gone", status="ARCHIVED")
        mug = make_product(price=1200)

        response = api_client.post(
            URL, _payload(_line(gone), _line(mug, price=1000)), format="json"
        )

        assert response.data["detail"] == (
            'Product "Gone" is no longer available; '
            'Price for "Ceramic Mug" has changed. Please refresh your cart.'
        )

    @pytest.mark.parametrize("confirmed", [False, True])
    def test_archived_item_blocks_whole_cart(self, api_client, make_product, confirmed):
        mug = make_product(price=1000, stock=5)
        retired = make_product(name="Retired Poster", status="ARCHIVED", stock=5)

        response = api_client.post(
            URL,
            _payload(_line(mug, 2), _line(retired), confirmed=confirmed),
            format="json",
        )

        assert response.status_code == 400
        assert response.data["detail"] == 'Product "Retired Poster" is no longer available'
        assert not Order.objects.exists()
        assert not OrderItem.objects.exists()
        assert not OrderStatusHistory.objects.exists()
        assert not OutboxEvent.objects.exists()
        mug.refresh_from_db()
        retired.refresh_from_db()
        assert (mug.stock, retired.stock) == (5, 5)
