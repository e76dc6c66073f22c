"""Integration tests for the payment endpoints.

Covers:
- Provider listing.
- Payment creation stores the provider payment id on the order.
- Capture completes the order once; unclear failures schedule recovery.
- The webhook endpoint always answers 200.
"""

from __future__ import annotations

import json

import pytest

from modules.orders.constants import OrderStatus
from modules.orders.models import Order
from modules.payments import views as payment_views
from modules.payments.constants import PaymentStatus
from modules.payments.dtos import WebhookOrderUpdate, WebhookResult
from modules.payments.errors import PaymentErrorType, PaymentResult
from modules.payments.views import RECOVERY_PENDING_MESSAGE

pytestmark = pytest.mark.integration

MISSING = "0190f0c2-7a1e-7d4c-9a55-3f1d2c4b5a60"


class DelayRecorder:
    def __init__(self) -> None:
        self.calls = []

    def delay(self, *args):
        self.calls.append(args)


@pytest.fixture()
def order(payment_service, place_order, make_product):
    return place_order((make_product(price=1000, stock=5), 2))


@pytest.fixture()
def created_order(api_client, order):
    api_client.post(f"/api/v1/orders/{order.id}/payment/", format="json")
    return Order.objects.get(id=order.id)


@pytest.fixture()
def recovery_calls(monkeypatch):
    recorder = DelayRecorder()
    monkeypatch.setattr(payment_views, "recover_payment", recorder)
    return recorder.calls


def _capture(client, order, provider_payment_id="PAYPAL-ORDER-1"):
    return client.post(
        f"/api/v1/orders/{order.id}/payment/capture/",
        {"provider_payment_id": provider_payment_id},
        format="json",
    )


class TestProviders:
    def test_lists_available_providers(self, api_client, payment_service):
        response = api_client.get("/api/v1/payments/providers/")

        assert response.status_code == 200
        assert response.data == [
            {"id": "paypal", "name": "Fake PayPal", "supported_currencies": ["USD", "EUR", "ILS"]}
        ]


class TestCreatePayment:
    def test_returns_approval_url(self, api_client, fake_provider, order):
        response = api_client.post(f"/api/v1/orders/{order.id}/payment/", format="json")

        assert response.status_code == 201
        assert response.data["provider_payment_id"] == "PAYPAL-ORDER-1"
        assert response.data["approval_url"].endswith("PAYPAL-ORDER-1")
        stored = Order.objects.get(id=order.id)
        assert stored.payment_id == "PAYPAL-ORDER-1"
        assert stored.payment_status == PaymentStatus.CREATED

    def test_request_carries_order_details(self, api_client, fake_provider, order):
        api_client.post(f"/api/v1/orders/{order.id}/payment/", format="json")

        (sent,) = fake_provider.calls_to("create_payment")
        assert sent.amount == order.total
        assert sent.currency == "USD"
        assert sent.order_number == order.order_number
        assert sent.customer.email == "ada@example.com"
        assert sent.shipping_address.city == "London"
        assert sent.metadata.store_name == "My Store"
        assert [(i.name, i.quantity, i.price) for i in sent.metadata.items] == [
            ("Ceramic Mug", 2, 1000)
        ]

    def test_unknown_order(self, api_client, payment_service):
        response = api_client.post(f"/api/v1/orders/{MISSING}/payment/", format="json")

        assert response.status_code == 404

    def test_paid_order_is_not_payable(self, api_client, order_service, order):
        order_service.complete_order_payment(str(order.id), "CAP-1", order.total)

        response = api_client.post(f"/api/v1/orders/{order.id}/payment/", format="json")

        assert response.status_code == 409

    @pytest.mark.parametrize(
        ("error_type", "status_code"),
        [
            (PaymentErrorType.PAYMENT_DECLINED, 402),
            (PaymentErrorType.RATE_LIMITED, 429),
            (PaymentErrorType.CONFIGURATION_ERROR, 503),
            (PaymentErrorType.PROVIDER_ERROR, 502),
        ],
    )
    def test_provider_errors_map_to_status(
        self, api_client, fake_provider, order, error_type, status_code
    ):
        fake_provider.create_result = PaymentResult.fail(error_type, "internal detail", "X")

        response = api_client.post(f"/api/v1/orders/{order.id}/payment/", format="json")

        assert response.status_code == status_code
        assert response.data["code"] == "X"
        assert "internal detail" not in response.data["detail"]
        assert Order.objects.get(id=order.id).payment_id is None


class TestCapturePayment:
    def test_capture_completes_order(self, api_client, created_order):
        response = _capture(api_client, created_order)

        assert response.status_code == 200
        assert response.data["updated"] is True
        assert response.data["order"]["status"] == OrderStatus.CONFIRMED
        assert response.data["order"]["payment_status"] == PaymentStatus.COMPLETED
        paid = Order.objects.get(id=created_order.id)
        assert paid.transaction_id == "CAPTURE-1"
        assert paid.payer_email == "payer@example.com"

    def test_second_capture_is_a_no_op(self, api_client, fake_provider, created_order):
        _capture(api_client, created_order)

        response = _capture(api_client, created_order)

        assert response.status_code == 200
        assert response.data["updated"] is False
        assert len(fake_provider.calls_to("capture_payment")) == 1

    def test_foreign_payment_id_is_rejected(self, api_client, fake_provider, created_order):
        response = _capture(api_client, created_order, provider_payment_id="PAYPAL-OTHER")

        assert response.status_code == 400
        assert fake_provider.calls_to("capture_payment") == []

    def test_payment_id_is_required(self, api_client, created_order):
        response = api_client.post(
            f"/api/v1/orders/{created_order.id}/payment/capture/", {}, format="json"
        )

        assert response.status_code == 400

    @pytest.mark.parametrize(
        "error_type",
        [
            PaymentErrorType.NETWORK_ERROR,
            PaymentErrorType.TIMEOUT,
            PaymentErrorType.PAYMENT_DECLINED,
            PaymentErrorType.PROVIDER_ERROR,
        ],
    )
    def test_unclear_failure_schedules_recovery(
        self, api_client, fake_provider, created_order, recovery_calls, error_type
    ):
        fake_provider.capture_result = PaymentResult.fail(error_type, "boom", "X")

        response = _capture(api_client, created_order)

        assert response.status_code == 202
        assert response.data == {"detail": RECOVERY_PENDING_MESSAGE, "recovery_scheduled": True}
        assert recovery_calls == [(str(created_order.id),)]
        assert Order.objects.get(id=created_order.id).status == OrderStatus.PENDING

    def test_validation_failure_is_final(
        self, api_client, fake_provider, created_order, recovery_calls
    ):
        fake_provider.capture_result = PaymentResult.fail(
            PaymentErrorType.VALIDATION_ERROR, "Order already captured", "ORDER_ALREADY_CAPTURED"
        )

        response = _capture(api_client, created_order)

        assert response.status_code == 400
        assert recovery_calls == []


class TestWebhook:
    URL = "/webhooks/payment/paypal/"

    def test_completion_webhook_updates_order(self, api_client, fake_provider, created_order):
        fake_provider.webhook_result = WebhookResult(
            processed=True,
            should_update_order=True,
            order_update=WebhookOrderUpdate(
                order_id=str(created_order.id),
                status=PaymentStatus.COMPLETED,
                transaction_id="CAP-WEBHOOK",
            ),
        )

        response = api_client.post(self.URL, {"event_type": "X"}, format="json")

        assert response.status_code == 200
        assert response.data == {"received": True, "processed": True, "order_updated": True}
        assert Order.objects.get(id=created_order.id).transaction_id == "CAP-WEBHOOK"

    def test_webhook_after_capture_changes_nothing(
        self, api_client, fake_provider, created_order
    ):
        _capture(api_client, created_order)
        fake_provider.webhook_result = WebhookResult(
            processed=True,
            should_update_order=True,
            order_update=WebhookOrderUpdate(
                order_id=str(created_order.id), status=PaymentStatus.COMPLETED
            ),
        )

        response = api_client.post(self.URL, {"event_type": "X"}, format="json")

        assert response.data["order_updated"] is False
        assert Order.objects.get(id=created_order.id).transaction_id == "CAPTURE-1"

    def test_paypal_signature_headers_are_forwarded(
        self, api_client, fake_provider, payment_service
    ):
        received = {}

        def record(payload, signature=None):
            received["signature"] = signature
            return WebhookResult(processed=False)

        fake_provider.process_webhook = record

        api_client.post(
            self.URL,
            {"event_type": "X"},
            format="json",
            HTTP_PAYPAL_TRANSMISSION_ID="tx-1",
            HTTP_PAYPAL_TRANSMISSION_TIME="2025-01-01T00:00:00Z",
            HTTP_PAYPAL_CERT_URL="https://api.paypal.com/cert",
            HTTP_PAYPAL_AUTH_ALGO="SHA256withRSA",
            HTTP_PAYPAL_TRANSMISSION_SIG="sig",
        )

        assert json.loads(received["signature"]) == {
            "transmissionId": "tx-1",
            "transmissionTime": "2025-01-01T00:00:00Z",
            "certUrl": "https://api.paypal.com/cert",
            "authAlgo": "SHA256withRSA",
            "transmissionSig": "sig",
        }

    def test_unknown_provider_is_acknowledged(self, api_client, payment_service):
        response = api_client.post("/webhooks/payment/stripe/", {}, format="json")

        assert response.status_code == 200
        assert response.data["processed"] is False

    def test_internal_error_is_still_200(self, api_client, payment_service, monkeypatch):
        def explode():
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(payment_views, "build_payment_order_service", explode)

        response = api_client.post(self.URL, {"event_type": "X"}, format="json")

        assert response.status_code == 200
        assert response.data == {
            "received": True,
            "processed": False,
            "error": "Webhook processing failed",
        }

    def test_webhook_ignores_jwt_auth(self, api_client, payment_service):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer not-a-token")

        response = api_client.post(self.URL, {}, format="json")

        assert response.status_code == 200
