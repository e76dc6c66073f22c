from __future__ import annotations

from typing import Any, List, Optional, Tuple

import pytest
from django.apps import apps
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from modules.orders.checkout import CheckoutService
from modules.orders.dtos import CartItemDTO, CheckoutFormDTO, ShippingAddressDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.payments.constants import PaymentStatus, RefundStatus
from modules.payments.dtos import (
    CapturePaymentResponse,
    CreatePaymentResponse,
    PaymentPayerInfo,
    PaymentProviderConfig,
    PaymentServiceConfig,
    PaymentStatusResponse,
    RefundPaymentResponse,
    WebhookResult,
)
from modules.payments.errors import PaymentResult
from modules.payments.factory import PaymentProviderFactory
from modules.payments.orchestration import PaymentService
from modules.payments.providers.base import PaymentProvider
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.store_settings.repositories.django_repository import (
    StoreSettingDjangoRepository,
)
from modules.store_settings.services import SettingsStore

User = get_user_model()


# ---------------------------------------------------------------------------
# Fake provider
# ---------------------------------------------------------------------------


class FakeProvider(PaymentProvider):
    """In-memory provider that records calls and returns canned results."""

    provider_id = "paypal"
    provider_name = "Fake PayPal"
    supported_currencies = ("USD", "EUR", "ILS")
    supports_refunds = True

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Any]] = []
        self.create_result: Optional[PaymentResult] = None
        self.capture_result: Optional[PaymentResult] = None
        self.status_result: Optional[PaymentResult] = None
        self.refund_result: Optional[PaymentResult] = None
        self.webhook_result: Optional[WebhookResult] = None

    def initialize(self, config: PaymentProviderConfig) -> None:
        self.calls.append(("initialize", config))

    def create_payment(self, request):
        self.calls.append(("create_payment", request))
        return self.create_result or PaymentResult.ok(
            CreatePaymentResponse(
                provider_id=self.provider_id,
                provider_payment_id="PAYPAL-ORDER-1",
                status=PaymentStatus.CREATED,
                approval_url="https://paypal.test/approve/PAYPAL-ORDER-1",
            )
        )

    def capture_payment(self, request):
        self.calls.append(("capture_payment", request))
        return self.capture_result or PaymentResult.ok(
            CapturePaymentResponse(
                transaction_id="CAPTURE-1",
                status=PaymentStatus.COMPLETED,
                amount_captured=0,
                payer_info=PaymentPayerInfo(email="payer@example.com"),
            )
        )

    def get_payment_status(self, payment_id):
        self.calls.append(("get_payment_status", payment_id))
        return self.status_result or PaymentResult.ok(
            PaymentStatusResponse(status=PaymentStatus.PENDING, last_updated=timezone.now())
        )

    def refund_payment(self, request):
        self.calls.append(("refund_payment", request))
        return self.refund_result or PaymentResult.ok(
            RefundPaymentResponse(
                refund_id="REFUND-1",
                status=RefundStatus.COMPLETED,
                amount_refunded=request.amount or 0,
                refunded_at=timezone.now(),
            )
        )

    def process_webhook(self, payload, signature=None):
        self.calls.append(("process_webhook", payload))
        return self.webhook_result or WebhookResult(processed=True)

    def calls_to(self, operation: str) -> list:
        return [arg for name, arg in self.calls if name == operation]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Settings are cached; every test starts from a cold cache."""
    cache.clear()
    yield
    cache.clear()


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


@pytest.fixture()
def admin_client():
    client = APIClient()
    admin = User.objects.create_user(
        username="store-admin", password="testpass123", is_staff=True
    )
    client.force_authenticate(user=admin)
    return client


@pytest.fixture()
def fake_provider():
    return FakeProvider()


@pytest.fixture()
def payment_service(fake_provider, monkeypatch):
    """PaymentService backed by ``fake_provider``, installed app-wide."""
    service = PaymentService(
        PaymentServiceConfig(
            providers={"paypal": PaymentProviderConfig()},
            default_provider="paypal",
            base_url="https://shop.test",
        ),
        factory=PaymentProviderFactory({"paypal": lambda: fake_provider}),
    )
    service.initialize()
    monkeypatch.setattr(apps.get_app_config("payments"), "payment_service", service)
    return service


@pytest.fixture()
def settings_store():
    return SettingsStore(StoreSettingDjangoRepository())


@pytest.fixture()
def order_service(settings_store, payment_service):
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
        settings_store=settings_store,
        payment_service=payment_service,
    )


@pytest.fixture()
def checkout_service(settings_store):
    return CheckoutService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
        settings_store=settings_store,
    )


@pytest.fixture()
def make_product():
    def _make(
        name: str = "Ceramic Mug",
        price: int = 1000,
        stock: Optional[int] = 10,
        is_digital: bool = False,
        status: str = ProductStatus.ACTIVE,
    ) -> Product:
        return Product.objects.create(
            name=name,
            price=price,
            stock=stock,
            is_digital=is_digital,
            status=status,
        )

    return _make


@pytest.fixture()
def checkout_form():
    return CheckoutFormDTO(
        customer_name="Ada Lovelace",
        customer_email="ada@example.com",
        customer_phone="+1 555 0100",
        shipping_address=ShippingAddressDTO(
            line1="12 Analytical Row",
            city="London",
            postal_code="N1 9GU",
            country="GB",
        ),
    )


def cart_line(product: Product, quantity: int = 1) -> CartItemDTO:
    return CartItemDTO(
        id=str(product.id),
        name=product.name,
        price=product.price,
        quantity=quantity,
        is_digital=product.is_digital,
    )


@pytest.fixture()
def place_order(checkout_service, checkout_form):
    """Run a confirmed checkout and return the created order."""

    def _place(*lines: Tuple[Product, int], form: Optional[CheckoutFormDTO] = None):
        result = checkout_service.process_checkout(
            form or checkout_form,
            [cart_line(product, quantity) for product, quantity in lines],
            confirmed=True,
        )
        assert result.outcome == "success", result
        return OrderDjangoRepository().get_by_id(result.order_id)

    return _place


@pytest.fixture()
def cart_item():
    return cart_line
