"""Payment API views.

Storefront endpoints are public (``AllowAny``): orders are addressed by
their unguessable UUID and payment ids are verified against the order.
Domain exceptions are translated into HTTP status codes here; the
webhook endpoint is the exception and always acknowledges with 200.
"""

from __future__ import annotations

import json
from typing import Optional

import structlog
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.orders.exceptions import OrderNotFound
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import OrderSerializer
from modules.orders.services import OrderService
from modules.payments.apps import get_payment_service
from modules.payments.errors import (
    OrderNotPayable,
    PaymentError,
    PaymentErrorType,
    PaymentFailed,
    PaymentVerificationFailed,
)
from modules.payments.messages import get_payment_error_message
from modules.payments.serializers import (
    CapturePaymentSerializer,
    CreatePaymentOutputSerializer,
    ProviderInfoSerializer,
)
from modules.payments.services import PaymentOrderService
from modules.payments.tasks import recover_payment
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.store_settings.repositories.django_repository import (
    StoreSettingDjangoRepository,
)
from modules.store_settings.services import SettingsStore

logger = structlog.get_logger(__name__)

RECOVERY_PENDING_MESSAGE = (
    "We are confirming your payment with the provider. "
    "Check the order status in a few moments."
)

_STATUS_BY_ERROR_TYPE = {
    PaymentErrorType.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    PaymentErrorType.CONFIGURATION_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentErrorType.PAYMENT_DECLINED: status.HTTP_402_PAYMENT_REQUIRED,
    PaymentErrorType.INSUFFICIENT_FUNDS: status.HTTP_402_PAYMENT_REQUIRED,
    PaymentErrorType.EXPIRED_CARD: status.HTTP_402_PAYMENT_REQUIRED,
    PaymentErrorType.AUTHENTICATION_FAILED: status.HTTP_402_PAYMENT_REQUIRED,
    PaymentErrorType.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
}

# Capture failures of these types are final; anything else may still settle
_NON_RECOVERABLE_ERROR_TYPES = frozenset(
    {PaymentErrorType.VALIDATION_ERROR, PaymentErrorType.CONFIGURATION_ERROR}
)

_PAYPAL_SIGNATURE_HEADERS = {
    "transmissionId": "PayPal-Transmission-Id",
    "transmissionTime": "PayPal-Transmission-Time",
    "certUrl": "PayPal-Cert-Url",
    "authAlgo": "PayPal-Auth-Algo",
    "transmissionSig": "PayPal-Transmission-Sig",
}


def payment_error_response(error: PaymentError) -> Response:
    """Customer-safe response for a provider or validation failure."""
    return Response(
        {
            "detail": get_payment_error_message(error),
            "code": error.code,
            "retryable": error.retryable,
        },
        status=_STATUS_BY_ERROR_TYPE.get(error.type, status.HTTP_502_BAD_GATEWAY),
    )


def build_payment_order_service() -> PaymentOrderService:
    payment_service = get_payment_service()
    order_repository = OrderDjangoRepository()
    settings_store = SettingsStore(StoreSettingDjangoRepository())
    return PaymentOrderService(
        order_repository=order_repository,
        order_service=OrderService(
            order_repository=order_repository,
            product_repository=ProductDjangoRepository(),
            settings_store=settings_store,
            payment_service=payment_service,
        ),
        settings_store=settings_store,
        payment_service=payment_service,
    )


def webhook_signature(provider_id: str, request: Request) -> Optional[str]:
    """Collect the provider's signature headers into a single string."""
    if provider_id.lower() == "paypal":
        if not request.headers.get("PayPal-Transmission-Id"):
            return None
        return json.dumps(
            {
                key: request.headers.get(header, "")
                for key, header in _PAYPAL_SIGNATURE_HEADERS.items()
            }
        )
    return request.headers.get("Stripe-Signature")


class PaymentProvidersView(APIView):
    """GET /api/v1/payments/providers/"""

    permission_classes = [AllowAny]

    def get(self, request: Request) -> Response:
        providers = get_payment_service().get_provider_info()
        return Response(ProviderInfoSerializer(providers, many=True).data)


class CreatePaymentView(APIView):
    """POST /api/v1/orders/{order_id}/payment/

    Starts a provider payment and returns the approval URL the
    customer is redirected to.
    """

    permission_classes = [AllowAny]
    throttle_scope = "payment"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_payment_order_service()

    def post(self, request: Request, order_id: str) -> Response:
        try:
            payment = self._service.create_payment_order(str(order_id))
        except OrderNotFound:
            return Response(
                {"detail": "Order not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except OrderNotPayable as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_409_CONFLICT,
            )
        except PaymentFailed as exc:
            return payment_error_response(exc.error)

        out = CreatePaymentOutputSerializer(payment)
        return Response(out.data, status=status.HTTP_201_CREATED)


class CapturePaymentView(APIView):
    """POST /api/v1/orders/{order_id}/payment/capture/

    Captures an approved payment.  When the provider outcome is unclear
    a recovery task keeps polling and the client gets 202.
    """

    permission_classes = [AllowAny]
    throttle_scope = "payment"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_payment_order_service()

    def post(self, request: Request, order_id: str) -> Response:
        serializer = CapturePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        provider_payment_id = serializer.validated_data["provider_payment_id"]

        try:
            completion = self._service.capture_payment_order(
                str(order_id), provider_payment_id
            )
        except OrderNotFound:
            return Response(
                {"detail": "Order not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except PaymentVerificationFailed as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except PaymentFailed as exc:
            if exc.error.type in _NON_RECOVERABLE_ERROR_TYPES:
                return payment_error_response(exc.error)
            recover_payment.delay(str(order_id))
            logger.info(
                "payment.recovery_scheduled",
                order_id=str(order_id),
                error_type=exc.error.type.value,
            )
            return Response(
                {"detail": RECOVERY_PENDING_MESSAGE, "recovery_scheduled": True},
                status=status.HTTP_202_ACCEPTED,
            )

        return Response(
            {
                "updated": completion.updated,
                "order": OrderSerializer(completion.order).data,
            }
        )


class PaymentWebhookView(APIView):
    """POST /webhooks/payment/{provider_id}/

    Always answers 200 so the provider does not retry on our own
    failures; the outcome is reported in the body.
    """

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes: list = []

    def post(self, request: Request, provider_id: str) -> Response:
        try:
            ack = build_payment_order_service().process_webhook(
                provider_id,
                request.data,
                webhook_signature(provider_id, request),
            )
        except Exception:
            logger.exception("payment.webhook_endpoint_error", provider_id=provider_id)
            ack = {
                "received": True,
                "processed": False,
                "error": "Webhook processing failed",
            }
        return Response(ack, status=status.HTTP_200_OK)
