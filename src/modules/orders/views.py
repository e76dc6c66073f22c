"""Order API views.

Exposes checkout and the ``OrderService`` via HTTP using DRF.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.

Storefront reads (order detail, payment status) are public; status
changes, cancellations and refunds require an admin user.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, BasePermission, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.orders.checkout import CheckoutService
from modules.orders.constants import OrderStatus
from modules.orders.exceptions import (
    InvalidOrderStatus,
    InvalidPaymentStatus,
    OrderNotFound,
    RefundExceedsTotal,
    RefundFailed,
    RefundNotAllowed,
)
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    CheckoutSerializer,
    OrderSerializer,
    RefundOrderSerializer,
    UpdatePaymentStatusSerializer,
    UpdateStatusSerializer,
)
from modules.orders.services import OrderService
from modules.payments.apps import get_payment_service
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.store_settings.repositories.django_repository import (
    StoreSettingDjangoRepository,
)
from modules.store_settings.services import SettingsStore

ORDER_NOT_FOUND = {"detail": "Order not found."}


class CheckoutView(APIView):
    """POST /api/v1/checkout/

    201 with the order reference, 409 when stock changed and the
    customer must confirm the adjusted cart, 400 otherwise.
    """

    permission_classes = [AllowAny]
    throttle_scope = "checkout"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = CheckoutService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
            settings_store=SettingsStore(StoreSettingDjangoRepository()),
        )

    def post(self, request: Request) -> Response:
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        form, items, confirmed = serializer.to_dtos()

        result = self._service.process_checkout(form, items, confirmed=confirmed)

        if result.outcome == "success":
            return Response(
                {"order_id": result.order_id, "order_number": result.order_number},
                status=status.HTTP_201_CREATED,
            )
        if result.outcome == "needs_confirmation":
            return Response(
                {
                    "needs_confirmation": True,
                    "stock_issues": [
                        issue.model_dump(mode="json") for issue in result.stock_issues
                    ],
                    "adjusted_total": result.adjusted_total,
                },
                status=status.HTTP_409_CONFLICT,
            )
        return Response(
            {"detail": result.error, "field_errors": result.field_errors},
            status=status.HTTP_400_BAD_REQUEST,
        )


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` with injected repositories (DIP).
    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.all()
    serializer_class = OrderSerializer

    ADMIN_ACTIONS = {"partial_update", "cancel", "refund"}

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
            settings_store=SettingsStore(StoreSettingDjangoRepository()),
            payment_service=get_payment_service(),
        )

    def get_permissions(self) -> list[BasePermission]:
        if self.action in self.ADMIN_ACTIONS or (
            self.action == "payment_status" and self.request.method == "POST"
        ):
            return [IsAdminUser()]
        return [AllowAny()]

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = "payment" if self.action == "payment_status" else None
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Retrieve
    # ------------------------------------------------------------------

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(str(pk))
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Status Update
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/

        Updates order status.  Cancellations and refunds are **not**
        allowed via this endpoint; use the dedicated actions instead.
        """
        serializer = UpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        if new_status in {OrderStatus.CANCELLED, OrderStatus.REFUNDED}:
            return Response(
                {"detail": "Use the /cancel/ or /refund/ endpoint instead."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            order = self._service.update_status(
                order_id=str(pk),
                new_status=new_status,
                notes=serializer.validated_data["notes"],
            )
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except InvalidOrderStatus as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Payment status
    # ------------------------------------------------------------------

    @action(detail=True, methods=["get", "post"], url_path="payment-status")
    def payment_status(self, request: Request, pk: str | None = None) -> Response:
        """GET/POST /api/v1/orders/{pk}/payment-status/

        GET is polled by the storefront after redirect; POST lets an
        admin override the payment status.
        """
        if request.method == "GET":
            try:
                snapshot = self._service.check_order_payment_status(str(pk))
            except OrderNotFound:
                return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
            return Response(snapshot.model_dump(mode="json"))

        serializer = UpdatePaymentStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.update_payment_status(
                str(pk), serializer.validated_data["payment_status"]
            )
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except InvalidPaymentStatus as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Cancel & refund (dedicated actions)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Refunds a completed payment, then cancels and optionally restocks.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            outcome = self._service.cancel_order(
                str(pk),
                reason=serializer.validated_data["reason"] or None,
                should_restock=serializer.validated_data["should_restock"],
            )
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except InvalidOrderStatus as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except RefundFailed as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_502_BAD_GATEWAY)

        return Response(outcome.model_dump())

    @action(detail=True, methods=["post"])
    def refund(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/refund/

        Omitting ``amount`` refunds the whole order total.
        """
        serializer = RefundOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            outcome = self._service.refund_order(
                str(pk),
                amount=serializer.validated_data.get("amount"),
                reason=serializer.validated_data["reason"] or None,
            )
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except RefundNotAllowed as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except RefundExceedsTotal as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except RefundFailed as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_502_BAD_GATEWAY)

        return Response(outcome.model_dump())
