"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.payments.views import (
    CapturePaymentView,
    CreatePaymentView,
    PaymentProvidersView,
    PaymentWebhookView,
)

urlpatterns = [
    path(
        "payments/providers/",
        PaymentProvidersView.as_view(),
        name="payment-providers",
    ),
    path(
        "orders/<uuid:order_id>/payment/",
        CreatePaymentView.as_view(),
        name="order-payment-create",
    ),
    path(
        "orders/<uuid:order_id>/payment/capture/",
        CapturePaymentView.as_view(),
        name="order-payment-capture",
    ),
]

webhook_urlpatterns = [
    path(
        "payment/<str:provider_id>/",
        PaymentWebhookView.as_view(),
        name="payment-webhook",
    ),
]
