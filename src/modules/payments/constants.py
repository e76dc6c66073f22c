"""Payment domain constants shared by orders and payments."""

from __future__ import annotations

from django.db import models


class PaymentStatus(models.TextChoices):
    CREATED = "CREATED", "Created"
    PENDING = "PENDING", "Pending"
    APPROVED = "APPROVED", "Approved"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    CANCELLED = "CANCELLED", "Cancelled"
    EXPIRED = "EXPIRED", "Expired"
    REFUNDED = "REFUNDED", "Refunded"


class RefundStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    CANCELLED = "CANCELLED", "Cancelled"


class PaymentMethod(models.TextChoices):
    CARD = "card", "Card"
    PAYPAL = "paypal", "PayPal"
    STRIPE = "stripe", "Stripe"
    BANK_TRANSFER = "bank_transfer", "Bank transfer"
    WALLET = "wallet", "Wallet"


# Checkout payment method -> provider that processes it
PAYMENT_METHOD_PROVIDERS: dict[str, str] = {
    "paypal": "paypal",
    "card": "stripe",
    "apple_pay": "stripe",
    "google_pay": "stripe",
}
DEFAULT_METHOD_PROVIDER = "paypal"

# Webhook statuses that cancel an unpaid order
FAILURE_PAYMENT_STATUSES: frozenset[str] = frozenset(
    {PaymentStatus.FAILED, PaymentStatus.CANCELLED}
)


def provider_for_payment_method(payment_method: str) -> str:
    return PAYMENT_METHOD_PROVIDERS.get(payment_method, DEFAULT_METHOD_PROVIDER)
