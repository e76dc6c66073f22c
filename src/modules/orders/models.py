"""Order, OrderItem, and OrderStatusHistory models.

Business rules implemented:
- Amounts are integer minor currency units.
- ``total`` is always ``subtotal + shipping_amount + tax_amount``.
- ``is_digital`` is derived once at creation and never changes.
- Digital orders store no shipping address (all ``shipping_*`` NULL).
- ``refund_amount`` can never exceed the order total (DB constraint).
- Order number auto-generated as human-readable identifier.
- OrderItem snapshots product name and price at checkout time.
- Product FK uses PROTECT to preserve financial history.
- Orders are never deleted; cancellation is a status.
"""

from __future__ import annotations

import secrets
from typing import Any

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
)
from modules.orders.exceptions import OrderNumberGenerationError
from modules.payments.constants import PaymentMethod, PaymentStatus
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier auto-generated on first
    save (format: ``ORD-YYYYMMDD-XXXXXX``).  The UUIDv7 ``id`` is used for
    all internal references, API lookups and as the provider ``custom_id``.

    ``payment_id`` is the provider's payment reference (e.g. the PayPal
    order id) and is what webhooks and captures are verified against.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )

    # Customer
    customer_name: models.CharField = models.CharField(max_length=255)
    customer_email: models.EmailField = models.EmailField()
    customer_phone: models.CharField = models.CharField(
        max_length=50, blank=True, default=""
    )

    # Shipping address (NULL for digital orders)
    shipping_line1: models.CharField = models.CharField(  # noqa: DJ01
        max_length=255, null=True, blank=True
    )
    shipping_line2: models.CharField = models.CharField(  # noqa: DJ01
        max_length=255, null=True, blank=True
    )
    shipping_city: models.CharField = models.CharField(  # noqa: DJ01
        max_length=100, null=True, blank=True
    )
    shipping_state: models.CharField = models.CharField(  # noqa: DJ01
        max_length=100, null=True, blank=True
    )
    shipping_postal_code: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20, null=True, blank=True
    )
    shipping_country: models.CharField = models.CharField(  # noqa: DJ01
        max_length=100, null=True, blank=True
    )

    # Payment
    payment_method: models.CharField = models.CharField(
        max_length=30, default=PaymentMethod.PAYPAL
    )
    payment_provider_id: models.CharField = models.CharField(
        max_length=50, blank=True, default=""
    )
    payment_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=255, null=True, blank=True, db_index=True
    )
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    transaction_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=255, null=True, blank=True
    )
    payer_email: models.EmailField = models.EmailField(  # noqa: DJ01
        null=True, blank=True
    )
    paid_amount: models.PositiveIntegerField = models.PositiveIntegerField(
        null=True, blank=True
    )
    paid_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    # Refunds
    refund_amount: models.PositiveIntegerField = models.PositiveIntegerField(default=0)
    refund_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=255, null=True, blank=True
    )
    refunded_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    is_digital: models.BooleanField = models.BooleanField(default=False)
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )

    # Totals
    subtotal: models.PositiveIntegerField = models.PositiveIntegerField()
    shipping_amount: models.PositiveIntegerField = models.PositiveIntegerField(default=0)
    tax_amount: models.PositiveIntegerField = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["payment_status"], name="orders_payment_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=Q(
                    refund_amount__lte=F("subtotal")
                    + F("shipping_amount")
                    + F("tax_amount")
                ),
                name="orders_refund_within_total",
            ),
        ]

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def total(self) -> int:
        return self.subtotal + self.shipping_amount + self.tax_amount

    @property
    def has_shipping_address(self) -> bool:
        return bool(self.shipping_line1)

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is in a terminal state."""
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        allowed = VALID_TRANSITIONS.get(self.status, set())
        return new_status in allowed

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
                logger.warning("order.number_collision", attempt=attempt + 1)
            else:
                raise OrderNumberGenerationError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status}/{self.payment_status})"


class OrderItem(BaseModel):
    """Line item linking an Order to a Product.

    ``product_name`` and ``price`` are **snapshots** taken at checkout;
    they never change even if the product is later edited.  Items are
    immutable once created.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    product_name: models.CharField = models.CharField(max_length=255)
    price: models.PositiveIntegerField = models.PositiveIntegerField()
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    @property
    def line_total(self) -> int:
        return self.price * self.quantity

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def __str__(self) -> str:
        return f"{self.product_name} x{self.quantity}"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    Written on creation, admin status changes, payment completion,
    payment failure, cancellation and refund.  ``notes`` carries the
    reason (e.g. the cancellation reason or the capture transaction id).
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.new_status}"
