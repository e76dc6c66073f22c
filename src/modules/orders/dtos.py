"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

Input:
- ``CartItemDTO``: a cart line as sent by the client (never trusted).
- ``ShippingAddressDTO`` / ``CheckoutFormDTO``: customer checkout form.

Output:
- ``StockAdjustmentDTO`` / ``StockValidationResult``: stock validator output.
- ``OrderTotals``: subtotal, shipping, tax and total in minor units.
- ``CheckoutResult``: one of success / needs_confirmation / error.
- ``PaymentCompletionResult``, ``PaymentStatusSnapshot``, ``RefundOutcome``.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from modules.orders.constants import StockAction

if TYPE_CHECKING:
    from modules.orders.models import Order


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CartItemDTO(BaseModel):
    """A cart line.  ``price`` is the client's snapshot and is revalidated."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = ""
    price: int = 0
    quantity: int = 0
    is_digital: bool = False
    image: Optional[str] = None


class ShippingAddressDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    line1: str = ""
    line2: Optional[str] = None
    city: str = ""
    state: Optional[str] = None
    postal_code: str = ""
    country: str = ""


class CheckoutFormDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    customer_name: str
    customer_email: str
    customer_phone: str = ""
    shipping_address: Optional[ShippingAddressDTO] = None
    payment_method: str = "paypal"


# ---------------------------------------------------------------------------
# Stock validation
# ---------------------------------------------------------------------------


class StockAdjustmentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str
    requested_quantity: int
    available_quantity: int
    action: StockAction


class StockValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_errors: List[str] = Field(default_factory=list)
    validated_items: List[CartItemDTO] = Field(default_factory=list)
    stock_issues: List[StockAdjustmentDTO] = Field(default_factory=list)
    adjusted_total: int = 0

    @property
    def has_errors(self) -> bool:
        return bool(self.product_errors)

    @property
    def has_stock_issues(self) -> bool:
        return bool(self.stock_issues)


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class OrderTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: int
    shipping: int
    tax: int
    total: int
    is_digital: bool


class CheckoutResult(BaseModel):
    """Outcome of ``CheckoutService.process_checkout``.

    ``needs_confirmation`` is a control-flow signal, not an error: the
    client shows ``stock_issues`` and resubmits with ``confirmed=True``.
    """

    model_config = ConfigDict(frozen=True)

    outcome: Literal["success", "needs_confirmation", "error"]
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    stock_issues: List[StockAdjustmentDTO] = Field(default_factory=list)
    adjusted_total: Optional[int] = None
    error: Optional[str] = None
    field_errors: Dict[str, List[str]] = Field(default_factory=dict)

    @classmethod
    def succeeded(cls, order: Order) -> CheckoutResult:
        return cls(outcome="success", order_id=str(order.id), order_number=order.order_number)

    @classmethod
    def needs_confirmation(
        cls, stock_issues: List[StockAdjustmentDTO], adjusted_total: int
    ) -> CheckoutResult:
        return cls(
            outcome="needs_confirmation",
            stock_issues=stock_issues,
            adjusted_total=adjusted_total,
        )

    @classmethod
    def failed(
        cls, error: str, field_errors: Optional[Dict[str, List[str]]] = None
    ) -> CheckoutResult:
        return cls(outcome="error", error=error, field_errors=field_errors or {})


# ---------------------------------------------------------------------------
# Payment reconciliation / refunds
# ---------------------------------------------------------------------------


class PaymentCompletionResult(BaseModel):
    """``updated`` is ``True`` only for the trigger that completed payment."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    updated: bool
    order: Optional[Any] = None


class PaymentStatusSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    payment_status: str
    order_status: str
    is_completed: bool
    last_updated: datetime
    transaction_id: Optional[str] = None


class RefundOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    refund_id: Optional[str] = None
    amount_refunded: int = 0
    total_refunded: int = 0
    message: str
