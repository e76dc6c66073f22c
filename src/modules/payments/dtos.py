"""Payment DTOs (Pydantic v2, immutable).

Amounts are always integer minor currency units.  Request models are
deliberately permissive: required-field checks belong to
``PaymentService`` so that bad input becomes a ``VALIDATION_ERROR``
result instead of an exception.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0


class WebhookConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    url: str = ""
    secret: str = ""


class PaymentProviderConfig(BaseModel):
    """Per-provider configuration consumed by ``PaymentProvider.initialize``."""

    model_config = ConfigDict(frozen=True)

    environment: Literal["sandbox", "production"] = "sandbox"
    credentials: Dict[str, str] = Field(default_factory=dict)
    default_currency: str = "USD"
    webhook: Optional[WebhookConfig] = None
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    timeout: float = 30.0
    options: Dict[str, Any] = Field(default_factory=dict)


class PaymentServiceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    providers: Dict[str, PaymentProviderConfig]
    default_provider: str
    base_url: str


# ---------------------------------------------------------------------------
# Shared value objects
# ---------------------------------------------------------------------------


class PaymentAddress(BaseModel):
    model_config = ConfigDict(frozen=True)

    line1: str
    line2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str


class PaymentCustomer(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    email: str = ""
    phone: Optional[str] = None


class PaymentPayerInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: Optional[str] = None
    name: Optional[str] = None
    payer_id: Optional[str] = None


class PaymentItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    quantity: int
    price: int


class PaymentMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_digital: bool = False
    items: List[PaymentItem] = Field(default_factory=list)
    store_name: Optional[str] = None


class PaymentReturnUrls(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: str
    cancel: str
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Provider requests / responses
# ---------------------------------------------------------------------------


class CreatePaymentRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str = ""
    order_number: str = ""
    amount: int = 0
    currency: str = ""
    description: Optional[str] = None
    customer: PaymentCustomer = Field(default_factory=PaymentCustomer)
    billing_address: Optional[PaymentAddress] = None
    shipping_address: Optional[PaymentAddress] = None
    metadata: Optional[PaymentMetadata] = None
    return_urls: Optional[PaymentReturnUrls] = None


class CreatePaymentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_id: str
    provider_payment_id: str
    status: str
    approval_url: Optional[str] = None
    client_token: Optional[str] = None
    provider_data: Dict[str, Any] = Field(default_factory=dict)


class CapturePaymentRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    provider_payment_id: str
    amount: Optional[int] = None


class CapturePaymentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    status: str
    amount_captured: int
    fees: Optional[int] = None
    payer_info: Optional[PaymentPayerInfo] = None
    provider_data: Dict[str, Any] = Field(default_factory=dict)


class PaymentStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    transaction_id: Optional[str] = None
    amount_paid: Optional[int] = None
    last_updated: datetime
    provider_data: Dict[str, Any] = Field(default_factory=dict)


class RefundPaymentRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    currency: str
    amount: Optional[int] = None
    reason: Optional[str] = None


class RefundPaymentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    refund_id: str
    status: str
    amount_refunded: int
    refunded_at: datetime


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class WebhookEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    event_type: str
    timestamp: datetime
    payment_id: str = ""
    order_id: Optional[str] = None
    data: Any = None


class WebhookOrderUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    status: str
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    paid_amount: Optional[int] = None
    payer_email: Optional[str] = None


class WebhookResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    processed: bool
    event: Optional[WebhookEvent] = None
    should_update_order: bool = False
    order_update: Optional[WebhookOrderUpdate] = None


# ---------------------------------------------------------------------------
# Orchestration service requests
# ---------------------------------------------------------------------------


class CreatePaymentServiceRequest(CreatePaymentRequest):
    """Same as ``CreatePaymentRequest``; return URLs are generated by the service."""

    provider_id: Optional[str] = None


class CapturePaymentServiceRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str = ""
    provider_payment_id: str = ""
    provider_id: Optional[str] = None


class RefundPaymentServiceRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str = ""
    currency: str = ""
    amount: Optional[int] = None
    reason: Optional[str] = None
    provider_id: Optional[str] = None


class ProviderInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    supported_currencies: List[str]
