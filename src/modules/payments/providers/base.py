"""Payment provider contract.

One implementation per gateway.  Providers never raise for expected
failures: every operation returns a ``PaymentResult`` (or a
``WebhookResult``) so the orchestration layer can treat all gateways alike.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional, Tuple

from modules.payments.dtos import (
    CapturePaymentRequest,
    CapturePaymentResponse,
    CreatePaymentRequest,
    CreatePaymentResponse,
    PaymentProviderConfig,
    PaymentStatusResponse,
    RefundPaymentRequest,
    RefundPaymentResponse,
    WebhookResult,
)
from modules.payments.errors import PaymentResult


class PaymentProvider(ABC):
    provider_id: ClassVar[str]
    provider_name: ClassVar[str]
    supported_currencies: ClassVar[Tuple[str, ...]]
    supports_refunds: ClassVar[bool] = False

    @abstractmethod
    def initialize(self, config: PaymentProviderConfig) -> None:
        """Validate configuration; raise ``PaymentConfigurationError`` if unusable."""

    @abstractmethod
    def create_payment(
        self, request: CreatePaymentRequest
    ) -> PaymentResult[CreatePaymentResponse]: ...

    @abstractmethod
    def capture_payment(
        self, request: CapturePaymentRequest
    ) -> PaymentResult[CapturePaymentResponse]: ...

    @abstractmethod
    def get_payment_status(
        self, payment_id: str
    ) -> PaymentResult[PaymentStatusResponse]: ...

    @abstractmethod
    def process_webhook(
        self, payload: Any, signature: Optional[str] = None
    ) -> WebhookResult: ...

    def refund_payment(
        self, request: RefundPaymentRequest
    ) -> PaymentResult[RefundPaymentResponse]:
        raise NotImplementedError(f"{self.provider_name} does not support refunds")

    def supports_currency(self, currency: str) -> bool:
        return (currency or "").upper() in self.supported_currencies
