"""Payment orchestration across configured providers.

Business rules:
- Providers are built once at startup; any provider that fails to
  initialize, or a missing default provider, aborts startup.
- Provider selection: explicit id > first provider supporting the
  currency > configured default.
- Required fields are validated before any provider is called.
- A currency the selected provider cannot handle is rejected with
  ``UNSUPPORTED_CURRENCY`` without a network call.
- Unexpected provider exceptions are converted to retryable ``UNKNOWN``
  results; they never propagate to callers.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
from django.conf import settings

from modules.payments.dtos import (
    CapturePaymentRequest,
    CapturePaymentResponse,
    CapturePaymentServiceRequest,
    CreatePaymentResponse,
    CreatePaymentServiceRequest,
    PaymentProviderConfig,
    PaymentReturnUrls,
    PaymentServiceConfig,
    PaymentStatusResponse,
    ProviderInfo,
    RefundPaymentRequest,
    RefundPaymentResponse,
    RefundPaymentServiceRequest,
    RetryPolicy,
    WebhookConfig,
    WebhookResult,
)
from modules.payments.errors import (
    PaymentConfigurationError,
    PaymentErrorType,
    PaymentResult,
)
from modules.payments.factory import PaymentProviderFactory
from modules.payments.providers.base import PaymentProvider

logger = structlog.get_logger(__name__)


def _invalid(message: str) -> PaymentResult:
    return PaymentResult.fail(
        PaymentErrorType.VALIDATION_ERROR, message, "VALIDATION_ERROR"
    )


class PaymentService:
    def __init__(
        self,
        config: PaymentServiceConfig,
        factory: Optional[PaymentProviderFactory] = None,
    ) -> None:
        self._config = config
        self._factory = factory or PaymentProviderFactory()
        self._providers: Dict[str, PaymentProvider] = {}

    @classmethod
    def from_settings(cls, factory: Optional[PaymentProviderFactory] = None) -> PaymentService:
        """Build the service from ``settings.PAYMENTS``."""
        payments = settings.PAYMENTS
        retry = RetryPolicy(**payments["RETRY"])
        providers: Dict[str, PaymentProviderConfig] = {}
        for provider_id in (p.strip().lower() for p in payments["ENABLED_PROVIDERS"]):
            raw = payments["PROVIDERS"].get(provider_id, {})
            providers[provider_id] = PaymentProviderConfig(
                environment=raw.get("environment", "sandbox"),
                credentials={
                    "client_id": raw.get("client_id", ""),
                    "client_secret": raw.get("client_secret", ""),
                },
                default_currency=raw.get("default_currency", "USD"),
                webhook=WebhookConfig(
                    id=raw.get("webhook_id", ""),
                    secret=raw.get("webhook_secret", ""),
                    url=f"{settings.STORE_BASE_URL}/webhooks/payment/{provider_id}/",
                ),
                retry=retry,
                timeout=payments["TIMEOUT"],
            )
        config = PaymentServiceConfig(
            providers=providers,
            default_provider=payments["DEFAULT_PROVIDER"],
            base_url=settings.STORE_BASE_URL,
        )
        service = cls(config, factory)
        service.initialize()
        return service

    def initialize(self) -> None:
        failures: List[str] = []
        for provider_id, provider_config in self._config.providers.items():
            try:
                self._providers[provider_id] = self._factory.create_provider(
                    provider_id, provider_config
                )
                logger.info("payment.provider_initialized", provider_id=provider_id)
            except PaymentConfigurationError as exc:
                logger.error(
                    "payment.provider_initialization_failed",
                    provider_id=provider_id,
                    error=str(exc),
                )
                failures.append(f"{provider_id}: {exc}")

        if failures:
            raise PaymentConfigurationError(
                "Payment service initialization failed for providers: "
                + "; ".join(failures)
            )
        if self._config.default_provider not in self._providers:
            raise PaymentConfigurationError(
                f"Default payment provider '{self._config.default_provider}' "
                "is not configured"
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_payment(
        self, request: CreatePaymentServiceRequest
    ) -> PaymentResult[CreatePaymentResponse]:
        validation_error = self._validate_create_request(request)
        if validation_error:
            return validation_error

        provider, error = self._resolve_provider(request.provider_id, request.currency)
        if error:
            return error
        if not provider.supports_currency(request.currency):
            return self._unsupported_currency(provider, request.currency)

        provider_request = request.model_copy(
            update={"return_urls": request.return_urls or self._return_urls(request.order_id)}
        )
        logger.info(
            "payment.create_started",
            order_id=request.order_id,
            provider_id=provider.provider_id,
            amount=request.amount,
            currency=request.currency,
        )
        result = self._call(
            provider, "create_payment", lambda: provider.create_payment(provider_request)
        )
        self._log_result("payment.create", result, order_id=request.order_id)
        return result

    def capture_payment(
        self, request: CapturePaymentServiceRequest
    ) -> PaymentResult[CapturePaymentResponse]:
        if not request.order_id:
            return _invalid("Order ID is required")
        if not request.provider_payment_id:
            return _invalid("provider payment ID is required")

        provider, error = self._resolve_provider(request.provider_id)
        if error:
            return error

        capture_request = CapturePaymentRequest(
            order_id=request.order_id,
            provider_payment_id=request.provider_payment_id,
        )
        result = self._call(
            provider, "capture_payment", lambda: provider.capture_payment(capture_request)
        )
        self._log_result("payment.capture", result, order_id=request.order_id)
        return result

    def refund_payment(
        self, request: RefundPaymentServiceRequest
    ) -> PaymentResult[RefundPaymentResponse]:
        if not request.transaction_id:
            return _invalid("Transaction ID is required")
        if not request.currency:
            return _invalid("Currency is required")
        if request.amount is not None and request.amount <= 0:
            return _invalid("Refund amount must be greater than 0")

        provider, error = self._resolve_provider(request.provider_id, request.currency)
        if error:
            return error
        if not provider.supports_refunds:
            return PaymentResult.fail(
                PaymentErrorType.CONFIGURATION_ERROR,
                f"Provider '{provider.provider_id}' does not support refunds",
                "REFUND_NOT_SUPPORTED",
            )
        if not provider.supports_currency(request.currency):
            return self._unsupported_currency(provider, request.currency)

        refund_request = RefundPaymentRequest(
            transaction_id=request.transaction_id,
            currency=request.currency,
            amount=request.amount,
            reason=request.reason,
        )
        result = self._call(
            provider, "refund_payment", lambda: provider.refund_payment(refund_request)
        )
        self._log_result("payment.refund", result, transaction_id=request.transaction_id)
        return result

    def get_payment_status(
        self, provider_payment_id: str, provider_id: Optional[str] = None
    ) -> PaymentResult[PaymentStatusResponse]:
        if not provider_payment_id:
            return _invalid("provider payment ID is required")

        provider, error = self._resolve_provider(provider_id)
        if error:
            return error
        return self._call(
            provider,
            "get_payment_status",
            lambda: provider.get_payment_status(provider_payment_id),
        )

    def process_webhook(
        self, provider_id: str, payload: Any, signature: Optional[str] = None
    ) -> WebhookResult:
        provider = self._providers.get((provider_id or "").lower())
        if provider is None:
            logger.warning("payment.webhook_unknown_provider", provider_id=provider_id)
            return WebhookResult(processed=False)
        try:
            return provider.process_webhook(payload, signature)
        except Exception:
            logger.exception("payment.webhook_failed", provider_id=provider_id)
            return WebhookResult(processed=False)

    # ------------------------------------------------------------------
    # Provider queries
    # ------------------------------------------------------------------

    def get_available_providers(self) -> List[str]:
        return list(self._providers)

    def get_provider_info(self) -> List[ProviderInfo]:
        return [
            ProviderInfo(
                id=provider.provider_id,
                name=provider.provider_name,
                supported_currencies=list(provider.supported_currencies),
            )
            for provider in self._providers.values()
        ]

    def provider_supports_currency(self, provider_id: str, currency: str) -> bool:
        provider = self._providers.get((provider_id or "").lower())
        return provider is not None and provider.supports_currency(currency)

    def get_best_provider_for_currency(self, currency: str) -> Optional[str]:
        for provider_id, provider in self._providers.items():
            if provider.supports_currency(currency):
                return provider_id
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_create_request(
        self, request: CreatePaymentServiceRequest
    ) -> Optional[PaymentResult]:
        if not request.order_id:
            return _invalid("Order ID is required")
        if not request.order_number:
            return _invalid("Order number is required")
        if request.amount <= 0:
            return _invalid("Amount must be greater than 0")
        if not request.currency:
            return _invalid("Currency is required")
        if not request.customer.name:
            return _invalid("Customer name is required")
        if not request.customer.email:
            return _invalid("Customer email is required")
        if request.provider_id and request.provider_id.lower() not in self._providers:
            return _invalid(
                f"Specified provider '{request.provider_id}' is not available. "
                f"Available providers: {', '.join(self._providers)}"
            )
        return None

    def _resolve_provider(
        self, provider_id: Optional[str], currency: Optional[str] = None
    ) -> Tuple[Optional[PaymentProvider], Optional[PaymentResult]]:
        if provider_id:
            selected = provider_id.lower()
        elif currency:
            selected = (
                self.get_best_provider_for_currency(currency)
                or self._config.default_provider
            )
        else:
            selected = self._config.default_provider

        provider = self._providers.get(selected)
        if provider is None:
            return None, PaymentResult.fail(
                PaymentErrorType.CONFIGURATION_ERROR,
                f"Payment provider '{selected}' is not available",
                "PROVIDER_NOT_FOUND",
            )
        return provider, None

    def _unsupported_currency(self, provider: PaymentProvider, currency: str) -> PaymentResult:
        return PaymentResult.fail(
            PaymentErrorType.VALIDATION_ERROR,
            f"Currency '{currency}' not supported by {provider.provider_name}. "
            f"Supported: {', '.join(provider.supported_currencies)}",
            "UNSUPPORTED_CURRENCY",
        )

    def _return_urls(self, order_id: str) -> PaymentReturnUrls:
        base = self._config.base_url.rstrip("/")
        return PaymentReturnUrls(
            success=f"{base}/checkout/success/{order_id}",
            cancel=f"{base}/checkout",
            error=f"{base}/checkout/error/{order_id}",
        )

    def _call(
        self,
        provider: PaymentProvider,
        operation: str,
        func: Callable[[], PaymentResult],
    ) -> PaymentResult:
        try:
            result = func()
        except Exception as exc:
            logger.exception(
                "payment.provider_unexpected_error",
                provider_id=provider.provider_id,
                operation=operation,
            )
            return PaymentResult.fail(
                PaymentErrorType.UNKNOWN,
                f"Unexpected error during {operation}: {exc}",
                "UNEXPECTED_ERROR",
                retryable=True,
            )
        return result.model_copy(
            update={"metadata": {**result.metadata, "provider_id": provider.provider_id}}
        )

    @staticmethod
    def _log_result(event: str, result: PaymentResult, **context: Any) -> None:
        if result.success:
            logger.info(f"{event}_succeeded", **context)
        else:
            logger.warning(
                f"{event}_failed",
                error_type=result.error.type.value,
                error_code=result.error.code,
                retryable=result.error.retryable,
                **context,
            )
