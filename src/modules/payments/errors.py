"""Payment error taxonomy and result wrapper.

Every provider operation returns a ``PaymentResult``: either ``success``
with ``data`` or a normalized ``PaymentError``.  Raw provider exceptions
never leave the orchestration layer.

Retryable by default: NETWORK_ERROR, TIMEOUT, RATE_LIMITED, UNKNOWN.
Everything else requires the caller (or the customer) to act.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class PaymentErrorType(str, Enum):
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    PAYMENT_DECLINED = "PAYMENT_DECLINED"
    EXPIRED_CARD = "EXPIRED_CARD"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


RETRYABLE_ERROR_TYPES: frozenset[PaymentErrorType] = frozenset(
    {
        PaymentErrorType.NETWORK_ERROR,
        PaymentErrorType.TIMEOUT,
        PaymentErrorType.RATE_LIMITED,
        PaymentErrorType.UNKNOWN,
    }
)


class PaymentError(BaseModel):
    """Provider-agnostic error description."""

    model_config = ConfigDict(frozen=True)

    type: PaymentErrorType
    code: str
    message: str
    retryable: bool
    provider_error: Optional[Any] = None

    @classmethod
    def create(
        cls,
        type: PaymentErrorType,
        message: str,
        code: str,
        retryable: Optional[bool] = None,
        provider_error: Any = None,
    ) -> PaymentError:
        if retryable is None:
            retryable = type in RETRYABLE_ERROR_TYPES
        return cls(
            type=type,
            code=code,
            message=message,
            retryable=retryable,
            provider_error=provider_error,
        )


class PaymentResult(BaseModel, Generic[T]):
    """Uniform success/failure envelope for payment operations."""

    model_config = ConfigDict(frozen=True)

    success: bool
    data: Optional[T] = None
    error: Optional[PaymentError] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, data: T, **metadata: Any) -> PaymentResult[T]:
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        type: PaymentErrorType,
        message: str,
        code: str,
        retryable: Optional[bool] = None,
        provider_error: Any = None,
    ) -> PaymentResult[T]:
        return cls(
            success=False,
            error=PaymentError.create(type, message, code, retryable, provider_error),
        )


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------


class PaymentConfigurationError(Exception):
    """A provider is missing or misconfigured; raised at startup."""


class ProviderNotFound(PaymentConfigurationError):
    """No provider is registered under the requested id."""


class PaymentFailed(Exception):
    """A payment operation returned a ``PaymentError``.

    Raised by the payment use cases so views can map the error type
    to an HTTP status and a customer-facing message.
    """

    def __init__(self, error: PaymentError) -> None:
        super().__init__(error.message)
        self.error = error


class PaymentVerificationFailed(Exception):
    """The provider payment id does not belong to the order."""


class OrderNotPayable(Exception):
    """The order is no longer in a state that accepts payment."""
