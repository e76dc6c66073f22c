"""Customer-facing messages for payment errors.

Internal error details stay in the logs; customers only see these.
"""

from __future__ import annotations

from typing import Optional

from modules.payments.errors import PaymentError, PaymentErrorType

GENERIC_FAILURE = "Payment failed. Please try again."
SYSTEM_ERROR = "Payment system error. Please try again or contact support."
SERVICE_UNAVAILABLE = "Payment service is currently unavailable. Please try again later."
TEMPORARILY_UNAVAILABLE = "Payment service is temporarily unavailable. Please try again."

RECOVERY_DECLINED = "Payment was declined. Please try again with a different payment method."
RECOVERY_FAILED = (
    "Payment processing failed. Please try again or contact support if you "
    "believe this payment was processed."
)

_MESSAGES_BY_CODE = {
    "UNSUPPORTED_CURRENCY": (
        "This payment method doesn't support the selected currency. "
        "Please contact support."
    ),
    "PROVIDER_NOT_FOUND": SERVICE_UNAVAILABLE,
    "CONFIGURATION_ERROR": SERVICE_UNAVAILABLE,
}

_MESSAGES_BY_TYPE = {
    PaymentErrorType.CONFIGURATION_ERROR: SERVICE_UNAVAILABLE,
    PaymentErrorType.INSUFFICIENT_FUNDS: "Insufficient funds. Please check your payment method.",
    PaymentErrorType.PAYMENT_DECLINED: (
        "Payment was declined. Please try a different payment method."
    ),
    PaymentErrorType.EXPIRED_CARD: (
        "Payment method has expired. Please update your payment information."
    ),
    PaymentErrorType.AUTHENTICATION_FAILED: "Payment authentication failed. Please try again.",
    PaymentErrorType.RATE_LIMITED: (
        "Too many payment attempts. Please wait a moment and try again."
    ),
    PaymentErrorType.TIMEOUT: TEMPORARILY_UNAVAILABLE,
    PaymentErrorType.NETWORK_ERROR: TEMPORARILY_UNAVAILABLE,
}


def get_payment_error_message(error: Optional[PaymentError]) -> str:
    if error is None:
        return GENERIC_FAILURE
    if error.code in _MESSAGES_BY_CODE:
        return _MESSAGES_BY_CODE[error.code]
    # Validation messages are written for customers
    if error.type == PaymentErrorType.VALIDATION_ERROR:
        return error.message
    return _MESSAGES_BY_TYPE.get(error.type, SYSTEM_ERROR)
