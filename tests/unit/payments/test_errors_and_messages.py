"""Unit tests for the payment error taxonomy, customer messages and currency helpers."""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.payments.constants import provider_for_payment_method
from modules.payments.currency import (
    format_amount,
    major_unit_to_minor,
    minor_to_major_unit,
)
from modules.payments.errors import PaymentError, PaymentErrorType, PaymentResult
from modules.payments.messages import (
    RECOVERY_DECLINED,
    SERVICE_UNAVAILABLE,
    get_payment_error_message,
)

pytestmark = pytest.mark.unit


class TestPaymentError:
    @pytest.mark.parametrize(
        ("error_type", "retryable"),
        [
            (PaymentErrorType.NETWORK_ERROR, True),
            (PaymentErrorType.TIMEOUT, True),
            (PaymentErrorType.RATE_LIMITED, True),
            (PaymentErrorType.UNKNOWN, True),
            (PaymentErrorType.PAYMENT_DECLINED, False),
            (PaymentErrorType.VALIDATION_ERROR, False),
            (PaymentErrorType.CONFIGURATION_ERROR, False),
        ],
    )
    def test_retryable_defaults_follow_type(self, error_type, retryable):
        assert PaymentError.create(error_type, "msg", "CODE").retryable is retryable

    def test_explicit_retryable_wins(self):
        error = PaymentError.create(PaymentErrorType.PROVIDER_ERROR, "msg", "CODE", retryable=True)

        assert error.retryable is True

    def test_result_envelopes(self):
        ok = PaymentResult.ok({"id": 1}, provider_id="paypal")
        failed = PaymentResult.fail(PaymentErrorType.TIMEOUT, "slow", "TIMEOUT")

        assert ok.success and ok.error is None
        assert ok.metadata == {"provider_id": "paypal"}
        assert not failed.success and failed.data is None
        assert failed.error.code == "TIMEOUT"


class TestCustomerMessages:
    def test_provider_not_found_reads_as_unavailable(self):
        error = PaymentError.create(
            PaymentErrorType.CONFIGURATION_ERROR, "stripe missing", "PROVIDER_NOT_FOUND"
        )

        assert get_payment_error_message(error) == SERVICE_UNAVAILABLE

    def test_validation_message_is_passed_through(self):
        error = PaymentError.create(
            PaymentErrorType.VALIDATION_ERROR, "Amount must be greater than 0", "VALIDATION_ERROR"
        )

        assert get_payment_error_message(error) == "Amount must be greater than 0"

    def test_internal_details_are_hidden(self):
        error = PaymentError.create(
            PaymentErrorType.PROVIDER_ERROR, "HTTP 500 from api-m.paypal.com", "PAYPAL_API_ERROR"
        )

        message = get_payment_error_message(error)
        assert "paypal.com" not in message
        assert "contact support" in message

    def test_declined_and_missing_error(self):
        declined = PaymentError.create(PaymentErrorType.PAYMENT_DECLINED, "x", "INSTRUMENT_DECLINED")

        assert "declined" in get_payment_error_message(declined)
        assert get_payment_error_message(None) == "Payment failed. Please try again."
        assert "different payment method" in RECOVERY_DECLINED


class TestCurrency:
    def test_minor_major_conversions(self):
        assert minor_to_major_unit(1050, "usd") == Decimal("10.50")
        assert str(minor_to_major_unit(7, "EUR")) == "0.07"
        assert major_unit_to_minor("29.25", "USD") == 2925
        assert major_unit_to_minor("0.005", "USD") == 1

    def test_format_amount(self):
        assert format_amount(123456, "USD") == "$1234.56"
        assert format_amount(990, "ILS") == "₪9.90"

    def test_unsupported_currency_raises(self):
        with pytest.raises(ValueError):
            minor_to_major_unit(100, "JPY")

    def test_payment_method_routing(self):
        assert provider_for_payment_method("paypal") == "paypal"
        assert provider_for_payment_method("card") == "stripe"
        assert provider_for_payment_method("something-else") == "paypal"
