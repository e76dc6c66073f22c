"""PayPal Checkout (REST v2) provider.

- Orders are created with ``intent=CAPTURE``; our order id travels as
  ``custom_id`` and the order number as ``reference_id``.
- OAuth2 client-credentials tokens are cached until shortly before expiry.
- Transport errors, 5xx and 429 responses are retried with exponential
  backoff following the configured ``RetryPolicy``.  Mutating calls carry a
  ``PayPal-Request-Id`` so a retried POST is not applied twice.
- Webhooks are verified through PayPal's verify-webhook-signature API.
  Sandbox simulator events (ids starting with ``WH-``) skip verification.
"""

from __future__ import annotations

import json
import time
from decimal import InvalidOperation
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

import httpx
import structlog
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from modules.payments.constants import PaymentStatus, RefundStatus
from modules.payments.currency import major_unit_to_minor, minor_to_major_unit
from modules.payments.dtos import (
    CapturePaymentRequest,
    CapturePaymentResponse,
    CreatePaymentRequest,
    CreatePaymentResponse,
    PaymentAddress,
    PaymentMetadata,
    PaymentPayerInfo,
    PaymentProviderConfig,
    PaymentStatusResponse,
    RefundPaymentRequest,
    RefundPaymentResponse,
    RetryPolicy,
    WebhookEvent,
    WebhookOrderUpdate,
    WebhookResult,
)
from modules.payments.errors import (
    PaymentConfigurationError,
    PaymentErrorType,
    PaymentResult,
)
from modules.payments.providers.base import PaymentProvider

logger = structlog.get_logger(__name__)

API_URLS = {
    "production": "https://api-m.paypal.com",
    "sandbox": "https://api-m.sandbox.paypal.com",
}

# Seconds subtracted from ``expires_in`` so a token is never used at the edge
TOKEN_EXPIRY_MARGIN = 60

ORDER_STATUS_MAP = {
    "CREATED": PaymentStatus.CREATED,
    "SAVED": PaymentStatus.PENDING,
    "PAYER_ACTION_REQUIRED": PaymentStatus.PENDING,
    "APPROVED": PaymentStatus.APPROVED,
    "COMPLETED": PaymentStatus.COMPLETED,
    "CANCELLED": PaymentStatus.CANCELLED,
    "VOIDED": PaymentStatus.CANCELLED,
}

REFUND_STATUS_MAP = {
    "COMPLETED": RefundStatus.COMPLETED,
    "PENDING": RefundStatus.PENDING,
    "FAILED": RefundStatus.FAILED,
    "CANCELLED": RefundStatus.FAILED,
}

# PayPal error ``issue`` -> taxonomy
ISSUE_ERROR_TYPES = {
    "INSTRUMENT_DECLINED": PaymentErrorType.PAYMENT_DECLINED,
    "TRANSACTION_REFUSED": PaymentErrorType.PAYMENT_DECLINED,
    "INSUFFICIENT_FUNDS": PaymentErrorType.INSUFFICIENT_FUNDS,
    "PAYER_CANNOT_PAY": PaymentErrorType.INSUFFICIENT_FUNDS,
    "CARD_EXPIRED": PaymentErrorType.EXPIRED_CARD,
}

CAPTURE_FAILURE_EVENTS = {"PAYMENT.CAPTURE.DENIED", "PAYMENT.CAPTURE.DECLINED"}


class PayPalTokenError(Exception):
    """The OAuth2 token endpoint rejected the request."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Failed to get PayPal access token: HTTP {status_code}")
        self.status_code = status_code


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


class PayPalProvider(PaymentProvider):
    provider_id = "paypal"
    provider_name = "PayPal"
    supported_currencies = ("USD", "EUR", "ILS")
    supports_refunds = True

    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.Client] = None
        self._retry = RetryPolicy()
        self._environment = "sandbox"
        self._client_id = ""
        self._client_secret = ""
        self._webhook_id = ""
        self._brand_name = ""
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, config: PaymentProviderConfig) -> None:
        client_id = config.credentials.get("client_id")
        client_secret = config.credentials.get("client_secret")
        if not client_id or not client_secret:
            raise PaymentConfigurationError(
                "PayPal requires client_id and client_secret in credentials"
            )
        if not self.supports_currency(config.default_currency):
            raise PaymentConfigurationError(
                f"Default currency '{config.default_currency}' not supported by "
                f"PayPal. Supported: {', '.join(self.supported_currencies)}"
            )

        self._environment = config.environment
        self._client_id = client_id
        self._client_secret = client_secret
        self._retry = config.retry
        self._webhook_id = config.webhook.id if config.webhook else ""
        self._brand_name = str(config.options.get("brand_name", ""))
        self._client = httpx.Client(
            base_url=API_URLS[config.environment],
            timeout=config.timeout,
            transport=self._transport,
        )
        logger.info(
            "paypal.initialized",
            environment=self._environment,
            default_currency=config.default_currency,
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def create_payment(
        self, request: CreatePaymentRequest
    ) -> PaymentResult[CreatePaymentResponse]:
        currency = request.currency.upper()
        if not self.supports_currency(currency):
            return PaymentResult.fail(
                PaymentErrorType.VALIDATION_ERROR,
                f"Currency '{request.currency}' not supported by PayPal provider. "
                f"Supported: {', '.join(self.supported_currencies)}",
                "UNSUPPORTED_CURRENCY",
            )

        metadata = request.metadata or PaymentMetadata()
        purchase_unit: Dict[str, Any] = {
            "reference_id": request.order_number,
            "description": request.description
            or f"Order #{request.order_number} - {request.customer.name}'s Order",
            "custom_id": request.order_id,
            "amount": {
                "currency_code": currency,
                "value": str(minor_to_major_unit(request.amount, currency)),
            },
        }
        if request.shipping_address and not metadata.is_digital:
            purchase_unit["shipping"] = _to_paypal_shipping(
                request.customer.name, request.shipping_address
            )

        experience: Dict[str, Any] = {
            "shipping_preference": (
                "NO_SHIPPING" if metadata.is_digital else "SET_PROVIDED_ADDRESS"
            ),
            "user_action": "PAY_NOW",
            "brand_name": metadata.store_name or self._brand_name,
        }
        if request.return_urls:
            experience["return_url"] = request.return_urls.success
            experience["cancel_url"] = request.return_urls.cancel

        body = {
            "intent": "CAPTURE",
            "purchase_units": [purchase_unit],
            "payment_source": {"paypal": {"experience_context": experience}},
        }

        try:
            response = self._authorized(
                "POST",
                "/v2/checkout/orders",
                json=body,
                headers={"PayPal-Request-Id": str(uuid4())},
            )
        except (PayPalTokenError, httpx.TransportError) as exc:
            return self._request_failure(exc, "CREATE_PAYMENT_FAILED", "create payment")

        if response.is_error:
            return self._http_failure(response, "PAYPAL_API_ERROR", "PayPal API error")

        data = response.json()
        links = data.get("links") or []
        approval_url = next(
            (
                link.get("href")
                for link in links
                if link.get("rel") in ("approve", "payer-action")
            ),
            None,
        )
        logger.info(
            "paypal.order_created",
            order_id=request.order_id,
            paypal_order_id=data.get("id"),
            amount=request.amount,
            currency=currency,
        )
        return PaymentResult.ok(
            CreatePaymentResponse(
                provider_id=self.provider_id,
                provider_payment_id=data["id"],
                status=self.map_order_status(data.get("status", "")),
                approval_url=approval_url,
                provider_data={
                    "paypal_order_id": data["id"],
                    "paypal_status": data.get("status"),
                    "links": links,
                },
            )
        )

    def capture_payment(
        self, request: CapturePaymentRequest
    ) -> PaymentResult[CapturePaymentResponse]:
        try:
            response = self._authorized(
                "POST",
                f"/v2/checkout/orders/{request.provider_payment_id}/capture",
                json={},
                headers={"PayPal-Request-Id": str(uuid4())},
            )
        except (PayPalTokenError, httpx.TransportError) as exc:
            return self._request_failure(exc, "CAPTURE_PAYMENT_FAILED", "capture payment")

        if response.is_error:
            return self._http_failure(response, "CAPTURE_FAILED", "PayPal capture failed")

        data = response.json()
        if data.get("status") != "COMPLETED":
            return PaymentResult.fail(
                PaymentErrorType.PAYMENT_DECLINED,
                f"Payment not completed. Status: {data.get('status')}",
                "PAYMENT_NOT_COMPLETED",
                retryable=False,
            )

        try:
            capture = data["purchase_units"][0]["payments"]["captures"][0]
            amount = capture["amount"]
            amount_captured = major_unit_to_minor(amount["value"], amount["currency_code"])
        except (KeyError, IndexError, TypeError, ValueError, InvalidOperation):
            return PaymentResult.fail(
                PaymentErrorType.PROVIDER_ERROR,
                "No capture data returned from PayPal",
                "NO_CAPTURE_DATA",
                retryable=False,
                provider_error=data,
            )

        payer = data.get("payer") or {}
        name = payer.get("name") or {}
        full_name = f"{name.get('given_name', '')} {name.get('surname', '')}".strip()

        logger.info(
            "paypal.payment_captured",
            order_id=request.order_id,
            transaction_id=capture["id"],
            amount_captured=amount_captured,
        )
        return PaymentResult.ok(
            CapturePaymentResponse(
                transaction_id=capture["id"],
                status=PaymentStatus.COMPLETED,
                amount_captured=amount_captured,
                payer_info=PaymentPayerInfo(
                    email=payer.get("email_address"),
                    name=full_name or None,
                    payer_id=payer.get("payer_id"),
                ),
                provider_data={
                    "paypal_capture_id": capture["id"],
                    "paypal_status": capture.get("status"),
                    "capture_time": capture.get("create_time"),
                },
            )
        )

    def get_payment_status(self, payment_id: str) -> PaymentResult[PaymentStatusResponse]:
        try:
            response = self._authorized("GET", f"/v2/checkout/orders/{payment_id}")
        except (PayPalTokenError, httpx.TransportError) as exc:
            return self._request_failure(exc, "GET_STATUS_FAILED", "get payment status")

        if response.is_error:
            return self._http_failure(
                response, "GET_STATUS_FAILED", "Failed to get PayPal payment status"
            )

        data = response.json()
        transaction_id = None
        amount_paid = None
        captures = (
            ((data.get("purchase_units") or [{}])[0].get("payments") or {}).get("captures")
            or []
        )
        if captures:
            transaction_id = captures[0].get("id")
            amount = captures[0].get("amount") or {}
            if amount.get("value") and amount.get("currency_code"):
                amount_paid = major_unit_to_minor(amount["value"], amount["currency_code"])

        return PaymentResult.ok(
            PaymentStatusResponse(
                status=self.map_order_status(data.get("status", "")),
                transaction_id=transaction_id,
                amount_paid=amount_paid,
                last_updated=timezone.now(),
                provider_data=data,
            )
        )

    def refund_payment(
        self, request: RefundPaymentRequest
    ) -> PaymentResult[RefundPaymentResponse]:
        currency = request.currency.upper()
        body: Dict[str, Any] = {}
        if request.amount:
            body["amount"] = {
                "value": str(minor_to_major_unit(request.amount, currency)),
                "currency_code": currency,
            }
        if request.reason:
            body["note_to_payer"] = request.reason

        logger.info(
            "paypal.refund_requested",
            capture_id=request.transaction_id,
            amount=request.amount,
            full_refund=request.amount is None,
        )
        try:
            response = self._authorized(
                "POST",
                f"/v2/payments/captures/{request.transaction_id}/refund",
                json=body,
                headers={
                    "Prefer": "return=representation",
                    "PayPal-Request-Id": str(uuid4()),
                },
            )
        except (PayPalTokenError, httpx.TransportError) as exc:
            return self._request_failure(exc, "REFUND_NETWORK_ERROR", "refund payment")

        if response.status_code == 422:
            return PaymentResult.fail(
                PaymentErrorType.VALIDATION_ERROR,
                "Refund not possible. Transaction may already be refunded or "
                "outside the 180-day refund window.",
                "REFUND_NOT_ALLOWED",
                retryable=False,
                provider_error=_safe_json(response),
            )
        if response.status_code == 404:
            return PaymentResult.fail(
                PaymentErrorType.VALIDATION_ERROR,
                "Transaction not found. Please verify the transaction ID.",
                "TRANSACTION_NOT_FOUND",
                retryable=False,
            )
        if response.is_error:
            return self._http_failure(response, "REFUND_FAILED", "PayPal refund failed")

        data = response.json()
        amount = data.get("amount") or {}
        amount_refunded = 0
        if amount.get("value") and amount.get("currency_code"):
            amount_refunded = major_unit_to_minor(amount["value"], amount["currency_code"])

        logger.info(
            "paypal.refund_processed",
            refund_id=data.get("id"),
            status=data.get("status"),
            amount_refunded=amount_refunded,
        )
        return PaymentResult.ok(
            RefundPaymentResponse(
                refund_id=data["id"],
                status=self.map_refund_status(data.get("status", "")),
                amount_refunded=amount_refunded,
                refunded_at=_parse_time(data.get("create_time")),
            ),
            provider_data=data,
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def process_webhook(self, payload: Any, signature: Optional[str] = None) -> WebhookResult:
        if not isinstance(payload, dict) or not payload.get("event_type"):
            logger.warning("paypal.webhook_malformed")
            return WebhookResult(processed=False)

        event_type = payload["event_type"]
        logger.info(
            "paypal.webhook_received",
            event_id=payload.get("id"),
            event_type=event_type,
            resource_type=payload.get("resource_type"),
        )

        if not self._verify_webhook_signature(payload, signature):
            logger.warning("paypal.webhook_unverified", event_id=payload.get("id"))
            return WebhookResult(processed=False)

        try:
            resource = payload.get("resource") or {}
            order_id = _extract_order_id(resource)
            event = WebhookEvent(
                event_id=str(payload.get("id", "")),
                event_type=event_type,
                timestamp=_parse_time(payload.get("create_time")),
                payment_id=str(resource.get("id", "")),
                order_id=order_id,
                data=payload,
            )
            if not order_id:
                logger.warning("paypal.webhook_without_order", event_type=event_type)
                return WebhookResult(processed=True, event=event)

            status = None
            transaction_id = None
            paid_amount = None
            failure_reason = None
            if event_type == "PAYMENT.CAPTURE.COMPLETED":
                status = PaymentStatus.COMPLETED
                transaction_id = resource.get("id")
                amount = resource.get("amount") or {}
                if amount.get("value") and amount.get("currency_code"):
                    paid_amount = major_unit_to_minor(amount["value"], amount["currency_code"])
            elif event_type in CAPTURE_FAILURE_EVENTS:
                status = PaymentStatus.FAILED
                failure_reason = (resource.get("status_details") or {}).get("reason")
            elif event_type == "PAYMENT.CAPTURE.REFUNDED":
                status = PaymentStatus.REFUNDED
            elif event_type == "CHECKOUT.ORDER.APPROVED":
                # Capture happens in the client flow
                logger.info("paypal.webhook_order_approved", order_id=order_id)
            else:
                logger.info("paypal.webhook_ignored", event_type=event_type)
        except (KeyError, TypeError, ValueError, InvalidOperation):
            logger.exception("paypal.webhook_parse_failed", event_id=payload.get("id"))
            return WebhookResult(processed=False)

        order_update = None
        if status is not None:
            order_update = WebhookOrderUpdate(
                order_id=order_id,
                status=status,
                transaction_id=transaction_id,
                failure_reason=failure_reason,
                paid_amount=paid_amount,
            )
        return WebhookResult(
            processed=True,
            event=event,
            should_update_order=order_update is not None,
            order_update=order_update,
        )

    def _verify_webhook_signature(self, event: Dict[str, Any], signature: Optional[str]) -> bool:
        if self._environment == "sandbox" and str(event.get("id", "")).startswith("WH-"):
            logger.warning("paypal.webhook_verification_skipped", event_id=event.get("id"))
            return True

        if not signature:
            logger.error("paypal.webhook_signature_missing")
            return False
        try:
            headers = json.loads(signature)
        except ValueError:
            logger.error("paypal.webhook_signature_malformed")
            return False
        if (
            not isinstance(headers, dict)
            or not headers.get("transmissionId")
            or not headers.get("transmissionSig")
        ):
            logger.error("paypal.webhook_signature_incomplete")
            return False
        if not self._webhook_id:
            logger.error("paypal.webhook_id_not_configured")
            return False

        body = {
            "transmission_id": headers["transmissionId"],
            "transmission_time": headers.get("transmissionTime"),
            "cert_url": headers.get("certUrl"),
            "auth_algo": headers.get("authAlgo"),
            "transmission_sig": headers["transmissionSig"],
            "webhook_id": self._webhook_id,
            "webhook_event": event,
        }
        try:
            response = self._authorized(
                "POST", "/v1/notifications/verify-webhook-signature", json=body
            )
        except (PayPalTokenError, httpx.TransportError):
            logger.exception("paypal.webhook_verification_error")
            return False
        if response.is_error:
            logger.error("paypal.webhook_verification_failed", status=response.status_code)
            return False

        verified = _safe_json(response).get("verification_status") == "SUCCESS"
        logger.info("paypal.webhook_verification", verified=verified)
        return verified

    # ------------------------------------------------------------------
    # Status mapping
    # ------------------------------------------------------------------

    @staticmethod
    def map_order_status(paypal_status: str) -> str:
        status = ORDER_STATUS_MAP.get((paypal_status or "").upper())
        if status is None:
            logger.warning("paypal.unknown_status", paypal_status=paypal_status)
            return PaymentStatus.PENDING
        return status

    @staticmethod
    def map_refund_status(paypal_status: str) -> str:
        status = REFUND_STATUS_MAP.get((paypal_status or "").upper())
        if status is None:
            logger.warning("paypal.unknown_refund_status", paypal_status=paypal_status)
            return RefundStatus.PENDING
        return status

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying transport errors, 5xx and 429."""
        if self._client is None:
            raise PaymentConfigurationError("PayPal provider is not initialized")

        policy = self._retry
        attempts = max(policy.max_attempts, 1)
        delay = policy.initial_delay
        for attempt in range(1, attempts + 1):
            try:
                response = self._client.request(method, path, **kwargs)
            except httpx.TransportError as exc:
                if attempt == attempts:
                    raise
                logger.warning(
                    "paypal.request_retry",
                    path=path,
                    attempt=attempt,
                    error=exc.__class__.__name__,
                )
            else:
                if attempt == attempts or not is_retryable_status(response.status_code):
                    return response
                logger.warning(
                    "paypal.request_retry",
                    path=path,
                    attempt=attempt,
                    status=response.status_code,
                )
            self._sleep(min(delay, policy.max_delay))
            delay *= policy.backoff_multiplier
        raise AssertionError("unreachable")

    def _authorized(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._get_access_token()}"}
        headers.update(kwargs.pop("headers", {}) or {})
        response = self._send(method, path, headers=headers, **kwargs)
        if response.status_code == 401:
            self._access_token = None
        return response

    def _get_access_token(self) -> str:
        now = time.monotonic()
        if self._access_token and now < self._token_expires_at:
            return self._access_token

        response = self._send(
            "POST",
            "/v1/oauth2/token",
            auth=(self._client_id, self._client_secret),
            data={"grant_type": "client_credentials"},
        )
        if response.is_error:
            raise PayPalTokenError(response.status_code)

        payload = response.json()
        self._access_token = payload["access_token"]
        expires_in = int(payload.get("expires_in", 0))
        self._token_expires_at = now + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
        return self._access_token

    def _request_failure(self, exc: Exception, code: str, action: str) -> PaymentResult:
        if isinstance(exc, PayPalTokenError):
            if is_retryable_status(exc.status_code):
                return PaymentResult.fail(
                    PaymentErrorType.PROVIDER_ERROR,
                    str(exc),
                    "TOKEN_REQUEST_FAILED",
                    retryable=True,
                )
            return PaymentResult.fail(
                PaymentErrorType.AUTHENTICATION_FAILED,
                str(exc),
                "AUTHENTICATION_FAILED",
            )
        if isinstance(exc, httpx.TimeoutException):
            logger.warning("paypal.request_timeout", action=action)
            return PaymentResult.fail(
                PaymentErrorType.TIMEOUT,
                f"PayPal timed out while trying to {action}",
                "TIMEOUT",
            )
        logger.warning("paypal.network_error", action=action, error=str(exc))
        return PaymentResult.fail(
            PaymentErrorType.NETWORK_ERROR,
            f"Failed to {action} with PayPal: {exc}",
            code,
        )

    def _http_failure(self, response: httpx.Response, code: str, message: str) -> PaymentResult:
        status = response.status_code
        body = _safe_json(response)
        logger.error("paypal.api_error", status=status, code=code, body=body)

        if status == 401:
            return PaymentResult.fail(
                PaymentErrorType.AUTHENTICATION_FAILED,
                f"{message}: PayPal rejected the credentials",
                "AUTHENTICATION_FAILED",
                provider_error=body,
            )
        if status == 429:
            return PaymentResult.fail(
                PaymentErrorType.RATE_LIMITED,
                f"{message}: rate limited by PayPal",
                "RATE_LIMITED",
                provider_error=body,
            )
        issue = _extract_issue(body)
        if issue in ISSUE_ERROR_TYPES:
            return PaymentResult.fail(
                ISSUE_ERROR_TYPES[issue],
                f"{message}: {issue}",
                issue,
                retryable=False,
                provider_error=body,
            )
        return PaymentResult.fail(
            PaymentErrorType.PROVIDER_ERROR,
            f"{message}: HTTP {status}",
            code,
            retryable=is_retryable_status(status),
            provider_error=body,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_paypal_shipping(customer_name: str, address: PaymentAddress) -> Dict[str, Any]:
    shipping_address = {
        "address_line_1": address.line1,
        "admin_area_2": address.city,
        "postal_code": address.postal_code,
        "country_code": address.country,
    }
    if address.line2:
        shipping_address["address_line_2"] = address.line2
    if address.state:
        shipping_address["admin_area_1"] = address.state
    return {"name": {"full_name": customer_name}, "address": shipping_address}


def _extract_order_id(resource: Dict[str, Any]) -> Optional[str]:
    if resource.get("custom_id"):
        return resource["custom_id"]
    purchase_units = resource.get("purchase_units") or []
    if purchase_units and purchase_units[0].get("custom_id"):
        return purchase_units[0]["custom_id"]
    related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
    return related.get("order_id")


def _extract_issue(body: Dict[str, Any]) -> Optional[str]:
    details = body.get("details") or []
    if details and isinstance(details[0], dict) and details[0].get("issue"):
        return details[0]["issue"]
    return body.get("name")


def _safe_json(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {"raw": response.text}
    return data if isinstance(data, dict) else {"data": data}


def _parse_time(value: Optional[str]):
    parsed = parse_datetime(value) if value else None
    return parsed or timezone.now()
