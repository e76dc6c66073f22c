"""Payment use cases bound to orders.

Bridges the provider-agnostic ``PaymentService`` and the Order aggregate:

- ``create_payment_order``: only PENDING, unpaid orders can start a
  payment.  Amount is the order total, currency comes from the store
  settings; the provider payment id is stored on the order.
- ``capture_payment_order``: the provider payment id must match the one
  stored on the order before anything is captured.  A successful capture
  is applied through ``OrderService.complete_order_payment``.
- ``process_webhook``: provider verification/parsing, then the order
  update is delegated to ``OrderService.update_order_from_webhook``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog
from django.db import transaction

from modules.orders.constants import OrderStatus
from modules.orders.dtos import PaymentCompletionResult
from modules.orders.exceptions import OrderNotFound
from modules.payments.constants import PaymentStatus
from modules.payments.dtos import (
    CapturePaymentServiceRequest,
    CreatePaymentResponse,
    CreatePaymentServiceRequest,
    PaymentAddress,
    PaymentCustomer,
    PaymentItem,
    PaymentMetadata,
    PaymentStatusResponse,
)
from modules.payments.errors import (
    OrderNotPayable,
    PaymentError,
    PaymentErrorType,
    PaymentFailed,
    PaymentVerificationFailed,
)

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.services import OrderService
    from modules.payments.orchestration import PaymentService
    from modules.store_settings.services import SettingsStore

logger = structlog.get_logger(__name__)

ORDER_NOT_PAYABLE_MESSAGE = "Order is no longer available for payment."
VERIFICATION_FAILED_MESSAGE = "Payment verification failed. Please contact support."


class PaymentOrderService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        order_service: OrderService,
        settings_store: SettingsStore,
        payment_service: PaymentService,
    ) -> None:
        self._order_repo = order_repository
        self._orders = order_service
        self._settings = settings_store
        self._payments = payment_service

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_payment_order(self, order_id: str) -> CreatePaymentResponse:
        """Start a provider payment for an order.

        Raises:
            OrderNotFound: order does not exist.
            OrderNotPayable: order is not PENDING or already paid.
            PaymentFailed: the provider (or validation) rejected the payment.
        """
        order = self._get_order(order_id)
        log = logger.bind(order_id=str(order.id), provider_id=order.payment_provider_id)

        if (
            order.status != OrderStatus.PENDING
            or order.payment_status == PaymentStatus.COMPLETED
        ):
            log.warning("payment.order_not_payable", status=order.status)
            raise OrderNotPayable(ORDER_NOT_PAYABLE_MESSAGE)

        provider_id = order.payment_provider_id or None
        if provider_id and provider_id not in self._payments.get_available_providers():
            log.error("payment.provider_unavailable")
            raise PaymentFailed(
                PaymentError.create(
                    PaymentErrorType.CONFIGURATION_ERROR,
                    f"Payment provider '{provider_id}' is not available",
                    "PROVIDER_NOT_FOUND",
                )
            )

        pricing = self._settings.get_pricing_config()
        items = list(order.items.all())
        request = CreatePaymentServiceRequest(
            order_id=str(order.id),
            order_number=order.order_number,
            amount=order.total,
            currency=pricing.currency,
            customer=PaymentCustomer(
                name=order.customer_name,
                email=order.customer_email,
                phone=order.customer_phone or None,
            ),
            shipping_address=_shipping_address(order),
            metadata=PaymentMetadata(
                is_digital=order.is_digital,
                items=[
                    PaymentItem(name=i.product_name, quantity=i.quantity, price=i.price)
                    for i in items
                ],
                store_name=pricing.store_name,
            ),
            provider_id=provider_id,
        )

        result = self._payments.create_payment(request)
        if not result.success:
            log.warning(
                "payment.create_failed",
                error_type=result.error.type.value,
                error_code=result.error.code,
            )
            raise PaymentFailed(result.error)

        payment = result.data
        with transaction.atomic():
            locked = self._order_repo.get_for_update(str(order.id))
            if locked.payment_status != PaymentStatus.COMPLETED:
                locked.payment_id = payment.provider_payment_id
                locked.payment_status = payment.status
            locked.payment_provider_id = result.metadata.get(
                "provider_id", payment.provider_id
            )
            self._order_repo.save(locked)

        log.info("payment.created", provider_payment_id=payment.provider_payment_id)
        return payment

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def capture_payment_order(
        self, order_id: str, provider_payment_id: str
    ) -> PaymentCompletionResult:
        """Capture an approved payment and complete the order.

        Raises:
            OrderNotFound: order does not exist.
            PaymentVerificationFailed: payment id does not belong to the order.
            PaymentFailed: the provider rejected the capture.
        """
        order = self._get_order(order_id)
        log = logger.bind(order_id=str(order.id), provider_payment_id=provider_payment_id)

        if not order.payment_id or order.payment_id != provider_payment_id:
            log.warning("payment.verification_failed", expected=order.payment_id)
            raise PaymentVerificationFailed(VERIFICATION_FAILED_MESSAGE)

        if order.payment_status == PaymentStatus.COMPLETED:
            # A webhook got there first
            log.info("payment.capture_skipped_already_completed")
            return PaymentCompletionResult(updated=False, order=order)

        result = self._payments.capture_payment(
            CapturePaymentServiceRequest(
                order_id=str(order.id),
                provider_payment_id=provider_payment_id,
                provider_id=order.payment_provider_id or None,
            )
        )
        if not result.success:
            log.warning(
                "payment.capture_failed",
                error_type=result.error.type.value,
                error_code=result.error.code,
                retryable=result.error.retryable,
            )
            raise PaymentFailed(result.error)

        capture = result.data
        completion = self._orders.complete_order_payment(
            str(order.id),
            transaction_id=capture.transaction_id,
            paid_amount=capture.amount_captured,
            payer_email=capture.payer_info.email if capture.payer_info else None,
        )
        log.info("payment.captured", updated=completion.updated)
        return completion

    # ------------------------------------------------------------------
    # Webhooks & status
    # ------------------------------------------------------------------

    def process_webhook(
        self, provider_id: str, payload: Any, signature: Optional[str] = None
    ) -> Dict[str, Any]:
        result = self._payments.process_webhook(provider_id, payload, signature)
        ack: Dict[str, Any] = {"received": True, "processed": result.processed}

        if result.processed and result.should_update_order and result.order_update:
            ack["order_updated"] = self._orders.update_order_from_webhook(
                result.order_update,
                payment_id=result.event.payment_id if result.event else None,
            )

        logger.info(
            "payment.webhook_handled",
            provider_id=provider_id,
            event_type=result.event.event_type if result.event else None,
            **ack,
        )
        return ack

    def get_payment_status(
        self, provider_payment_id: str, provider_id: Optional[str] = None
    ) -> PaymentStatusResponse:
        result = self._payments.get_payment_status(provider_payment_id, provider_id)
        if not result.success:
            raise PaymentFailed(result.error)
        return result.data

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_order(self, order_id: str) -> Order:
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order


def _shipping_address(order: Order) -> Optional[PaymentAddress]:
    if order.is_digital or not order.has_shipping_address:
        return None
    return PaymentAddress(
        line1=order.shipping_line1,
        line2=order.shipping_line2,
        city=order.shipping_city or "",
        state=order.shipping_state,
        postal_code=order.shipping_postal_code or "",
        country=order.shipping_country or "",
    )
