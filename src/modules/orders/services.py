"""Order service layer (Use Cases).

Orchestrates everything that happens to an order after checkout:
admin status changes, payment completion, payment failure,
cancellation and refunds.

Business rules enforced:
- Status transitions are validated against the state machine and every
  change is recorded in the status history.
- Payment completion is idempotent: a conditional update on
  ``payment_status <> COMPLETED`` lets exactly one trigger (client
  capture, webhook, recovery poll or admin) win.  Only the winner
  decrements stock and raises ``OrderPaymentCompleted``.
- Stock is decremented at payment completion and restored on
  cancellation of a paid order; unlimited stock is never touched.
- A payment failure never downgrades a COMPLETED or REFUNDED payment.
- Refunds never exceed the order total; the payment becomes REFUNDED
  only once the cumulative refunded amount reaches the total.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import structlog
from django.db import transaction
from django.utils import timezone

from modules.orders.constants import CANCELLABLE_STATES, OrderStatus
from modules.orders.dtos import (
    PaymentCompletionResult,
    PaymentStatusSnapshot,
    RefundOutcome,
)
from modules.orders.events import (
    OrderCancelled,
    OrderPaymentCompleted,
    OrderPaymentFailed,
    OrderRefunded,
    OrderStatusChanged,
)
from modules.orders.exceptions import (
    InvalidOrderStatus,
    InvalidPaymentStatus,
    OrderNotFound,
    RefundExceedsTotal,
    RefundFailed,
    RefundNotAllowed,
)
from modules.payments.constants import FAILURE_PAYMENT_STATUSES, PaymentStatus
from modules.payments.currency import format_amount
from modules.payments.dtos import RefundPaymentServiceRequest
from modules.payments.messages import get_payment_error_message

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.dtos import RefundPaymentResponse, WebhookOrderUpdate
    from modules.payments.orchestration import PaymentService
    from modules.products.repositories.interfaces import IProductRepository
    from modules.store_settings.services import SettingsStore

logger = structlog.get_logger(__name__)

REFUND_NOT_ALLOWED_CODE = "REFUND_NOT_ALLOWED"


class OrderService:
    """Application service for Order use-cases.

    Receives repositories and collaborators via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        settings_store: SettingsStore,
        payment_service: Optional[PaymentService] = None,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._settings = settings_store
        self._payments = payment_service

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def check_order_payment_status(self, order_id: str) -> PaymentStatusSnapshot:
        order = self.get_order(order_id)
        return PaymentStatusSnapshot(
            order_id=str(order.id),
            payment_status=order.payment_status,
            order_status=order.status,
            is_completed=order.payment_status == PaymentStatus.COMPLETED,
            last_updated=order.updated_at,
            transaction_id=order.transaction_id,
        )

    # ------------------------------------------------------------------
    # Admin commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def update_status(self, order_id: str, new_status: str, notes: str = "") -> Order:
        """Transition an order to a new status.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: transition is not allowed.
        """
        order = self._order_repo.get_for_update(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(
            order_id=str(order.id),
            current_status=order.status,
            new_status=new_status,
        )
        if not order.can_transition_to(new_status):
            log.warning("order.invalid_transition")
            raise InvalidOrderStatus(
                f"Cannot transition from {order.status} to {new_status}."
            )

        old_status = order.status
        order.status = new_status
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id, old_status=old_status, new_status=new_status
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=new_status,
            notes=notes,
            old_status=old_status,
        )
        log.info("order.status_updated")
        return self.get_order(str(order.id))

    def update_payment_status(self, order_id: str, new_status: str) -> Order:
        """Manual payment status override.

        Setting COMPLETED goes through ``complete_order_payment`` so stock
        and events behave exactly as for a provider-confirmed payment.
        A completed payment can only move to REFUNDED.
        """
        if new_status not in PaymentStatus.values:
            raise InvalidPaymentStatus(f"Unknown payment status {new_status}.")

        order = self.get_order(order_id)
        log = logger.bind(
            order_id=str(order.id),
            current_payment_status=order.payment_status,
            new_payment_status=new_status,
        )

        if new_status == PaymentStatus.COMPLETED:
            result = self.complete_order_payment(
                str(order.id),
                transaction_id=order.transaction_id,
                paid_amount=order.total,
            )
            log.info("order.payment_status_manual", updated=result.updated)
            return self.get_order(str(order.id))

        if (
            order.payment_status == PaymentStatus.COMPLETED
            and new_status != PaymentStatus.REFUNDED
        ):
            log.warning("order.payment_status_downgrade_rejected")
            raise InvalidPaymentStatus("A completed payment can only be marked as refunded.")

        with transaction.atomic():
            locked = self._order_repo.get_for_update(str(order.id))
            locked.payment_status = new_status
            self._order_repo.save(locked)
            self._order_repo.add_history(
                order_id=locked.id,
                status=locked.status,
                notes=f"Payment status set to {new_status} manually",
                old_status=locked.status,
            )
        log.info("order.payment_status_manual")
        return self.get_order(str(order.id))

    # ------------------------------------------------------------------
    # Payment reconciliation
    # ------------------------------------------------------------------

    @transaction.atomic
    def complete_order_payment(
        self,
        order_id: str,
        transaction_id: Optional[str],
        paid_amount: int,
        payer_email: Optional[str] = None,
    ) -> PaymentCompletionResult:
        """Apply a successful payment to an order exactly once.

        Called by the capture use case, the webhook handler, the recovery
        task and the admin override.  Returns ``updated=True`` only for the
        caller that actually completed the payment.
        """
        log = logger.bind(order_id=str(order_id), transaction_id=transaction_id)

        order = self._order_repo.get_by_id(order_id)
        if order is None:
            log.warning("order.payment_completion_order_missing")
            return PaymentCompletionResult(updated=False, order=None)
        if order.payment_status == PaymentStatus.COMPLETED:
            log.info("order.payment_already_completed")
            return PaymentCompletionResult(updated=False, order=order)

        values = {
            "status": OrderStatus.CONFIRMED,
            "payment_status": PaymentStatus.COMPLETED,
            "transaction_id": transaction_id,
            "paid_amount": paid_amount,
            "paid_at": timezone.now(),
        }
        if payer_email:
            values["payer_email"] = payer_email

        if not self._order_repo.claim_payment_completion(str(order.id), values):
            log.info("order.payment_completion_lost_race")
            return PaymentCompletionResult(
                updated=False, order=self._order_repo.get_by_id(str(order.id))
            )

        self._decrement_stock(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.CONFIRMED,
            notes=f"Payment completed (transaction {transaction_id})",
            old_status=order.status,
        )

        completed = self._order_repo.get_by_id(str(order.id))
        completed.add_domain_event(
            OrderPaymentCompleted(
                aggregate_id=completed.id,
                order_number=completed.order_number,
                transaction_id=transaction_id or "",
                paid_amount=paid_amount,
                payer_email=completed.payer_email,
                is_digital=completed.is_digital,
            )
        )
        self._order_repo.store_events(completed)

        if paid_amount != completed.total:
            log.warning(
                "order.paid_amount_mismatch",
                paid_amount=paid_amount,
                order_total=completed.total,
            )
        log.info("order.payment_completed", paid_amount=paid_amount)
        return PaymentCompletionResult(updated=True, order=completed)

    @transaction.atomic
    def mark_order_as_failed(
        self,
        order_id: str,
        payment_status: str = PaymentStatus.FAILED,
        reason: str = "",
    ) -> bool:
        """Cancel an unpaid order after a definitive payment failure."""
        log = logger.bind(order_id=str(order_id), payment_status=payment_status)

        order = self._order_repo.get_by_id(order_id)
        if order is None:
            log.warning("order.payment_failure_order_missing")
            return False
        if not self._order_repo.mark_payment_failed(str(order.id), payment_status):
            log.info("order.payment_failure_ignored", current=order.payment_status)
            return False

        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.CANCELLED,
            notes=reason or f"Payment {payment_status.lower()}",
            old_status=order.status,
        )
        order.add_domain_event(
            OrderPaymentFailed(
                aggregate_id=order.id, payment_status=payment_status, reason=reason
            )
        )
        self._order_repo.store_events(order)
        log.info("order.payment_failed", reason=reason)
        return True

    def update_order_from_webhook(
        self, update: WebhookOrderUpdate, payment_id: Optional[str] = None
    ) -> bool:
        """Apply a provider webhook to the order it refers to.

        Returns ``True`` when the order changed.
        """
        log = logger.bind(order_id=update.order_id, webhook_status=update.status)

        # The provider may only know its own payment reference
        order = (
            self._order_repo.get_by_id(update.order_id)
            or self._order_repo.get_by_payment_id(update.order_id)
            or self._order_repo.get_by_payment_id(payment_id or "")
        )
        if order is None:
            log.warning("order.webhook_order_not_found", payment_id=payment_id)
            return False

        if update.status == PaymentStatus.COMPLETED:
            result = self.complete_order_payment(
                str(order.id),
                transaction_id=update.transaction_id,
                paid_amount=(
                    update.paid_amount if update.paid_amount is not None else order.total
                ),
                payer_email=update.payer_email,
            )
            return result.updated

        if update.status in FAILURE_PAYMENT_STATUSES:
            return self.mark_order_as_failed(
                str(order.id),
                payment_status=update.status,
                reason=update.failure_reason or "",
            )

        if update.status == PaymentStatus.REFUNDED:
            # Refunds are recorded by refund_order / cancel_order
            log.info("order.webhook_refund_acknowledged")
            return False

        log.info("order.webhook_status_ignored")
        return False

    # ------------------------------------------------------------------
    # Cancellation & refunds
    # ------------------------------------------------------------------

    def cancel_order(
        self,
        order_id: str,
        reason: Optional[str] = None,
        should_restock: bool = True,
    ) -> RefundOutcome:
        """Cancel an order, refunding a completed payment first.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: the order can no longer be cancelled.
            RefundFailed: the provider refused the refund (order unchanged).
        """
        order = self.get_order(order_id)
        log = logger.bind(order_id=str(order.id), current_status=order.status)

        if order.status not in CANCELLABLE_STATES:
            log.warning("order.cancel_not_allowed")
            raise InvalidOrderStatus(f"Cannot cancel order in status {order.status}.")
        if order.status == OrderStatus.PROCESSING:
            log.warning("order.cancel_while_processing")

        reason = reason or f"Order cancelled: {order.order_number}"
        currency = self._settings.get_currency()
        was_paid = order.payment_status == PaymentStatus.COMPLETED

        refund: Optional[RefundPaymentResponse] = None
        if was_paid and order.transaction_id:
            refund = self._refund_for_cancellation(order, currency, reason)

        with transaction.atomic():
            locked = self._order_repo.get_for_update(str(order.id))
            if locked.status not in CANCELLABLE_STATES:
                raise InvalidOrderStatus(f"Cannot cancel order in status {locked.status}.")

            old_status = locked.status
            locked.status = OrderStatus.CANCELLED
            refunded_now = 0
            if refund is not None:
                refunded_now = refund.amount_refunded or (locked.total - locked.refund_amount)
                locked.refund_amount = min(locked.refund_amount + refunded_now, locked.total)
                locked.refund_id = refund.refund_id
                locked.refunded_at = refund.refunded_at
                locked.payment_status = PaymentStatus.REFUNDED

            # Stock only left the shelf if payment completed
            restocked = should_restock and was_paid
            if restocked:
                for item in locked.items.all():
                    self._product_repo.increment_stock(str(item.product_id), item.quantity)

            locked.add_domain_event(
                OrderCancelled(
                    aggregate_id=locked.id,
                    reason=reason,
                    refund_id=refund.refund_id if refund else None,
                    restocked=restocked,
                )
            )
            self._order_repo.save(locked)
            self._order_repo.add_history(
                order_id=locked.id,
                status=OrderStatus.CANCELLED,
                notes=reason,
                old_status=old_status,
            )

        message = f"Order {order.order_number} cancelled."
        if refund is not None:
            message += f" Refund of {_format(refunded_now, currency)} processed."
        log.info(
            "order.cancelled",
            refund_id=refund.refund_id if refund else None,
            restocked=restocked,
        )
        return RefundOutcome(
            refund_id=refund.refund_id if refund else None,
            amount_refunded=refunded_now,
            total_refunded=locked.refund_amount,
            message=message,
        )

    def refund_order(
        self,
        order_id: str,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> RefundOutcome:
        """Refund all or part of a completed payment.

        Raises:
            OrderNotFound: order does not exist.
            RefundNotAllowed: no provider, payment not completed, or bad amount.
            RefundExceedsTotal: cumulative refunds would exceed the total.
            RefundFailed: the provider refused the refund.
        """
        order = self.get_order(order_id)
        log = logger.bind(order_id=str(order.id))

        if not order.payment_provider_id:
            raise RefundNotAllowed("Order has no payment provider.")
        if order.payment_status != PaymentStatus.COMPLETED or not order.transaction_id:
            raise RefundNotAllowed("Only orders with a completed payment can be refunded.")

        currency = self._settings.get_currency()
        total = order.total
        already_refunded = order.refund_amount
        requested = amount if amount is not None else total
        if requested <= 0:
            raise RefundNotAllowed("Refund amount must be greater than 0.")
        if already_refunded + requested > total:
            log.warning(
                "order.refund_exceeds_total",
                requested=requested,
                already_refunded=already_refunded,
                total=total,
            )
            raise RefundExceedsTotal(
                f"Refund amount exceeds order total. Already refunded "
                f"{_format(already_refunded, currency)}, requested "
                f"{_format(requested, currency)}, order total {_format(total, currency)}."
            )

        result = self._require_payments().refund_payment(
            RefundPaymentServiceRequest(
                transaction_id=order.transaction_id,
                currency=currency,
                amount=requested,
                reason=reason or f"Refund for order {order.order_number}",
                provider_id=order.payment_provider_id,
            )
        )
        if not result.success:
            log.warning("order.refund_failed", error_code=result.error.code)
            raise RefundFailed(get_payment_error_message(result.error), result.error)

        refund = result.data
        refunded_now = refund.amount_refunded or requested
        with transaction.atomic():
            locked = self._order_repo.get_for_update(str(order.id))
            locked.refund_amount = min(locked.refund_amount + refunded_now, locked.total)
            locked.refund_id = refund.refund_id
            locked.refunded_at = refund.refunded_at
            full_refund = locked.refund_amount >= locked.total

            old_status = locked.status
            if full_refund:
                locked.payment_status = PaymentStatus.REFUNDED
                if locked.can_transition_to(OrderStatus.REFUNDED):
                    locked.status = OrderStatus.REFUNDED

            locked.add_domain_event(
                OrderRefunded(
                    aggregate_id=locked.id,
                    refund_id=refund.refund_id,
                    amount=refunded_now,
                    total_refunded=locked.refund_amount,
                    full_refund=full_refund,
                )
            )
            self._order_repo.save(locked)
            self._order_repo.add_history(
                order_id=locked.id,
                status=locked.status,
                notes=reason or f"Refund {refund.refund_id}",
                old_status=old_status,
            )

        message = (
            f"{'Full' if full_refund else 'Partial'} refund of "
            f"{_format(refunded_now, currency)} processed for order "
            f"{order.order_number}. Total refunded: {_format(locked.refund_amount, currency)}"
        )
        log.info(
            "order.refunded",
            refund_id=refund.refund_id,
            amount=refunded_now,
            total_refunded=locked.refund_amount,
            full_refund=full_refund,
        )
        return RefundOutcome(
            refund_id=refund.refund_id,
            amount_refunded=refunded_now,
            total_refunded=locked.refund_amount,
            message=message,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _decrement_stock(self, order: Order) -> None:
        items = list(order.items.all())
        products = self._product_repo.get_many_by_ids(str(item.product_id) for item in items)
        for item in items:
            product = products.get(str(item.product_id))
            if product is None or product.has_unlimited_stock:
                continue
            if product.stock < item.quantity:
                logger.warning(
                    "order.oversold_after_payment",
                    order_id=str(order.id),
                    product_id=str(item.product_id),
                    stock=product.stock,
                    quantity=item.quantity,
                )
            self._product_repo.decrement_stock(str(item.product_id), item.quantity)

    def _refund_for_cancellation(
        self, order: Order, currency: str, reason: str
    ) -> Optional[RefundPaymentResponse]:
        log = logger.bind(order_id=str(order.id))
        if not order.payment_provider_id:
            log.warning("order.cancel_refund_skipped", reason="no_payment_provider")
            return None

        result = self._require_payments().refund_payment(
            RefundPaymentServiceRequest(
                transaction_id=order.transaction_id,
                currency=currency,
                reason=reason,
                provider_id=order.payment_provider_id,
            )
        )
        if result.success:
            return result.data
        if result.error.code == REFUND_NOT_ALLOWED_CODE:
            log.warning("order.cancel_refund_not_allowed")
            return None
        log.error("order.cancel_refund_failed", error_code=result.error.code)
        raise RefundFailed(get_payment_error_message(result.error), result.error)

    def _require_payments(self) -> PaymentService:
        if self._payments is None:
            raise RuntimeError("OrderService was built without a payment service")
        return self._payments


def _format(amount: int, currency: str) -> str:
    try:
        return format_amount(amount, currency)
    except ValueError:
        return f"{amount / 100:.2f} {currency}"
