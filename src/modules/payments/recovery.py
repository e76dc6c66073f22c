"""Payment recovery after an inconclusive capture.

When a capture fails with a transient error the payment may still have
gone through; the provider webhook (or a later provider status poll)
will tell.  Recovery polls the order up to ``max_attempts`` times,
``interval_seconds`` apart (20 x 2 s by default), and only then gives
up and cancels the order.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

import structlog
from django.conf import settings
from pydantic import BaseModel, ConfigDict

from modules.orders.constants import OrderStatus
from modules.orders.exceptions import OrderNotFound
from modules.payments.constants import FAILURE_PAYMENT_STATUSES, PaymentStatus
from modules.payments.messages import RECOVERY_DECLINED, RECOVERY_FAILED

if TYPE_CHECKING:
    from modules.orders.services import OrderService
    from modules.payments.orchestration import PaymentService

logger = structlog.get_logger(__name__)


class RecoveryOutcome(str, Enum):
    COMPLETED = "completed"
    RETRY = "retry"
    FAILED = "failed"


class RecoveryCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: RecoveryOutcome
    attempt: int
    message: Optional[str] = None


class PaymentRecoveryService:
    def __init__(
        self,
        order_service: OrderService,
        payment_service: PaymentService,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._orders = order_service
        self._payments = payment_service
        self.max_attempts = (
            max_attempts
            if max_attempts is not None
            else settings.PAYMENTS["RECOVERY"]["max_attempts"]
        )

    def check(self, order_id: str, attempt: int) -> RecoveryCheck:
        log = logger.bind(order_id=order_id, attempt=attempt)

        try:
            order = self._orders.get_order(order_id)
        except OrderNotFound:
            log.warning("payment.recovery_order_missing")
            return RecoveryCheck(
                outcome=RecoveryOutcome.FAILED, attempt=attempt, message=RECOVERY_FAILED
            )

        if order.payment_status == PaymentStatus.COMPLETED:
            log.info("payment.recovery_completed")
            return RecoveryCheck(outcome=RecoveryOutcome.COMPLETED, attempt=attempt)

        if (
            order.payment_status in FAILURE_PAYMENT_STATUSES
            or order.status == OrderStatus.CANCELLED
        ):
            log.info("payment.recovery_failed", payment_status=order.payment_status)
            return RecoveryCheck(
                outcome=RecoveryOutcome.FAILED,
                attempt=attempt,
                message=_failure_message(order.payment_status),
            )

        if self._reconcile_with_provider(order):
            log.info("payment.recovery_reconciled")
            return RecoveryCheck(outcome=RecoveryOutcome.COMPLETED, attempt=attempt)

        if attempt >= self.max_attempts:
            self._orders.mark_order_as_failed(
                order_id,
                reason=f"Payment not confirmed after {attempt} recovery attempts",
            )
            log.warning("payment.recovery_exhausted")
            return RecoveryCheck(
                outcome=RecoveryOutcome.FAILED,
                attempt=attempt,
                message=_failure_message(order.payment_status),
            )

        log.info("payment.recovery_retry")
        return RecoveryCheck(outcome=RecoveryOutcome.RETRY, attempt=attempt)

    def _reconcile_with_provider(self, order) -> bool:
        """Complete the order if the provider reports a captured payment."""
        if not order.payment_id:
            return False
        result = self._payments.get_payment_status(
            order.payment_id, order.payment_provider_id or None
        )
        if not result.success:
            logger.info(
                "payment.recovery_status_unavailable",
                order_id=str(order.id),
                error_code=result.error.code,
            )
            return False

        status = result.data
        if status.status != PaymentStatus.COMPLETED or not status.transaction_id:
            return False
        completion = self._orders.complete_order_payment(
            str(order.id),
            transaction_id=status.transaction_id,
            paid_amount=status.amount_paid if status.amount_paid is not None else order.total,
        )
        return completion.order is not None


def _failure_message(payment_status: str) -> str:
    if payment_status == PaymentStatus.FAILED:
        return RECOVERY_DECLINED
    return RECOVERY_FAILED
