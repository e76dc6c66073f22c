"""Event handlers for Orders domain events.

These run after commit.  Confirmation emails and digital delivery hook
in at ``OrderPaymentCompleted``; the handlers here record the follow-up
work in the structured log.
"""

from __future__ import annotations

import structlog

from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderPaymentCompleted,
    OrderPaymentFailed,
    OrderRefunded,
    OrderStatusChanged,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info(
            "order.event.created",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            total=event.total,
        )


class OrderPaymentCompletedHandler(IEventHandler[OrderPaymentCompleted]):
    def handle(self, event: OrderPaymentCompleted) -> None:
        log = logger.bind(
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
        )
        log.info(
            "order.event.payment_completed",
            transaction_id=event.transaction_id,
            paid_amount=event.paid_amount,
        )
        if event.payer_email:
            log.info("order.confirmation_email_requested", recipient=event.payer_email)
        if event.is_digital:
            log.info("order.digital_delivery_requested")


class OrderPaymentFailedHandler(IEventHandler[OrderPaymentFailed]):
    def handle(self, event: OrderPaymentFailed) -> None:
        logger.info(
            "order.event.payment_failed",
            order_id=str(event.aggregate_id),
            payment_status=event.payment_status,
            reason=event.reason,
        )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            "order.event.cancelled",
            order_id=str(event.aggregate_id),
            refund_id=event.refund_id,
            restocked=event.restocked,
        )


class OrderRefundedHandler(IEventHandler[OrderRefunded]):
    def handle(self, event: OrderRefunded) -> None:
        logger.info(
            "order.event.refunded",
            order_id=str(event.aggregate_id),
            refund_id=event.refund_id,
            amount=event.amount,
            full_refund=event.full_refund,
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.event.status_changed",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
        )


order_created_handler = OrderCreatedHandler()
order_payment_completed_handler = OrderPaymentCompletedHandler()
order_payment_failed_handler = OrderPaymentFailedHandler()
order_cancelled_handler = OrderCancelledHandler()
order_refunded_handler = OrderRefundedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
