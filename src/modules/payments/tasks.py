"""Asynchronous payment tasks."""

import structlog
from celery import shared_task
from django.conf import settings

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.payments.apps import get_payment_service
from modules.payments.recovery import PaymentRecoveryService, RecoveryOutcome
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.store_settings.repositories.django_repository import (
    StoreSettingDjangoRepository,
)
from modules.store_settings.services import SettingsStore

logger = structlog.get_logger(__name__)


def build_recovery_service() -> PaymentRecoveryService:
    payment_service = get_payment_service()
    order_service = OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
        settings_store=SettingsStore(StoreSettingDjangoRepository()),
        payment_service=payment_service,
    )
    return PaymentRecoveryService(order_service, payment_service)


@shared_task(name="payments.recover_payment")
def recover_payment(order_id: str, attempt: int = 1) -> dict:
    """Poll an order until its payment is final, re-enqueueing itself."""
    result = build_recovery_service().check(order_id, attempt)

    if result.outcome == RecoveryOutcome.RETRY:
        recover_payment.apply_async(
            args=[order_id],
            kwargs={"attempt": attempt + 1},
            countdown=settings.PAYMENTS["RECOVERY"]["interval_seconds"],
        )

    logger.info(
        "recover_payment.executed",
        order_id=order_id,
        attempt=attempt,
        outcome=result.outcome.value,
    )
    return {"outcome": result.outcome.value, "attempt": attempt, "message": result.message}
