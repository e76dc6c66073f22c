from __future__ import annotations

from typing import TYPE_CHECKING

from django.apps import AppConfig, apps

if TYPE_CHECKING:
    from modules.payments.orchestration import PaymentService


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.payments"
    label = "payments"

    payment_service: PaymentService

    def ready(self) -> None:
        from modules.payments.orchestration import PaymentService

        # Misconfigured providers abort startup
        self.payment_service = PaymentService.from_settings()


def get_payment_service() -> PaymentService:
    return apps.get_app_config("payments").payment_service
