"""Order assembly: totals and persistence of a validated cart.

Business rules:
- ``is_digital`` holds only when every line is digital.
- Shipping is free for digital orders and when the subtotal reaches the
  configured free-shipping threshold; otherwise the standard cost applies.
- Tax is ``subtotal * tax_rate / 100`` rounded half-up to a minor unit.
- Digital orders never store a shipping address.
- Assembly does not touch stock; stock moves on payment completion.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Dict, Sequence

import structlog
from django.db import transaction

from modules.orders.constants import OrderStatus
from modules.orders.dtos import CartItemDTO, CheckoutFormDTO, OrderTotals
from modules.orders.events import OrderCreated
from modules.payments.constants import provider_for_payment_method

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.store_settings.dtos import PricingConfig

logger = structlog.get_logger(__name__)


def calculate_order_totals(
    items: Sequence[CartItemDTO], pricing: PricingConfig
) -> OrderTotals:
    is_digital = all(item.is_digital for item in items)
    subtotal = sum(item.price * item.quantity for item in items)

    if is_digital:
        shipping = 0
    elif (
        pricing.free_shipping_threshold is not None
        and subtotal >= pricing.free_shipping_threshold
    ):
        shipping = 0
    else:
        shipping = pricing.standard_shipping_cost

    tax = int(
        (Decimal(subtotal) * pricing.tax_rate / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )
    return OrderTotals(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=subtotal + shipping + tax,
        is_digital=is_digital,
    )


class OrderAssembler:
    """Turns a validated checkout form and final cart into a persisted order."""

    def __init__(self, order_repository: IOrderRepository) -> None:
        self._order_repo = order_repository

    @transaction.atomic
    def create_order_with_items(
        self,
        form: CheckoutFormDTO,
        final_items: Sequence[CartItemDTO],
        pricing: PricingConfig,
    ) -> Order:
        totals = calculate_order_totals(final_items, pricing)

        data: Dict[str, Any] = {
            "customer_name": form.customer_name.strip(),
            "customer_email": form.customer_email.strip().lower(),
            "customer_phone": form.customer_phone.strip(),
            "payment_method": form.payment_method,
            "payment_provider_id": provider_for_payment_method(form.payment_method),
            "is_digital": totals.is_digital,
            "subtotal": totals.subtotal,
            "shipping_amount": totals.shipping,
            "tax_amount": totals.tax,
            "items": [
                {
                    "product_id": item.id,
                    "product_name": item.name,
                    "price": item.price,
                    "quantity": item.quantity,
                }
                for item in final_items
            ],
        }
        address = form.shipping_address
        if address is not None and not totals.is_digital:
            data.update(
                shipping_line1=address.line1,
                shipping_line2=address.line2 or None,
                shipping_city=address.city,
                shipping_state=address.state or None,
                shipping_postal_code=address.postal_code,
                shipping_country=address.country,
            )

        order = self._order_repo.create(data)
        order.add_domain_event(
            OrderCreated(
                aggregate_id=order.id,
                order_number=order.order_number,
                total=totals.total,
                is_digital=totals.is_digital,
            )
        )
        self._order_repo.store_events(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.PENDING,
            notes="Order created",
        )

        logger.info(
            "order.assembled",
            order_id=str(order.id),
            order_number=order.order_number,
            total=totals.total,
            is_digital=totals.is_digital,
        )
        return order
