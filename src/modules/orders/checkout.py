"""Checkout transaction coordinator.

Turns a cart into a PENDING order in a single database transaction:

1. Structural cart check (empty cart, malformed lines).
2. Checkout form check (customer fields; shipping address for
   physical orders).
3. Stock and price validation against the catalogue.
   - Hard errors abort with one combined message; nothing is persisted.
   - Stock issues without confirmation roll back and ask the customer to
     confirm the adjusted cart (``needs_confirmation``).
   - With confirmation the adjustments are applied and the order is
     assembled.

States: PROPOSING -> AWAITING_CONFIRMATION | CONFIRMED | ABORTED.  An
AWAITING_CONFIRMATION checkout is resumed by a new request with
``confirmed=True``; only CONFIRMED commits.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Sequence, Tuple

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction

from modules.orders.assembler import OrderAssembler
from modules.orders.dtos import CartItemDTO, CheckoutFormDTO, CheckoutResult
from modules.orders.stock_validation import (
    apply_stock_adjustments,
    validate_cart_items,
    validate_cart_items_and_stock,
)

if TYPE_CHECKING:
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.repositories.interfaces import IProductRepository
    from modules.store_settings.dtos import PricingConfig
    from modules.store_settings.services import SettingsStore

logger = structlog.get_logger(__name__)

OUT_OF_STOCK_ERROR = "All items in your cart are out of stock"
FORM_ERROR = "Please correct the errors in the checkout form"


class CheckoutState(str, Enum):
    PROPOSING = "PROPOSING"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    CONFIRMED = "CONFIRMED"
    ABORTED = "ABORTED"


def validate_checkout_form(
    form: CheckoutFormDTO, requires_shipping: bool
) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    if not form.customer_name.strip():
        errors["customer_name"] = ["Name is required"]
    try:
        validate_email(form.customer_email.strip())
    except ValidationError:
        errors["customer_email"] = ["Enter a valid email address"]

    if requires_shipping:
        address = form.shipping_address
        required = {
            "line1": "Address is required",
            "city": "City is required",
            "postal_code": "Postal code is required",
            "country": "Country is required",
        }
        for field, message in required.items():
            value = getattr(address, field, "") if address else ""
            if not (value or "").strip():
                errors[f"shipping_address.{field}"] = [message]
    return errors


class CheckoutService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        settings_store: SettingsStore,
    ) -> None:
        self._product_repo = product_repository
        self._settings = settings_store
        self._assembler = OrderAssembler(order_repository)

    def process_checkout(
        self,
        form: CheckoutFormDTO,
        cart_items: Sequence[CartItemDTO],
        confirmed: bool = False,
    ) -> CheckoutResult:
        log = logger.bind(item_count=len(cart_items), confirmed=confirmed)
        log.info("checkout.started", state=CheckoutState.PROPOSING.value)

        cart_errors = validate_cart_items(cart_items)
        if cart_errors:
            log.info("checkout.invalid_cart", error=cart_errors[0])
            return CheckoutResult.failed(cart_errors[0])

        requires_shipping = not all(item.is_digital for item in cart_items)
        field_errors = validate_checkout_form(form, requires_shipping)
        if field_errors:
            log.info("checkout.invalid_form", fields=sorted(field_errors))
            return CheckoutResult.failed(FORM_ERROR, field_errors)

        pricing = self._settings.get_pricing_config()
        with transaction.atomic():
            state, result = self._run(form, cart_items, confirmed, pricing)
            if state is not CheckoutState.CONFIRMED:
                transaction.set_rollback(True)

        log.info(
            "checkout.finished",
            state=state.value,
            outcome=result.outcome,
            order_id=result.order_id,
        )
        return result

    def _run(
        self,
        form: CheckoutFormDTO,
        cart_items: Sequence[CartItemDTO],
        confirmed: bool,
        pricing: PricingConfig,
    ) -> Tuple[CheckoutState, CheckoutResult]:
        validation = validate_cart_items_and_stock(cart_items, self._product_repo)
        if validation.has_errors:
            return CheckoutState.ABORTED, CheckoutResult.failed(
                "; ".join(validation.product_errors)
            )

        if validation.has_stock_issues and not confirmed:
            return CheckoutState.AWAITING_CONFIRMATION, CheckoutResult.needs_confirmation(
                validation.stock_issues, validation.adjusted_total
            )

        final_items = apply_stock_adjustments(
            validation.validated_items, validation.stock_issues
        )
        if not final_items:
            return CheckoutState.ABORTED, CheckoutResult.failed(OUT_OF_STOCK_ERROR)

        # The catalogue decides whether the order ships
        if not all(item.is_digital for item in final_items):
            field_errors = validate_checkout_form(form, requires_shipping=True)
            if field_errors:
                return CheckoutState.ABORTED, CheckoutResult.failed(FORM_ERROR, field_errors)

        order = self._assembler.create_order_with_items(form, final_items, pricing)
        return CheckoutState.CONFIRMED, CheckoutResult.succeeded(order)
