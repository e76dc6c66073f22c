"""Cart validation against the live catalogue.

Business rules:
- All products of the cart are fetched in one query.
- A missing or non-ACTIVE product is a hard error; a price that differs
  from the catalogue is a hard error.  Validation continues past hard
  errors so the customer sees every problem at once.
- Finite stock of zero removes the line; finite stock below the requested
  quantity reduces it.  Unlimited stock (``NULL``) never produces issues.
- ``adjusted_total`` is what the cart would cost after the adjustments.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Sequence

import structlog

from modules.orders.constants import StockAction
from modules.orders.dtos import CartItemDTO, StockAdjustmentDTO, StockValidationResult

if TYPE_CHECKING:
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)

EMPTY_CART_ERROR = "Cart is empty"
INVALID_ITEM_ERROR = "Invalid item in cart"


def validate_cart_items(cart_items: Sequence[CartItemDTO]) -> List[str]:
    """Structural check of the cart before anything touches the database."""
    if not cart_items:
        return [EMPTY_CART_ERROR]
    for item in cart_items:
        if not item.id or not item.name or item.price <= 0 or item.quantity <= 0:
            return [INVALID_ITEM_ERROR]
    return []


def validate_cart_items_and_stock(
    cart_items: Sequence[CartItemDTO],
    product_repository: IProductRepository,
) -> StockValidationResult:
    products = product_repository.get_many_by_ids(item.id for item in cart_items)

    product_errors: List[str] = []
    validated_items: List[CartItemDTO] = []
    stock_issues: List[StockAdjustmentDTO] = []
    adjusted_total = 0

    for item in cart_items:
        product = products.get(item.id)
        if product is None or not product.is_purchasable:
            product_errors.append(f'Product "{item.name}" is no longer available')
            continue
        if product.price != item.price:
            product_errors.append(
                f'Price for "{item.name}" has changed. Please refresh your cart.'
            )
            continue

        # Name and digital flag come from the catalogue, not the client
        validated_items.append(
            item.model_copy(update={"name": product.name, "is_digital": product.is_digital})
        )

        # Each line is checked on its own; duplicate lines of one product are
        # not summed here, payment completion floors the stock at zero instead
        if product.has_unlimited_stock or product.stock >= item.quantity:
            adjusted_total += product.price * item.quantity
            continue

        available = max(product.stock, 0)
        stock_issues.append(
            StockAdjustmentDTO(
                product_id=item.id,
                product_name=product.name,
                requested_quantity=item.quantity,
                available_quantity=available,
                action=StockAction.REMOVED if available == 0 else StockAction.REDUCED,
            )
        )
        adjusted_total += product.price * available

    if product_errors or stock_issues:
        logger.info(
            "checkout.stock_validation",
            product_errors=len(product_errors),
            stock_issues=len(stock_issues),
        )
    return StockValidationResult(
        product_errors=product_errors,
        validated_items=validated_items,
        stock_issues=stock_issues,
        adjusted_total=adjusted_total,
    )


def apply_stock_adjustments(
    cart_items: Sequence[CartItemDTO],
    stock_issues: Sequence[StockAdjustmentDTO],
) -> List[CartItemDTO]:
    """Drop ``removed`` lines and cap ``reduced`` lines at the available stock."""
    issues = {issue.product_id: issue for issue in stock_issues}
    adjusted: List[CartItemDTO] = []
    for item in cart_items:
        issue = issues.get(item.id)
        if issue is None:
            adjusted.append(item)
        elif issue.action == StockAction.REDUCED:
            adjusted.append(item.model_copy(update={"quantity": issue.available_quantity}))
    return adjusted
