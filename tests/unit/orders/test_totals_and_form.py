"""Unit tests for order totals and checkout form validation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.orders.assembler import calculate_order_totals
from modules.orders.checkout import validate_checkout_form
from modules.orders.dtos import CartItemDTO, CheckoutFormDTO, ShippingAddressDTO
from modules.store_settings.dtos import PricingConfig

pytestmark = pytest.mark.unit


def _pricing(**overrides) -> PricingConfig:
    data = {
        "store_name": "Test Store",
        "currency": "USD",
        "tax_rate": Decimal("17"),
        "free_shipping_threshold": None,
        "standard_shipping_cost": 2500,
    }
    data.update(overrides)
    return PricingConfig(**data)


def _item(price: int, quantity: int = 1, is_digital: bool = False) -> CartItemDTO:
    return CartItemDTO(id="p", name="Item", price=price, quantity=quantity, is_digital=is_digital)


class TestCalculateOrderTotals:
    def test_physical_order(self):
        totals = calculate_order_totals([_item(1000, 2), _item(500)], _pricing())

        assert totals.subtotal == 2500
        assert totals.shipping == 2500
        assert totals.tax == 425
        assert totals.total == 2500 + 2500 + 425
        assert totals.is_digital is False

    def test_digital_order_ships_free(self):
        totals = calculate_order_totals([_item(1999, is_digital=True)], _pricing())

        assert totals.shipping == 0
        assert totals.is_digital is True

    def test_one_physical_line_makes_order_physical(self):
        totals = calculate_order_totals(
            [_item(1000, is_digital=True), _item(1000)], _pricing()
        )

        assert totals.is_digital is False
        assert totals.shipping == 2500

    @pytest.mark.parametrize(("subtotal", "shipping"), [(9999, 2500), (10000, 0), (15000, 0)])
    def test_free_shipping_threshold_is_inclusive(self, subtotal, shipping):
        totals = calculate_order_totals(
            [_item(subtotal)], _pricing(free_shipping_threshold=10000)
        )

        assert totals.shipping == shipping

    def test_tax_rounds_half_up(self):
        # 17% of 50 = 8.5
        totals = calculate_order_totals([_item(50)], _pricing())

        assert totals.tax == 9

    def test_fractional_tax_rate(self):
        totals = calculate_order_totals([_item(10000)], _pricing(tax_rate=Decimal("7.25")))

        assert totals.tax == 725


class TestValidateCheckoutForm:
    def test_valid_physical_form(self, checkout_form):
        assert validate_checkout_form(checkout_form, requires_shipping=True) == {}

    def test_digital_order_needs_no_address(self):
        form = CheckoutFormDTO(customer_name="Ada", customer_email="ada@example.com")

        assert validate_checkout_form(form, requires_shipping=False) == {}

    def test_missing_customer_fields(self):
        form = CheckoutFormDTO(customer_name="  ", customer_email="not-an-email")

        errors = validate_checkout_form(form, requires_shipping=False)

        assert errors == {
            "customer_name": ["Name is required"],
            "customer_email": ["Enter a valid email address"],
        }

    def test_missing_address_reports_every_field(self):
        form = CheckoutFormDTO(customer_name="Ada", customer_email="ada@example.com")

        errors = validate_checkout_form(form, requires_shipping=True)

        assert set(errors) == {
            "shipping_address.line1",
            "shipping_address.city",
            "shipping_address.postal_code",
            "shipping_address.country",
        }

    def test_partial_address(self):
        form = CheckoutFormDTO(
            customer_name="Ada",
            customer_email="ada@example.com",
            shipping_address=ShippingAddressDTO(line1="1 Main St", city="Springfield"),
        )

        errors = validate_checkout_form(form, requires_shipping=True)

        assert errors == {
            "shipping_address.postal_code": ["Postal code is required"],
            "shipping_address.country": ["Country is required"],
        }
