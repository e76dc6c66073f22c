"""Unit tests for cart validation against the catalogue."""

from __future__ import annotations

import pytest

from modules.orders.constants import StockAction
from modules.orders.dtos import CartItemDTO, StockAdjustmentDTO
from modules.orders.stock_validation import (
    EMPTY_CART_ERROR,
    INVALID_ITEM_ERROR,
    apply_stock_adjustments,
    validate_cart_items,
    validate_cart_items_and_stock,
)
from modules.products.models import ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository

pytestmark = pytest.mark.unit


@pytest.fixture()
def repo():
    return ProductDjangoRepository()


class TestValidateCartItems:
    def test_empty_cart(self):
        assert validate_cart_items([]) == [EMPTY_CART_ERROR]

    @pytest.mark.parametrize(
        "line",
        [
            {"id": "", "name": "Mug", "price": 100, "quantity": 1},
            {"id": "p-1", "name": "", "price": 100, "quantity": 1},
            {"id": "p-1", "name": "Mug", "price": 0, "quantity": 1},
            {"id": "p-1", "name": "Mug", "price": 100, "quantity": 0},
        ],
    )
    def test_malformed_line(self, line):
        assert validate_cart_items([CartItemDTO(**line)]) == [INVALID_ITEM_ERROR]

    def test_well_formed_cart(self):
        item = CartItemDTO(id="p-1", name="Mug", price=100, quantity=2)

        assert validate_cart_items([item]) == []


class TestValidateAgainstCatalogue:
    def test_everything_in_stock(self, repo, make_product, cart_item):
        mug = make_product(price=1000, stock=5)
        ebook = make_product(name="E-Book", price=500, stock=None, is_digital=True)

        result = validate_cart_items_and_stock(
            [cart_item(mug, 5), cart_item(ebook, 100)], repo
        )

        assert not result.has_errors
        assert not result.has_stock_issues
        assert result.adjusted_total == 1000 * 5 + 500 * 100
        assert len(result.validated_items) == 2

    def test_stock_shortfalls_are_reported(self, repo, make_product, cart_item):
        low = make_product(name="Poster", price=2000, stock=2)
        gone = make_product(name="Candle", price=1500, stock=0)

        result = validate_cart_items_and_stock([cart_item(low, 3), cart_item(gone, 1)], repo)

        assert not result.has_errors
        reduced, removed = result.stock_issues
        assert reduced.action == StockAction.REDUCED
        assert (reduced.requested_quantity, reduced.available_quantity) == (3, 2)
        assert removed.action == StockAction.REMOVED
        assert removed.available_quantity == 0
        assert result.adjusted_total == 2000 * 2

    def test_hard_errors_are_all_collected(self, repo, make_product, cart_item):
        archived = make_product(name="Old Mug", status=ProductStatus.ARCHIVED)
        repriced = make_product(name="Tote", price=2400)
        stale = cart_item(repriced).model_copy(update={"price": 2000})
        missing = CartItemDTO(
            id="0190f0c2-7a1e-7d4c-9a55-3f1d2c4b5a60", name="Ghost", price=100, quantity=1
        )

        result = validate_cart_items_and_stock([cart_item(archived), stale, missing], repo)

        assert result.product_errors == [
            'Product "Old Mug" is no longer available',
            'Price for "Tote" has changed. Please refresh your cart.',
            'Product "Ghost" is no longer available',
        ]

    def test_malformed_product_id_is_unavailable(self, repo):
        item = CartItemDTO(id="not-a-uuid", name="Mug", price=100, quantity=1)

        result = validate_cart_items_and_stock([item], repo)

        assert result.product_errors == ['Product "Mug" is no longer available']

    def test_catalogue_overrides_client_name_and_digital_flag(
        self, repo, make_product, cart_item
    ):
        book = make_product(name="Recipe E-Book", is_digital=True, stock=None)
        tampered = cart_item(book).model_copy(update={"name": "Cheap", "is_digital": False})

        result = validate_cart_items_and_stock([tampered], repo)

        (validated,) = result.validated_items
        assert validated.name == "Recipe E-Book"
        assert validated.is_digital is True

    def test_duplicate_lines_are_checked_independently(self, repo, make_product, cart_item):
        poster = make_product(name="Poster", price=2000, stock=3)

        result = validate_cart_items_and_stock(
            [cart_item(poster, 2), cart_item(poster, 2)], repo
        )

        assert not result.has_stock_issues
        assert result.adjusted_total == 2000 * 4
        assert len(result.validated_items) == 2

    def test_whole_cart_is_fetched_in_one_query(
        self, repo, make_product, cart_item, django_assert_num_queries
    ):
        lines = [cart_item(make_product(name=f"Item {i}")) for i in range(5)]

        with django_assert_num_queries(1):
            validate_cart_items_and_stock(lines, repo)


class TestApplyStockAdjustments:
    def test_reduces_and_removes_lines(self):
        items = [
            CartItemDTO(id="a", name="A", price=100, quantity=3),
            CartItemDTO(id="b", name="B", price=100, quantity=1),
            CartItemDTO(id="c", name="C", price=100, quantity=1),
        ]
        issues = [
            StockAdjustmentDTO(
                product_id="a",
                product_name="A",
                requested_quantity=3,
                available_quantity=1,
                action=StockAction.REDUCED,
            ),
            StockAdjustmentDTO(
                product_id="b",
                product_name="B",
                requested_quantity=1,
                available_quantity=0,
                action=StockAction.REMOVED,
            ),
        ]

        adjusted = apply_stock_adjustments(items, issues)

        assert [(item.id, item.quantity) for item in adjusted] == [("a", 1), ("c", 1)]


class TestProductLookup:
    def test_found(self, repo, make_product):
        mug = make_product()

        assert repo.get_by_id(str(mug.id)) == mug

    @pytest.mark.parametrize("raw_id", ["0190f0c2-7a1e-7d4c-9a55-3f1d2c4b5a60", "not-a-uuid"])
    def test_unknown_or_malformed_id(self, repo, raw_id):
        assert repo.get_by_id(raw_id) is None
