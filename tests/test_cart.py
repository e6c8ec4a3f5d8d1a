"""Tests for the session cart and its catalog-validated mutations."""

from decimal import Decimal

import pytest
from bson import ObjectId

from cart import Cart, CartItem, CartService, cart_view
from errors import InsufficientStockError, InvalidInputError, NotFoundError


@pytest.fixture
def service(catalog):
    return CartService(catalog)


@pytest.fixture
def cart():
    return Cart()


class TestSummary:
    def test_empty_cart(self, cart):
        assert cart.summary() == (0, Decimal("0"))

    def test_example_totals(self, service, cart, make_product):
        p1 = make_product(name="Keyboard", price="9.99", stock=5)
        p2 = make_product(name="Mouse", price="5.00", stock=1)

        service.add(cart, p1.id, 2)
        service.add(cart, p2.id, 1)

        total_items, total_amount = cart.summary()
        assert total_items == 3
        assert total_amount == Decimal("24.98")

    def test_sum_over_distinct_products(self, service, cart, make_product):
        lines = [("1.25", 3), ("0.10", 7), ("100.00", 1)]
        for i, (price, qty) in enumerate(lines):
            product = make_product(name=f"P{i}", price=price, stock=10)
            service.add(cart, product.id, qty)

        total_items, total_amount = cart.summary()
        assert total_items == sum(q for _, q in lines)
        assert total_amount == sum(Decimal(p) * q for p, q in lines)

    def test_recomputed_after_mutation(self, service, cart, make_product):
        product = make_product(price="2.50", stock=10)
        service.add(cart, product.id, 2)
        assert cart.summary() == (2, Decimal("5.00"))

        service.set_quantity(cart, product.id, 4)
        assert cart.summary() == (4, Decimal("10.00"))

    def test_cart_view_lines(self, service, cart, make_product):
        product = make_product(name="Lamp", price="3.00", stock=4, image="lamp.png")
        service.add(cart, product.id, 2)

        view = cart_view(cart)
        assert view.total_items == 2
        assert view.total_amount == Decimal("6.00")
        assert len(view.items) == 1
        line = view.items[0]
        assert line.product_id == product.id
        assert line.name == "Lamp"
        assert line.image == "lamp.png"
        assert line.subtotal == Decimal("6.00")


class TestAdd:
    def test_same_product_merges(self, service, cart, make_product):
        product = make_product(stock=10)
        service.add(cart, product.id, 2)
        service.add(cart, product.id, 3)

        assert len(cart) == 1
        assert cart.quantity_of(product.id) == 5

    def test_unknown_product(self, service, cart):
        with pytest.raises(NotFoundError):
            service.add(cart, str(ObjectId()), 1)
        assert len(cart) == 0

    def test_malformed_product_id(self, service, cart):
        with pytest.raises(NotFoundError):
            service.add(cart, "not-an-id", 1)

    def test_exceeds_stock(self, service, cart, make_product):
        product = make_product(name="Scarce", stock=2)
        with pytest.raises(InsufficientStockError) as exc:
            service.add(cart, product.id, 3)
        assert "Scarce" in str(exc.value)
        assert len(cart) == 0

    def test_merged_total_checked_against_stock(self, service, cart, make_product):
        product = make_product(stock=3)
        service.add(cart, product.id, 2)

        with pytest.raises(InsufficientStockError):
            service.add(cart, product.id, 2)
        assert cart.quantity_of(product.id) == 2

    def test_non_positive_quantity(self, service, cart, make_product):
        product = make_product()
        with pytest.raises(InvalidInputError):
            service.add(cart, product.id, 0)

    def test_insertion_order_kept(self, service, cart, make_product):
        first = make_product(name="First")
        second = make_product(name="Second")
        service.add(cart, first.id, 1)
        service.add(cart, second.id, 1)
        service.add(cart, first.id, 1)

        assert [i.product.name for i in cart] == ["First", "Second"]


class TestSetQuantity:
    def test_updates_in_place(self, service, cart, make_product):
        product = make_product(stock=5)
        service.add(cart, product.id, 1)
        item = service.set_quantity(cart, product.id, 4)

        assert item.quantity == 4
        assert cart.quantity_of(product.id) == 4

    def test_zero_removes(self, service, cart, make_product):
        product = make_product()
        service.add(cart, product.id, 1)

        assert service.set_quantity(cart, product.id, 0) is None
        assert product.id not in cart

    def test_absent_item(self, service, cart, make_product):
        product = make_product()
        with pytest.raises(NotFoundError):
            service.set_quantity(cart, product.id, 2)
        with pytest.raises(NotFoundError):
            service.set_quantity(cart, product.id, 0)

    def test_new_total_checked_against_stock(self, service, cart, make_product):
        product = make_product(stock=3)
        service.add(cart, product.id, 1)

        with pytest.raises(InsufficientStockError):
            service.set_quantity(cart, product.id, 4)
        assert cart.quantity_of(product.id) == 1

    def test_negative_quantity(self, service, cart, make_product):
        product = make_product()
        service.add(cart, product.id, 1)
        with pytest.raises(InvalidInputError):
            service.set_quantity(cart, product.id, -1)


class TestRemoveAndClear:
    def test_remove_is_idempotent(self, service, cart, make_product):
        product = make_product()
        service.add(cart, product.id, 1)

        assert service.remove(cart, product.id) is True
        assert service.remove(cart, product.id) is False
        assert len(cart) == 0

    def test_clear(self, service, cart, make_product):
        for name in ("A", "B"):
            service.add(cart, make_product(name=name).id, 1)
        service.clear(cart)
        assert len(cart) == 0
        assert cart.summary() == (0, Decimal("0"))


def test_cart_item_identity_is_product_id(make_product):
    product = make_product()
    assert CartItem(product=product, quantity=1) == CartItem(product=product, quantity=3)
    assert len({CartItem(product=product, quantity=1), CartItem(product=product, quantity=2)}) == 1
