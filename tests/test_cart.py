"""Tests for the cart consistency operations and CartService."""

from decimal import Decimal

import pytest
from bson import ObjectId

import cart as carts
from cart import CartService
from errors import AuthError, NotFoundError, StoreError, ValidationError
from schemas import CartLine, Product, User
from stores import MemoryAccountStore


def _product(price, discount=0, name="Item"):
    return Product(id=str(ObjectId()), name=name, price=price, discount=discount)


@pytest.fixture
def p1():
    return _product(100, discount=10, name="Phone")


@pytest.fixture
def p2():
    return _product(19.99, name="Cable")


@pytest.fixture
def products(p1, p2):
    return {p1.id: p1, p2.id: p2}


class TestSanitize:
    def test_drops_deleted_and_null_references(self, p1, products):
        deleted = str(ObjectId())
        cart = [
            CartLine(product=p1.id, quantity=2),
            CartLine(product=deleted, quantity=1),
            CartLine(product=None, quantity=1),
        ]

        cleaned = carts.sanitize(cart, products)

        assert cleaned == [CartLine(product=p1.id, quantity=2)]
        assert carts.line_count(cleaned) == 1

    def test_idempotent(self, p1, p2, products):
        cart = [
            CartLine(product=p2.id, quantity=1),
            CartLine(product="not-an-id", quantity=3),
            CartLine(product=p1.id, quantity=2),
        ]
        once = carts.sanitize(cart, products)
        assert carts.sanitize(once, products) == once
        assert [line.product for line in once] == [p2.id, p1.id]

    def test_folds_duplicate_lines(self, p1, products):
        cart = [CartLine(product=p1.id, quantity=2), CartLine(product=p1.id, quantity=3)]
        assert carts.sanitize(cart, products) == [CartLine(product=p1.id, quantity=5)]

    def test_does_not_mutate_input(self, p1, products):
        cart = [CartLine(product=p1.id, quantity=1), CartLine(product=p1.id, quantity=1)]
        carts.sanitize(cart, products)
        assert cart[0].quantity == 1


class TestAddOrIncrement:
    def test_add_then_increment(self, p1, products):
        first = carts.add_or_increment([], p1.id, products)
        assert first.cart == [CartLine(product=p1.id, quantity=1)]
        assert first.message == "Added to cart successfully"

        second = carts.add_or_increment(first.cart, p1.id, products)
        assert second.cart == [CartLine(product=p1.id, quantity=2)]
        assert carts.line_count(second.cart) == 1
        assert second.message == "Item quantity updated in cart"

    def test_appends_and_keeps_order(self, p1, p2, products):
        cart = [CartLine(product=p2.id, quantity=4)]
        change = carts.add_or_increment(cart, p1.id, products)
        assert [line.product for line in change.cart] == [p2.id, p1.id]
        assert change.cart[0].quantity == 4

    def test_unknown_product(self, p1, products):
        with pytest.raises(NotFoundError):
            carts.add_or_increment([CartLine(product=p1.id)], str(ObjectId()), products)


class TestSetQuantity:
    def test_sets_quantity(self, p1, products):
        change = carts.set_quantity([CartLine(product=p1.id, quantity=1)], p1.id, "7", products)
        assert change.cart == [CartLine(product=p1.id, quantity=7)]

    def test_zero_is_remove(self, p1, p2, products):
        cart = [CartLine(product=p1.id, quantity=1), CartLine(product=p2.id, quantity=2)]
        assert carts.set_quantity(cart, p1.id, 0, products) == carts.remove(cart, p1.id, products)

    def test_zero_for_absent_line_reports_not_found(self, p1, products):
        change = carts.set_quantity([], p1.id, 0, products)
        assert change.applied is False
        assert change.message == "Item not found in cart"

    def test_positive_for_absent_line(self, p1, products):
        with pytest.raises(NotFoundError):
            carts.set_quantity([], p1.id, 3, products)

    @pytest.mark.parametrize("raw", ["2.5", 2.5, "abc", "", None, True])
    def test_rejects_non_whole_numbers(self, p1, products, raw):
        with pytest.raises(ValidationError):
            carts.set_quantity([CartLine(product=p1.id)], p1.id, raw, products)


def test_remove_absent_is_non_fatal(p1, products):
    change = carts.remove([CartLine(product=p1.id)], str(ObjectId()), products)
    assert change.applied is False
    assert change.cart == [CartLine(product=p1.id)]


def test_clear_always_empty(p1):
    assert carts.clear([CartLine(product=p1.id, quantity=9), CartLine(product=None)]).cart == []
    assert carts.clear([]).cart == []


class TestTotals:
    def test_compute_total(self, p1, p2, products):
        cart = [CartLine(product=p1.id, quantity=2), CartLine(product=p2.id, quantity=3)]
        # 100 * 0.9 * 2 + 19.99 * 3
        assert carts.compute_total(cart, products) == Decimal("239.97")
        assert carts.line_count(cart) == 2
        assert carts.unit_count(cart) == 5

    def test_total_is_linear_over_disjoint_carts(self, p1, p2, products):
        a = [CartLine(product=p1.id, quantity=3)]
        b = [CartLine(product=p2.id, quantity=7)]
        assert carts.compute_total(a + b, products) == (
            carts.compute_total(a, products) + carts.compute_total(b, products)
        )

    def test_unresolved_lines_contribute_nothing(self, p1, products):
        cart = [CartLine(product=p1.id, quantity=1), CartLine(product=str(ObjectId()), quantity=5)]
        assert carts.compute_total(cart, products) == Decimal("90.00")

    def test_line_total_rounds_to_cents(self):
        product = _product(9.99, discount=33)
        assert carts.line_total(product, 1) == Decimal("6.69")


class TestCartService:
    @pytest.fixture
    def service(self, stores):
        return CartService(stores.users, stores.catalog)

    def test_load_purges_and_persists(self, service, stores, user, make_product):
        kept = make_product("Kept", price=50)
        gone = make_product("Gone", price=10)
        user.cart = [CartLine(product=kept.id, quantity=2), CartLine(product=gone.id, quantity=1)]
        stores.users.save(user)
        stores.catalog.delete(gone.id)

        summary = service.load(user.email)

        assert summary.cart == [CartLine(product=kept.id, quantity=2)]
        assert summary.line_count == 1
        assert summary.messages.error == ["Removed 1 unavailable item(s) from your cart"]
        assert stores.users.find_by_email(user.email).cart == summary.cart

    def test_add_persists(self, service, stores, user, make_product):
        product = make_product()
        service.add(user.email, product.id)
        summary = service.add(user.email, product.id)

        assert summary.messages.success == ["Item quantity updated in cart"]
        assert stores.users.find_by_email(user.email).cart == [CartLine(product=product.id, quantity=2)]

    def test_ids_are_canonicalised(self, service, stores, user, make_product):
        product = make_product()
        service.add(user.email, product.id.upper())
        service.add(user.email, product.id)

        assert stores.users.find_by_email(user.email).cart == [CartLine(product=product.id, quantity=2)]
        assert carts.canonical_id("not-an-id") == "not-an-id"

    def test_failed_add_leaves_cart_untouched(self, service, stores, user, make_product):
        product = make_product()
        user.cart = [CartLine(product=product.id, quantity=1), CartLine(product=None)]
        stores.users.save(user)

        with pytest.raises(NotFoundError):
            service.add(user.email, str(ObjectId()))

        assert len(stores.users.find_by_email(user.email).cart) == 2

    def test_unknown_user(self, service):
        with pytest.raises(AuthError):
            service.load("nobody@example.com")

    def test_store_failure_propagates(self, stores, user, make_product):
        class BrokenStore(MemoryAccountStore):
            def save(self, account):
                raise StoreError("connection lost")

        broken = BrokenStore(User)
        broken.create(user)
        product = make_product()

        with pytest.raises(StoreError):
            CartService(broken, stores.catalog).add(user.email, product.id)
        assert broken.find_by_email(user.email).cart == []
