"""
Cart consistency logic.

A user's cart is an ordered list of CartLine embedded in the user record.
Every cart route goes through CartService, which loads the user, purges
lines whose product no longer resolves (sanitize), applies one mutation and
persists the result when anything changed. The functions at module level are
the pure operations; they take the resolved products as a mapping so they can
be used and tested without a store.

Invariants kept here:
- no line with a null or unresolvable product reference survives sanitize
- at most one line per product (add merges, sanitize folds duplicates)
- quantities are integers >= 1
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Mapping, NamedTuple, Optional, Tuple

from database import canonical_id
from errors import AuthError, NotFoundError, ValidationError
from schemas import CartLine, Messages, Product, User

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

_WHOLE_NUMBER = re.compile(r"^[+-]?\d+$")


class CartChange(NamedTuple):
    cart: List[CartLine]
    message: str
    applied: bool


def parse_quantity(raw) -> int:
    """Accept ints, integral floats and digit strings; anything else is a ValidationError."""
    if isinstance(raw, bool):
        raise ValidationError("Quantity must be a whole number")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and _WHOLE_NUMBER.match(raw.strip()):
        return int(raw.strip())
    raise ValidationError("Quantity must be a whole number")


def sanitize(cart: List[CartLine], products: Mapping[str, Product]) -> List[CartLine]:
    """Drop lines whose product is missing and fold repeated products into their first line."""
    kept: Dict[str, CartLine] = {}
    for line in cart:
        if not line.product or line.product not in products:
            continue
        if line.product in kept:
            kept[line.product].quantity += line.quantity
        else:
            kept[line.product] = CartLine(product=line.product, quantity=line.quantity)
    return list(kept.values())


def count_unresolved(cart: List[CartLine], products: Mapping[str, Product]) -> int:
    return sum(1 for line in cart if not line.product or line.product not in products)


def add_or_increment(cart: List[CartLine], product_id: str, products: Mapping[str, Product]) -> CartChange:
    if product_id not in products:
        raise NotFoundError("Product not found")
    cart = sanitize(cart, products)
    for line in cart:
        if line.product == product_id:
            line.quantity += 1
            return CartChange(cart, "Item quantity updated in cart", True)
    cart.append(CartLine(product=product_id, quantity=1))
    return CartChange(cart, "Added to cart successfully", True)


def remove(cart: List[CartLine], product_id: str, products: Mapping[str, Product]) -> CartChange:
    cart = sanitize(cart, products)
    remaining = [line for line in cart if line.product != product_id]
    if len(remaining) == len(cart):
        return CartChange(cart, "Item not found in cart", False)
    return CartChange(remaining, "Item removed from cart", True)


def set_quantity(cart: List[CartLine], product_id: str, quantity, products: Mapping[str, Product]) -> CartChange:
    quantity = parse_quantity(quantity)
    if quantity <= 0:
        return remove(cart, product_id, products)
    cart = sanitize(cart, products)
    for line in cart:
        if line.product == product_id:
            line.quantity = quantity
            return CartChange(cart, "Cart updated successfully", True)
    raise NotFoundError("Item not found in cart")


def clear(cart: List[CartLine]) -> CartChange:
    return CartChange([], "Cart cleared successfully", True)


def line_count(cart: List[CartLine]) -> int:
    return len(cart)


def unit_count(cart: List[CartLine]) -> int:
    return sum(line.quantity for line in cart)


def line_total(product: Product, quantity: int) -> Decimal:
    price = Decimal(str(product.price))
    discount = Decimal(str(product.discount))
    amount = price * (1 - discount / 100) * quantity
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_total(cart: List[CartLine], products: Mapping[str, Product]) -> Decimal:
    """Sum of per-line totals, each rounded to cents. Unresolved lines count 0."""
    total = Decimal("0.00")
    for line in cart:
        product = products.get(line.product) if line.product else None
        if product is not None:
            total += line_total(product, line.quantity)
    return total


@dataclass
class CartSummary:
    user: User
    products: Dict[str, Product]
    messages: Messages = field(default_factory=Messages)

    @property
    def cart(self) -> List[CartLine]:
        return self.user.cart

    @property
    def line_count(self) -> int:
        return line_count(self.user.cart)

    @property
    def unit_count(self) -> int:
        return unit_count(self.user.cart)

    @property
    def total(self) -> Decimal:
        return compute_total(self.user.cart, self.products)

    def lines(self) -> List[Tuple[CartLine, Product]]:
        return [(line, self.products[line.product]) for line in self.user.cart]


class CartService:
    """Read-modify-write of a user's cart. Last write wins across concurrent requests."""

    def __init__(self, accounts, catalog):
        self.accounts = accounts
        self.catalog = catalog

    def _load_user(self, email: str) -> User:
        user = self.accounts.find_by_email(email)
        if user is None:
            raise AuthError("User not found. Please login again.")
        return user

    def _resolve(self, cart: List[CartLine], extra: Optional[str] = None) -> Dict[str, Product]:
        ids = [line.product for line in cart if line.product]
        if extra:
            ids.append(extra)
        return self.catalog.find_many(ids)

    def load(self, email: str) -> CartSummary:
        """Fetch the user with a sanitized cart, persisting the purge if one happened."""
        user = self._load_user(email)
        products = self._resolve(user.cart)
        summary = CartSummary(user, products)
        cleaned = sanitize(user.cart, products)
        if cleaned != user.cart:
            dropped = count_unresolved(user.cart, products)
            user.cart = cleaned
            self.accounts.save(user)
            if dropped:
                logger.info("Cleaned %d invalid items from cart of %s", dropped, email)
                summary.messages.error.append(f"Removed {dropped} unavailable item(s) from your cart")
        return summary

    def _mutate(self, email: str, operation, product_id: Optional[str] = None) -> CartSummary:
        user = self._load_user(email)
        products = self._resolve(user.cart, product_id)
        change = operation(user.cart, products)

        messages = Messages()
        if change.applied:
            messages.success.append(change.message)
        else:
            messages.error.append(change.message)

        if change.cart != user.cart:
            dropped = count_unresolved(user.cart, products)
            if dropped:
                logger.info("Cleaned %d invalid items from cart of %s", dropped, email)
            user.cart = change.cart
            self.accounts.save(user)
        return CartSummary(user, products, messages)

    def add(self, email: str, product_id: str) -> CartSummary:
        product_id = canonical_id(product_id)
        return self._mutate(email, lambda cart, products: add_or_increment(cart, product_id, products), product_id)

    def set_quantity(self, email: str, product_id: str, quantity) -> CartSummary:
        # parse before touching the store so bad input never reaches it
        quantity = parse_quantity(quantity)
        product_id = canonical_id(product_id)
        return self._mutate(email, lambda cart, products: set_quantity(cart, product_id, quantity, products))

    def remove(self, email: str, product_id: str) -> CartSummary:
        product_id = canonical_id(product_id)
        return self._mutate(email, lambda cart, products: remove(cart, product_id, products))

    def clear(self, email: str) -> CartSummary:
        return self._mutate(email, lambda cart, products: clear(cart))
