"""
Session cart

A Cart holds at most one CartItem per product id, in insertion order. Stock
checks made here are advisory: they read the catalog at mutation time and
reserve nothing. Stock is only authoritative at checkout, where it is
decremented.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterator, List, Optional, Tuple

from catalog import ProductStore
from errors import InsufficientStockError, InvalidInputError, NotFoundError
from schemas import CartLine, CartView, Product

logger = logging.getLogger(__name__)


@dataclass
class CartItem:
    product: Product
    quantity: int

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def subtotal(self) -> Decimal:
        return self.product.price * self.quantity

    def __eq__(self, other):
        if not isinstance(other, CartItem):
            return NotImplemented
        return self.product_id == other.product_id

    def __hash__(self):
        return hash(self.product_id)


class Cart:
    def __init__(self):
        self._items: "OrderedDict[str, CartItem]" = OrderedDict()

    def __iter__(self) -> Iterator[CartItem]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, product_id: str) -> bool:
        return product_id in self._items

    def get(self, product_id: str) -> Optional[CartItem]:
        return self._items.get(product_id)

    def quantity_of(self, product_id: str) -> int:
        item = self._items.get(product_id)
        return item.quantity if item else 0

    def put(self, product: Product, quantity: int) -> CartItem:
        """Insert or overwrite the line for `product`, keeping its position."""
        item = self._items.get(product.id)
        if item is None:
            item = CartItem(product=product, quantity=quantity)
            self._items[product.id] = item
        else:
            item.product = product
            item.quantity = quantity
        return item

    def remove(self, product_id: str) -> bool:
        return self._items.pop(product_id, None) is not None

    def clear(self) -> None:
        self._items.clear()

    def summary(self) -> Tuple[int, Decimal]:
        """(total item count, total amount), recomputed on every call."""
        total_items = sum(i.quantity for i in self._items.values())
        total_amount = sum((i.subtotal for i in self._items.values()), Decimal("0"))
        return total_items, total_amount

    def snapshot(self) -> List[CartItem]:
        return [CartItem(product=i.product, quantity=i.quantity) for i in self._items.values()]


def cart_view(cart: Cart) -> CartView:
    total_items, total_amount = cart.summary()
    lines = [
        CartLine(
            product_id=item.product_id,
            name=item.product.name,
            price=item.product.price,
            image=item.product.image,
            quantity=item.quantity,
            subtotal=item.subtotal,
        )
        for item in cart
    ]
    return CartView(items=lines, total_items=total_items, total_amount=total_amount)


class CartService:
    """Cart mutations validated against the catalog."""

    def __init__(self, catalog: ProductStore):
        self.catalog = catalog

    def add(self, cart: Cart, product_id: str, quantity: int) -> CartItem:
        if quantity <= 0:
            raise InvalidInputError("Quantity must be at least 1")
        product = self.catalog.get(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        new_quantity = cart.quantity_of(product.id) + quantity
        if not self.catalog.is_available(product.id, new_quantity):
            raise InsufficientStockError(product.name, new_quantity)
        logger.debug("Cart: %s x%d (was %d)", product.id, new_quantity, new_quantity - quantity)
        return cart.put(product, new_quantity)

    def set_quantity(self, cart: Cart, product_id: str, quantity: int) -> Optional[CartItem]:
        """
        Set the quantity of an existing line. 0 removes it. A product that is
        not in the cart raises NotFoundError, whatever the quantity.
        """
        if quantity < 0:
            raise InvalidInputError("Quantity cannot be negative")
        item = cart.get(product_id)
        if item is None:
            raise NotFoundError("Cart item", product_id)
        if quantity == 0:
            cart.remove(product_id)
            logger.debug("Cart: removed %s", product_id)
            return None
        if not self.catalog.is_available(product_id, quantity):
            raise InsufficientStockError(item.product.name, quantity)
        item.quantity = quantity
        return item

    def remove(self, cart: Cart, product_id: str) -> bool:
        return cart.remove(product_id)

    def clear(self, cart: Cart) -> None:
        cart.clear()
