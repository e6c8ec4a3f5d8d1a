"""
Order placement and order history.

An order and all of its items are one document in the "order" collection, so
the header can never be committed without its items. Stock for every line is
taken with a conditional decrement before the order is written; if any line
or the final insert fails, the stock already taken is put back (or, with
MONGO_TRANSACTIONS enabled, the driver transaction is aborted) and nothing is
written.
"""
import logging
import os
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from cart import Cart
from catalog import ProductStore
from database import as_utc, from_decimal128, to_decimal128, utcnow
from errors import EmptyCartError, InsufficientStockError, StorageError
from schemas import (
    DEFAULT_DELIVERY_ADDRESS,
    PLACEHOLDER_IMAGE,
    STATUS_COMPLETED,
    Order,
    OrderItem,
)

logger = logging.getLogger(__name__)

COLLECTION = "order"


def transactions_enabled() -> bool:
    return os.getenv("MONGO_TRANSACTIONS", "false").lower() in ("1", "true", "yes")


class OrderLine(NamedTuple):
    product_id: str
    product_name: str
    quantity: int


def order_item_from_doc(doc: Dict[str, Any]) -> OrderItem:
    return OrderItem(
        id=doc["id"],
        order_id=doc["order_id"],
        product_id=doc["product_id"],
        product_name=doc.get("product_name") or "Unknown Product",
        quantity=int(doc["quantity"]),
        price=from_decimal128(doc.get("price")),
        product_image=doc.get("product_image"),
    )


def order_from_doc(doc: Dict[str, Any]) -> Order:
    return Order(
        id=str(doc["_id"]),
        user_id=doc.get("user_id"),
        total=from_decimal128(doc.get("total")),
        status=doc.get("status", STATUS_COMPLETED),
        delivery_address=doc.get("delivery_address") or DEFAULT_DELIVERY_ADDRESS,
        created_at=as_utc(doc.get("created_at")),
        items=[order_item_from_doc(i) for i in doc.get("items", [])],
    )


def order_matches(order: Order, term: str) -> bool:
    needle = term.lower()
    if needle in order.id.lower():
        return True
    return any(needle in (item.product_name or "").lower() for item in order.items)


class OrderStore:
    def __init__(self, database, catalog: ProductStore, use_transactions: bool = False):
        self._db = database
        self._orders = database[COLLECTION]
        self.catalog = catalog
        self.use_transactions = use_transactions

    def save_order(self, user_id: Optional[str], delivery_address: str, lines: List[OrderLine]) -> Order:
        """
        Take stock for every line and write the order, all or nothing.

        Raises InsufficientStockError when a conditional decrement matches no
        product, StorageError when the database fails. In both cases no order
        exists afterwards and catalog stock is as it was.
        """
        try:
            if self.use_transactions:
                with self._db.client.start_session() as session:
                    with session.start_transaction():
                        return self._write_order(user_id, delivery_address, lines, session=session)
            return self._write_order(user_id, delivery_address, lines)
        except PyMongoError as e:
            logger.exception("Order transaction rolled back")
            raise StorageError("order placement", e) from e

    def _write_order(self, user_id, delivery_address, lines, session=None) -> Order:
        order_id = ObjectId()
        taken: List[OrderLine] = []
        items = []
        try:
            for line in lines:
                product = self.catalog.take_stock(line.product_id, line.quantity, session=session)
                if product is None:
                    raise InsufficientStockError(line.product_name, line.quantity)
                taken.append(line)
                items.append({
                    "id": str(ObjectId()),
                    "order_id": str(order_id),
                    "product_id": product.id,
                    "product_name": product.name,
                    "quantity": line.quantity,
                    "price": product.price,
                    "product_image": product.image or PLACEHOLDER_IMAGE,
                })
            total = sum((i["price"] * i["quantity"] for i in items), Decimal("0"))
            doc = {
                "_id": order_id,
                "user_id": user_id,
                "total": to_decimal128(total),
                "status": STATUS_COMPLETED,
                "delivery_address": delivery_address,
                "created_at": utcnow(),
                "items": [dict(i, price=to_decimal128(i["price"])) for i in items],
            }
            self._insert_order(doc, session)
        except Exception:
            if session is None:
                self._restore(taken)
            raise
        return order_from_doc(doc)

    def _insert_order(self, doc: Dict[str, Any], session=None) -> None:
        if session is not None:
            self._orders.insert_one(doc, session=session)
        else:
            self._orders.insert_one(doc)

    def _restore(self, taken: List[OrderLine]) -> None:
        for line in taken:
            try:
                self.catalog.restore_stock(line.product_id, line.quantity)
            except PyMongoError:
                logger.exception("Could not restore %d units of product %s", line.quantity, line.product_id)
        if taken:
            logger.warning("Restored stock for %d order line(s) after a failed order", len(taken))

    def list_by_user(self, user_id: str) -> List[Order]:
        cursor = self._orders.find({"user_id": user_id}).sort([("created_at", -1), ("_id", -1)])
        return [order_from_doc(d) for d in cursor]


class OrderService:
    def __init__(self, catalog: ProductStore, orders: OrderStore):
        self.catalog = catalog
        self.orders = orders

    def checkout(self, cart: Cart, user_id: Optional[str], delivery_address: Optional[str]) -> Order:
        if len(cart) == 0:
            logger.warning("Checkout attempt with empty cart")
            raise EmptyCartError()

        items = cart.snapshot()
        for item in items:
            if not self.catalog.is_available(item.product_id, item.quantity):
                logger.warning("Checkout rejected, insufficient stock for %s", item.product.name)
                raise InsufficientStockError(item.product.name, item.quantity)

        address = (delivery_address or "").strip() or DEFAULT_DELIVERY_ADDRESS
        lines = [OrderLine(i.product_id, i.product.name, i.quantity) for i in items]
        order = self.orders.save_order(user_id, address, lines)
        cart.clear()
        logger.info("Order %s placed for %s, total %s", order.id, user_id or "guest", order.total)
        return order

    def list_orders(self, user_id: str) -> List[Order]:
        return self.orders.list_by_user(user_id)

    def search_orders(self, user_id: str, term: Optional[str]) -> List[Order]:
        """
        Case-insensitive match on order id or any item's product name.

        Filters the user's full order list in memory, which is fine for the
        handful of orders a shopper has but does not scale to large histories.
        """
        orders = self.list_orders(user_id)
        if term is None or not term.strip():
            return orders
        return [o for o in orders if order_matches(o, term.strip())]
