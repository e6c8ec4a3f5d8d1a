"""Catalog store: product documents in the "product" collection."""
import logging
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from database import as_utc, create_document, from_decimal128, get_documents, parse_object_id, to_decimal128
from schemas import Product, ProductIn

logger = logging.getLogger(__name__)

COLLECTION = "product"


def product_from_doc(doc: Dict[str, Any]) -> Product:
    return Product(
        id=str(doc["_id"]),
        name=doc.get("name", ""),
        price=from_decimal128(doc.get("price")),
        description=doc.get("description"),
        image=doc.get("image"),
        stock=int(doc.get("stock", 0)),
        category=doc.get("category"),
        created_at=as_utc(doc.get("created_at")),
    )


def product_to_doc(product: ProductIn) -> Dict[str, Any]:
    return {
        "name": product.name,
        "price": to_decimal128(product.price),
        "description": product.description,
        "image": product.image,
        "stock": product.stock,
        "category": product.category,
    }


def _session_opts(session) -> Dict[str, Any]:
    return {"session": session} if session is not None else {}


class ProductStore:
    def __init__(self, database):
        self._db = database
        self._products = database[COLLECTION]

    def all(self) -> List[Product]:
        return [product_from_doc(d) for d in get_documents(self._db, COLLECTION, sort=[("_id", 1)])]

    def get(self, product_id: str) -> Optional[Product]:
        oid = parse_object_id(product_id)
        if oid is None:
            return None
        doc = self._products.find_one({"_id": oid})
        return product_from_doc(doc) if doc else None

    def search(self, term: str) -> List[Product]:
        query = {"name": {"$regex": re.escape(term), "$options": "i"}}
        return [product_from_doc(d) for d in get_documents(self._db, COLLECTION, query)]

    def by_price_range(self, min_price: Decimal, max_price: Decimal) -> List[Product]:
        query = {"price": {"$gte": to_decimal128(min_price), "$lte": to_decimal128(max_price)}}
        return [product_from_doc(d) for d in get_documents(self._db, COLLECTION, query)]

    def create(self, payload: ProductIn) -> Product:
        new_id = create_document(self._db, COLLECTION, product_to_doc(payload))
        logger.info("Created product %s (%s)", new_id, payload.name)
        return self.get(new_id)

    def update(self, product_id: str, payload: ProductIn) -> bool:
        oid = parse_object_id(product_id)
        if oid is None:
            return False
        result = self._products.update_one({"_id": oid}, {"$set": product_to_doc(payload)})
        return result.matched_count > 0

    def delete(self, product_id: str) -> bool:
        oid = parse_object_id(product_id)
        if oid is None:
            return False
        result = self._products.delete_one({"_id": oid})
        return result.deleted_count > 0

    def is_available(self, product_id: str, quantity: int) -> bool:
        """True iff the product exists and has at least `quantity` in stock."""
        oid = parse_object_id(product_id)
        if oid is None:
            return False
        doc = self._products.find_one({"_id": oid}, {"stock": 1})
        return doc is not None and int(doc.get("stock", 0)) >= quantity

    def decrement_stock(self, product_id: str, quantity: int, session=None) -> bool:
        return self.take_stock(product_id, quantity, session=session) is not None

    def take_stock(self, product_id: str, quantity: int, session=None) -> Optional[Product]:
        """
        Atomically decrement stock by `quantity` if at least that much is left.

        The stock guard and the decrement are one conditional write, so two
        concurrent callers can never both take the last unit. Returns the
        product as it stands after the decrement, or None when nothing matched.
        """
        oid = parse_object_id(product_id)
        if oid is None or quantity <= 0:
            return None
        doc = self._products.find_one_and_update(
            {"_id": oid, "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity}},
            return_document=ReturnDocument.AFTER,
            **_session_opts(session),
        )
        if doc is None:
            logger.warning("Stock decrement of %d refused for product %s", quantity, product_id)
            return None
        return product_from_doc(doc)

    def restore_stock(self, product_id: str, quantity: int, session=None) -> None:
        oid = parse_object_id(product_id)
        if oid is None:
            return
        self._products.update_one({"_id": oid}, {"$inc": {"stock": quantity}}, **_session_opts(session))
