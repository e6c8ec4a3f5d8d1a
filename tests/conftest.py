"""Pytest fixtures for storefront tests."""

from decimal import Decimal

import mongomock
import pytest
from fastapi.testclient import TestClient

from catalog import ProductStore
from orders import OrderService, OrderStore
from schemas import ProductIn
from sessions import SessionStore


@pytest.fixture
def db():
    """A fresh in-memory Mongo database."""
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def catalog(db):
    return ProductStore(db)


@pytest.fixture
def make_product(catalog):
    """Factory creating products in the catalog."""

    def _make(name="Widget", price="9.99", stock=5, **kwargs):
        return catalog.create(ProductIn(name=name, price=Decimal(price), stock=stock, **kwargs))

    return _make


@pytest.fixture
def order_store(db, catalog):
    return OrderStore(db, catalog)


@pytest.fixture
def order_service(catalog, order_store):
    return OrderService(catalog, order_store)


@pytest.fixture
def app(db):
    from main import create_app

    return create_app(db=db, sessions=SessionStore(), use_transactions=False)


@pytest.fixture
def client(app):
    return TestClient(app)
