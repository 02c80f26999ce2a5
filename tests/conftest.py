"""
Shared fixtures: an in-memory MongoDB, the wired storefront, and callers.
"""

import mongomock
import pytest
from bson import ObjectId

from auth import Caller, Role
from database import create_document
from schemas import Address, OrderInput, OrderLineInput
from services import Storefront


def _register(db, role: Role) -> Caller:
    user_id = ObjectId()
    db["user"].insert_one({"_id": user_id, "role": role.value})
    return Caller(user_id=str(user_id), role=role)


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def storefront(db):
    return Storefront(db)


@pytest.fixture
def shopper(db):
    return _register(db, Role.USER)


@pytest.fixture
def other_shopper(db):
    return _register(db, Role.USER)


@pytest.fixture
def developer(db):
    return _register(db, Role.DEVELOPER)


@pytest.fixture
def admin(db):
    return _register(db, Role.ADMIN)


@pytest.fixture
def make_product(db):
    """Insert a product directly, bypassing the admin check."""
    def _make(title="Ceramic Mug", price=10.0, stock=10):
        return create_document(db, "product", {
            "title": title,
            "description": f"{title} description",
            "price": price,
            "stock_quantity": stock,
            "average_rating": 0.0,
            "reviews": [],
        })
    return _make


@pytest.fixture
def checkout():
    """Build an OrderInput from (product, quantity) pairs."""
    def _checkout(*lines, total_amount=None):
        if total_amount is None:
            total_amount = sum(product["price"] * quantity for product, quantity in lines)
        return OrderInput(
            name="Jane Shopper",
            email="jane@shopper.io",
            address=Address(street="1 Main St", city="Ottawa", state="ON", postal_code="K1A 0B1"),
            products=[OrderLineInput(product_id=str(product["_id"]), order_quantity=quantity)
                      for product, quantity in lines],
            total_amount=total_amount,
        )
    return _checkout


@pytest.fixture
def stock_of(db):
    def _stock_of(product) -> int:
        return db["product"].find_one({"_id": product["_id"]})["stock_quantity"]
    return _stock_of
