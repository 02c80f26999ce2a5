"""
Service wiring.

Builds every storefront component over one database handle. Operations
that span components (product deletion touching carts) live here.
"""

from typing import Optional

from auth import Caller
from cart import CartLedger
from catalog import Catalog
from database import ensure_indexes
from orders import OrderWorkflow
from reviews import ReviewAggregator


class Storefront:
    def __init__(self, db):
        self.db = db
        ensure_indexes(db)
        self.catalog = Catalog(db)
        self.carts = CartLedger(db, self.catalog)
        self.orders = OrderWorkflow(db, self.catalog, self.carts)
        self.reviews = ReviewAggregator(db, self.catalog)

    def delete_product(self, caller: Optional[Caller], product_id) -> dict:
        product = self.catalog.delete_product(caller, product_id)
        self.carts.drop_product(product["_id"], product["price"])
        return product
