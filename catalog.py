"""
Catalog Store.

Product reads, admin product maintenance, and the atomic stock counters
the Order Workflow reserves against.
"""

import logging
import re
from typing import List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING, ReturnDocument

from auth import Caller, Capability, authorize
from database import create_document, get_documents, page_bounds, to_object_id, utcnow
from errors import NotFoundError, UserInputError, guarded
from schemas import Product, ProductUpdate

logger = logging.getLogger(__name__)

# Primary sort keys; newest first always breaks ties
SORT_OPTIONS = {
    "priceHighToLow": [("price", DESCENDING)],
    "priceLowToHigh": [("price", ASCENDING)],
    "reviewHighToLow": [("average_rating", DESCENDING)],
    "reviewLowToHigh": [("average_rating", ASCENDING)],
}


def _range(label: str, low: Optional[float], high: Optional[float]) -> dict:
    if low is not None and high is not None and low > high:
        raise UserInputError(f"Invalid {label} range")
    bounds = {}
    if low is not None:
        bounds["$gte"] = low
    if high is not None:
        bounds["$lte"] = high
    return bounds


class Catalog:
    """Owns the ``product`` collection."""

    def __init__(self, db):
        self.db = db
        self.products = db["product"]

    @guarded("Failed to fetch product")
    def get_product(self, product_id) -> dict:
        product = self.products.find_one({"_id": to_object_id(product_id, "product")})
        if not product:
            raise NotFoundError("Product not found")
        return product

    @guarded("Failed to fetch products")
    def find_products(self, product_ids) -> dict:
        """Load several products in one query, keyed by ObjectId."""
        ids = [to_object_id(pid, "product") for pid in product_ids]
        return {p["_id"]: p for p in self.products.find({"_id": {"$in": ids}})}

    @guarded("Failed to fetch products")
    def list_products(self, page: int = 1, page_size: Optional[int] = None) -> Tuple[List[dict], int]:
        skip, limit = page_bounds(page, page_size)
        products = get_documents(self.db, "product", {}, sort=[("created_at", DESCENDING)], skip=skip, limit=limit)
        return products, self.products.count_documents({})

    @guarded("Failed to fetch products")
    def filter_products(self, min_price: Optional[float] = None, max_price: Optional[float] = None,
                        min_rating: Optional[float] = None, max_rating: Optional[float] = None,
                        sort_option: Optional[str] = None, page: int = 1,
                        page_size: Optional[int] = None) -> Tuple[List[dict], int]:
        """
        Products within price and rating ranges, sorted and paginated.

        Args:
            min_price, max_price: Inclusive price bounds; either may be omitted
            min_rating, max_rating: Inclusive average rating bounds
            sort_option: One of SORT_OPTIONS; newest first otherwise

        Raises:
            UserInputError: A lower bound exceeds its upper bound
        """
        query = {}
        price = _range("price", min_price, max_price)
        if price:
            query["price"] = price
        rating = _range("rating", min_rating, max_rating)
        if rating:
            query["average_rating"] = rating

        sort = SORT_OPTIONS.get(sort_option, []) + [("created_at", DESCENDING)]
        skip, limit = page_bounds(page, page_size)
        products = get_documents(self.db, "product", query, sort=sort, skip=skip, limit=limit)
        return products, self.products.count_documents(query)

    @guarded("Failed to search products")
    def search_products(self, term: str, page: int = 1,
                        page_size: Optional[int] = None) -> Tuple[List[dict], int]:
        """Case-insensitive title match; the term is taken literally."""
        query = {"title": {"$regex": re.escape(term or ""), "$options": "i"}}
        skip, limit = page_bounds(page, page_size)
        products = get_documents(self.db, "product", query, sort=[("created_at", DESCENDING)], skip=skip, limit=limit)
        return products, self.products.count_documents(query)

    @guarded("Failed to fetch products")
    def products_by_user(self, user_id, page: int = 1,
                         page_size: Optional[int] = None) -> Tuple[List[dict], int]:
        query = {"user": to_object_id(user_id, "user")}
        skip, limit = page_bounds(page, page_size)
        products = get_documents(self.db, "product", query, sort=[("created_at", DESCENDING)], skip=skip, limit=limit)
        return products, self.products.count_documents(query)

    @guarded("Failed to create product")
    def create_product(self, caller: Optional[Caller], data: Product) -> dict:
        caller = authorize(caller, Capability.MANAGE_CATALOG)
        document = data.model_dump()
        document.update({"average_rating": 0.0, "reviews": [], "user": to_object_id(caller.user_id, "user")})
        product = create_document(self.db, "product", document)
        logger.info(f"Product {product['_id']} created by {caller.user_id}")
        return product

    @guarded("Failed to update product")
    def update_product(self, caller: Optional[Caller], product_id, changes: ProductUpdate) -> dict:
        authorize(caller, Capability.MANAGE_CATALOG)
        fields = changes.model_dump(exclude_none=True)
        fields["updated_at"] = utcnow()
        product = self.products.find_one_and_update(
            {"_id": to_object_id(product_id, "product")},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if not product:
            raise NotFoundError("Product not found")
        return product

    @guarded("Failed to delete product")
    def delete_product(self, caller: Optional[Caller], product_id) -> dict:
        """
        Delete a product and its reviews.

        Historical orders keep their snapshot lines. Cart cleanup is done by
        the caller (see Storefront.delete_product).
        """
        authorize(caller, Capability.MANAGE_CATALOG)
        product = self.products.find_one_and_delete({"_id": to_object_id(product_id, "product")})
        if not product:
            raise NotFoundError("Product not found")
        removed = self.db["review"].delete_many({"product": product["_id"]}).deleted_count
        logger.info(f"Product {product['_id']} deleted along with {removed} reviews")
        return product

    # ---- stock counters ----

    def reserve_stock(self, product_id, quantity: int) -> bool:
        """
        Take ``quantity`` units in a single conditional update.

        Returns:
            False when the product is gone or holds fewer than ``quantity`` units
        """
        result = self.products.update_one(
            {"_id": to_object_id(product_id, "product"), "stock_quantity": {"$gte": quantity}},
            {"$inc": {"stock_quantity": -quantity}, "$set": {"updated_at": utcnow()}},
        )
        return result.modified_count == 1

    def release_stock(self, product_id, quantity: int) -> bool:
        """Return ``quantity`` units. False when the product no longer exists."""
        result = self.products.update_one(
            {"_id": to_object_id(product_id, "product")},
            {"$inc": {"stock_quantity": quantity}, "$set": {"updated_at": utcnow()}},
        )
        return result.modified_count == 1
