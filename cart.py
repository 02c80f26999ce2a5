"""
Cart Ledger.

One cart per user holding ordered product lines and a running total. The
total is maintained incrementally at the price current when each mutation
is applied. Line items and total are always written together in one update
guarded by the cart's ``version``, so concurrent mutations cannot leave
them out of step.
"""

import logging
from typing import Callable, List, Optional, Tuple

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

import settings
from auth import Caller, authorize
from database import create_document, to_object_id, utcnow
from errors import InternalError, NotFoundError, UserInputError, guarded

logger = logging.getLogger(__name__)

# (lines, total) -> (new lines, new total)
CartMutation = Callable[[List[dict], float], Tuple[List[dict], float]]


def _money(value: float) -> float:
    return round(value, 2)


class CartLedger:
    """Owns the ``cart`` collection and the user's cart back-reference."""

    def __init__(self, db, catalog, max_retries: int = settings.CART_UPDATE_MAX_RETRIES):
        self.db = db
        self.catalog = catalog
        self.carts = db["cart"]
        self.users = db["user"]
        self.max_retries = max_retries

    @guarded("Failed to fetch cart")
    def get_cart(self, caller: Optional[Caller]) -> Optional[dict]:
        caller = authorize(caller)
        return self.carts.find_one({"user": to_object_id(caller.user_id, "user")})

    @guarded("Failed to create cart")
    def create_cart(self, caller: Optional[Caller]) -> dict:
        """Create the caller's cart, or return the one they already have."""
        caller = authorize(caller)
        user_id = to_object_id(caller.user_id, "user")
        existing = self.carts.find_one({"user": user_id})
        if existing:
            return existing
        try:
            return self._new_cart(user_id)
        except DuplicateKeyError:
            # A concurrent first call created it
            return self.carts.find_one({"user": user_id})

    @guarded("Failed to add item to cart")
    def add_item(self, caller: Optional[Caller], product_id, quantity: int) -> dict:
        caller = authorize(caller)
        if quantity < 1:
            raise UserInputError("Quantity must be at least 1")
        product = self.catalog.get_product(product_id)
        price = product["price"]

        def mutate(lines, total):
            for line in lines:
                if line["product"] == product["_id"]:
                    line["quantity"] += quantity
                    break
            else:
                lines.append({"product": product["_id"], "quantity": quantity})
            return lines, total + quantity * price

        return self._apply(to_object_id(caller.user_id, "user"), mutate)

    @guarded("Failed to remove item from cart")
    def remove_item(self, caller: Optional[Caller], product_id) -> dict:
        caller = authorize(caller)
        product = self.catalog.get_product(product_id)

        def mutate(lines, total):
            line = _find_line(lines, product["_id"])
            remaining = [l for l in lines if l["product"] != product["_id"]]
            return remaining, total - line["quantity"] * product["price"]

        return self._apply(to_object_id(caller.user_id, "user"), mutate)

    @guarded("Failed to update product quantity in cart")
    def set_item_quantity(self, caller: Optional[Caller], product_id, quantity: int) -> dict:
        caller = authorize(caller)
        if quantity < 1:
            raise UserInputError("Quantity must be at least 1; remove the product instead")
        product = self.catalog.get_product(product_id)

        def mutate(lines, total):
            line = _find_line(lines, product["_id"])
            delta = quantity - line["quantity"]
            line["quantity"] = quantity
            return lines, total + delta * product["price"]

        return self._apply(to_object_id(caller.user_id, "user"), mutate)

    @guarded("Failed to reset cart")
    def reset_cart(self, caller: Optional[Caller]) -> dict:
        caller = authorize(caller)
        return self.clear_and_recreate(caller.user_id)

    def clear_and_recreate(self, user_id) -> dict:
        """Replace the user's cart with a fresh empty one."""
        user_id = to_object_id(user_id, "user")
        self.carts.delete_many({"user": user_id})
        return self._new_cart(user_id)

    @guarded("Failed to remove product from carts")
    def drop_product(self, product_id, price: float) -> int:
        """
        Remove a product's line from every cart holding it.

        Returns:
            Number of carts changed
        """
        product_id = to_object_id(product_id, "product")

        def mutate(lines, total):
            line = next((l for l in lines if l["product"] == product_id), None)
            if line is None:
                return lines, total
            remaining = [l for l in lines if l["product"] != product_id]
            return remaining, total - line["quantity"] * price

        changed = 0
        for cart in list(self.carts.find({"products.product": product_id}, {"user": 1})):
            try:
                self._apply(cart["user"], mutate)
            except NotFoundError:
                logger.info(f"Cart of user {cart['user']} is gone; skipping while dropping product {product_id}")
                continue
            changed += 1
        if changed:
            logger.info(f"Dropped product {product_id} from {changed} carts")
        return changed

    # ---- internals ----

    def _new_cart(self, user_id: ObjectId) -> dict:
        cart = create_document(self.db, "cart", {
            "user": user_id,
            "products": [],
            "total_price": 0.0,
            "version": 0,
        })
        self.users.update_one({"_id": user_id}, {"$set": {"cart": cart["_id"]}})
        logger.debug(f"Created cart {cart['_id']} for user {user_id}")
        return cart

    def _apply(self, user_id: ObjectId, mutate: CartMutation) -> dict:
        """
        Read-compute-write a cart, retrying when another writer got there first.

        Raises:
            NotFoundError: User has no cart
            InternalError: Still conflicting after ``max_retries`` attempts
        """
        for attempt in range(1, self.max_retries + 1):
            cart = self.carts.find_one({"user": user_id})
            if not cart:
                raise NotFoundError("Cart not found")

            lines = [dict(line) for line in cart.get("products", [])]
            lines, total = mutate(lines, cart.get("total_price", 0.0))
            version = cart.get("version", 0)
            now = utcnow()
            result = self.carts.update_one(
                {"_id": cart["_id"], "version": version},
                {
                    "$set": {"products": lines, "total_price": _money(total), "updated_at": now},
                    "$inc": {"version": 1},
                },
            )
            if result.modified_count == 1:
                cart.update({"products": lines, "total_price": _money(total), "version": version + 1, "updated_at": now})
                return cart
            logger.warning(f"Cart {cart['_id']} changed concurrently (attempt {attempt}/{self.max_retries})")

        raise InternalError("Cart was modified concurrently, please retry")


def _find_line(lines: List[dict], product_id: ObjectId) -> dict:
    for line in lines:
        if line["product"] == product_id:
            return line
    raise NotFoundError("Product not found in cart")
