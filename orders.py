"""
Order Workflow.

Turns requested line items into a persisted order while keeping product
stock consistent, and restores stock when an order is canceled.

Order creation runs as a small saga:
1. validate every line against current stock (no writes yet)
2. reserve stock line by line with guarded atomic decrements
3. persist the order snapshot
4. replace the caller's cart with an empty one
A failure in step 2 or 3 releases whatever was reserved. Step 4 runs after
the order is committed; its failure is logged and the order stands.
"""

import logging
from collections import OrderedDict
from typing import List, Optional, Tuple

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument

import settings
from auth import Caller, Capability, authorize
from database import create_document, get_documents, page_bounds, to_object_id, utcnow
from errors import ForbiddenError, InsufficientStockError, NotFoundError, UserInputError, guarded
from schemas import OrderInput, OrderUpdate

logger = logging.getLogger(__name__)

PENDING = "pending"
CANCELED = "canceled"


class OrderWorkflow:
    """Owns the ``order`` collection and drives stock changes through the catalog."""

    def __init__(self, db, catalog, ledger):
        self.db = db
        self.catalog = catalog
        self.ledger = ledger
        self.orders = db["order"]

    @guarded("Failed to create order")
    def create_order(self, caller: Optional[Caller], order: OrderInput) -> dict:
        """
        Place an order for the caller.

        Args:
            caller: Authenticated shopper
            order: Validated checkout request

        Returns:
            The persisted order document

        Raises:
            NotFoundError: A requested product does not exist
            InsufficientStockError: A line asks for more than is in stock
        """
        caller = authorize(caller)
        user_id = to_object_id(caller.user_id, "user")

        quantities = _merge_lines(order)
        products = self.catalog.find_products(quantities.keys())

        # Validation pass: nothing is written until every line checks out
        lines = []
        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            if not product:
                raise NotFoundError(f"Product with ID {product_id} not found")
            if product["stock_quantity"] < quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for product '{product['title']}'. "
                    f"Only {product['stock_quantity']} units left in stock."
                )
            lines.append((product, quantity))

        reserved: List[Tuple[object, int]] = []
        try:
            for product, quantity in lines:
                if not self.catalog.reserve_stock(product["_id"], quantity):
                    raise InsufficientStockError(f"Insufficient stock for product '{product['title']}'.")
                reserved.append((product["_id"], quantity))

            snapshot = [
                {
                    "product_id": product["_id"],
                    "title": product["title"],
                    "unit_price": product["price"],
                    "order_quantity": quantity,
                }
                for product, quantity in lines
            ]
            total = round(sum(line["unit_price"] * line["order_quantity"] for line in snapshot), 2)
            if abs(total - order.total_amount) > settings.TOTAL_AMOUNT_TOLERANCE:
                logger.warning(
                    f"Client total {order.total_amount} differs from server total {total} "
                    f"for user {caller.user_id}; storing server total"
                )

            placed = create_document(self.db, "order", {
                "user": user_id,
                "name": order.name,
                "email": order.email,
                "address": order.address.model_dump(),
                "products": snapshot,
                "total_amount": total,
                "status": PENDING,
            })
        except Exception:
            self._release(reserved)
            raise

        logger.info(f"Order {placed['_id']} placed by {caller.user_id} ({len(snapshot)} lines, total {total})")

        try:
            self.ledger.clear_and_recreate(user_id)
        except Exception as e:
            logger.error(f"Order {placed['_id']} placed but cart reset failed for {caller.user_id}: {e}")

        return placed

    @guarded("Failed to fetch order")
    def get_order(self, caller: Optional[Caller], order_id) -> dict:
        caller = authorize(caller)
        order = self._load(order_id)
        if str(order["user"]) != caller.user_id and not caller.can(Capability.MANAGE_ORDERS):
            raise ForbiddenError("You are not authorized to view this order")
        return order

    @guarded("Failed to fetch orders")
    def orders_by_user(self, caller: Optional[Caller], page: int = 1,
                       page_size: Optional[int] = None) -> Tuple[List[dict], int]:
        caller = authorize(caller)
        user_id = to_object_id(caller.user_id, "user")
        skip, limit = page_bounds(page, page_size)
        orders = get_documents(self.db, "order", {"user": user_id},
                               sort=[("created_at", DESCENDING)], skip=skip, limit=limit)
        return orders, self.orders.count_documents({"user": user_id})

    @guarded("Failed to update order")
    def update_order(self, caller: Optional[Caller], order_id, changes: OrderUpdate) -> dict:
        """
        Privileged partial update. Setting status to canceled restores stock
        exactly once; line items and total are never changed.
        """
        authorize(caller, Capability.MANAGE_ORDERS)
        order = self._load(order_id)
        fields = changes.model_dump(exclude_none=True)

        if fields.get("status") == CANCELED:
            fields.pop("status")
            order = self._cancel(order)
        elif "status" in fields and order["status"] == CANCELED:
            raise UserInputError("A canceled order cannot change status")

        if fields:
            query = {"_id": order["_id"]}
            if "status" in fields:
                # A cancel landing after our read must not be overwritten
                query["status"] = {"$ne": CANCELED}
            fields["updated_at"] = utcnow()
            updated = self.orders.find_one_and_update(
                query, {"$set": fields}, return_document=ReturnDocument.AFTER
            )
            if not updated:
                self._load(order["_id"])
                raise UserInputError("A canceled order cannot change status")
            order = updated
        return order

    @guarded("Failed to cancel order")
    def cancel_order(self, caller: Optional[Caller], order_id) -> dict:
        """
        Cancel an order, e.g. after a failed payment.

        Owners may cancel their own pending orders; callers with
        manage_orders may cancel any order.
        """
        caller = authorize(caller)
        order = self._load(order_id)
        if caller.can(Capability.MANAGE_ORDERS):
            return self._cancel(order)
        if str(order["user"]) != caller.user_id:
            raise ForbiddenError("You are not authorized to cancel this order")
        return self._cancel(order, from_status=PENDING)

    # ---- internals ----

    def _load(self, order_id) -> dict:
        order = self.orders.find_one({"_id": to_object_id(order_id, "order")})
        if not order:
            raise NotFoundError("Order not found")
        return order

    def _cancel(self, order: dict, from_status: Optional[str] = None) -> dict:
        # Only the request that flips the status restores stock
        guard = from_status if from_status else {"$ne": CANCELED}
        canceled = self.orders.find_one_and_update(
            {"_id": order["_id"], "status": guard},
            {"$set": {"status": CANCELED, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if canceled is None:
            current = self._load(order["_id"])
            if current["status"] != CANCELED:
                raise UserInputError(
                    f"Only {from_status} orders can be canceled (order is {current['status']})"
                )
            logger.info(f"Order {order['_id']} already canceled; stock left as is")
            return current

        for line in canceled["products"]:
            if not self.catalog.release_stock(line["product_id"], line["order_quantity"]):
                logger.warning(
                    f"Product {line['product_id']} no longer exists; "
                    f"{line['order_quantity']} units from order {order['_id']} not restored"
                )
        logger.info(f"Order {order['_id']} canceled and stock restored")
        return canceled

    def _release(self, reserved: List[Tuple[object, int]]) -> None:
        for product_id, quantity in reserved:
            try:
                if not self.catalog.release_stock(product_id, quantity):
                    logger.warning(f"Could not release {quantity} units of missing product {product_id}")
            except Exception as e:
                logger.error(f"Failed to release {quantity} units of product {product_id}: {e}")
        if reserved:
            logger.warning(f"Released {len(reserved)} stock reservations after a failed checkout")


def _merge_lines(order: OrderInput) -> "OrderedDict[ObjectId, int]":
    """Collapse repeated products into one line, keeping first-seen order."""
    quantities: "OrderedDict[ObjectId, int]" = OrderedDict()
    for line in order.products:
        product_id = to_object_id(line.product_id, "product")
        quantities[product_id] = quantities.get(product_id, 0) + line.order_quantity
    return quantities
