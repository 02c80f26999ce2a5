"""
Review Aggregator.

Review CRUD plus the rule that keeps ``product.average_rating`` equal to
the mean of the product's current reviews (0 when it has none). The
average is recomputed in full after every create, update and delete.
"""

import logging
from typing import List, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from auth import Caller, Capability, authorize
from database import create_document, get_documents, page_bounds, to_object_id, utcnow
from errors import NotFoundError, UserInputError, guarded
from schemas import ReviewInput, ReviewUpdate

logger = logging.getLogger(__name__)


class ReviewAggregator:
    """Owns the ``review`` collection and product rating aggregates."""

    def __init__(self, db, catalog):
        self.db = db
        self.catalog = catalog
        self.reviews = db["review"]
        self.products = db["product"]

    def recompute_average(self, product_id) -> float:
        """
        Recompute and store a product's average rating.

        Returns:
            The new average
        """
        product = self.products.find_one({"_id": to_object_id(product_id, "product")}, {"reviews": 1})
        if not product:
            raise NotFoundError("Product not found")

        review_ids = product.get("reviews", [])
        ratings = [r["rating"] for r in self.reviews.find({"_id": {"$in": review_ids}}, {"rating": 1})]
        average = sum(ratings) / len(ratings) if ratings else 0.0

        self.products.update_one({"_id": product["_id"]}, {"$set": {"average_rating": average}})
        logger.info(f"Product {product['_id']} average rating now {average} over {len(ratings)} reviews")
        return average

    @guarded("Failed to create review")
    def create_review(self, caller: Optional[Caller], product_id, review: ReviewInput) -> dict:
        caller = authorize(caller)
        product = self.catalog.get_product(product_id)
        try:
            created = create_document(self.db, "review", {
                "user": to_object_id(caller.user_id, "user"),
                "product": product["_id"],
                "rating": review.rating,
                "comment": review.comment,
            })
        except DuplicateKeyError:
            raise UserInputError("You have already reviewed this product.")

        self.products.update_one({"_id": product["_id"]}, {"$push": {"reviews": created["_id"]}})
        self.recompute_average(product["_id"])
        logger.info(f"Review {created['_id']} created for product {product['_id']}")
        return created

    @guarded("Failed to update review")
    def update_review(self, caller: Optional[Caller], review_id, changes: ReviewUpdate) -> dict:
        caller = authorize(caller)
        fields = changes.model_dump(exclude_none=True)
        fields["updated_at"] = utcnow()
        review = self.reviews.find_one_and_update(
            {"_id": to_object_id(review_id, "review"), "user": to_object_id(caller.user_id, "user")},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if not review:
            raise NotFoundError("Review not found or you are not authorized to update it")

        self.recompute_average(review["product"])
        return review

    @guarded("Failed to delete review")
    def delete_review(self, caller: Optional[Caller], review_id) -> dict:
        caller = authorize(caller)
        return self._delete({
            "_id": to_object_id(review_id, "review"),
            "user": to_object_id(caller.user_id, "user"),
        })

    @guarded("Failed to delete review")
    def force_delete_review(self, caller: Optional[Caller], review_id) -> dict:
        """Moderator removal of any user's review."""
        caller = authorize(caller, Capability.MODERATE_REVIEWS)
        review = self._delete({"_id": to_object_id(review_id, "review")})
        logger.info(f"Review {review['_id']} removed by {caller.role.value} {caller.user_id}")
        return review

    @guarded("Failed to fetch reviews")
    def reviews_for_product(self, product_id, page: int = 1,
                            page_size: Optional[int] = None) -> Tuple[List[dict], int]:
        product_id = to_object_id(product_id, "product")
        skip, limit = page_bounds(page, page_size)
        reviews = get_documents(self.db, "review", {"product": product_id},
                                sort=[("created_at", DESCENDING)], skip=skip, limit=limit)
        return reviews, self.reviews.count_documents({"product": product_id})

    @guarded("Failed to fetch reviews")
    def reviews_by_user(self, user_id, page: int = 1,
                        page_size: Optional[int] = None) -> Tuple[List[dict], int]:
        user_id = to_object_id(user_id, "user")
        skip, limit = page_bounds(page, page_size)
        reviews = get_documents(self.db, "review", {"user": user_id},
                                sort=[("created_at", DESCENDING)], skip=skip, limit=limit)
        return reviews, self.reviews.count_documents({"user": user_id})

    @guarded("Failed to fetch review")
    def user_product_review(self, caller: Optional[Caller], product_id) -> Optional[dict]:
        caller = authorize(caller)
        return self.reviews.find_one({
            "product": to_object_id(product_id, "product"),
            "user": to_object_id(caller.user_id, "user"),
        })

    def _delete(self, query: dict) -> dict:
        review = self.reviews.find_one_and_delete(query)
        if not review:
            raise NotFoundError("Review not found or you are not authorized to delete it")

        result = self.products.update_one({"_id": review["product"]}, {"$pull": {"reviews": review["_id"]}})
        if result.matched_count:
            self.recompute_average(review["product"])
        return review
