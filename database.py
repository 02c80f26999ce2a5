"""
Database access

MongoDB connection plus the small document helpers shared by every
component. Each Pydantic model in schemas.py maps to a collection named
after the lowercased entity:
- Product -> "product"
- Cart -> "cart"
- Order -> "order"
- Review -> "review"
- User -> "user"
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

import settings
from errors import UserInputError

logger = logging.getLogger(__name__)

client = None
db = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    client = MongoClient(settings.DATABASE_URL)
    db = client[settings.DATABASE_NAME]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any, label: str = "document") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise UserInputError(f"Invalid {label} id")


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> dict:
    """
    Insert a document stamped with created_at/updated_at.

    Returns:
        The stored document, including its generated _id
    """
    if isinstance(data, BaseModel):
        document = data.model_dump()
    else:
        document = dict(data)
    now = utcnow()
    document.setdefault("created_at", now)
    document["updated_at"] = now
    result = database[collection_name].insert_one(document)
    document["_id"] = result.inserted_id
    return document


def get_documents(database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  sort: Optional[List] = None, skip: int = 0, limit: Optional[int] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def page_bounds(page: int, page_size: int):
    """Clamp pagination input and return (skip, limit)."""
    page = max(int(page or 1), 1)
    page_size = min(max(int(page_size or settings.DEFAULT_PAGE_SIZE), 1), settings.MAX_PAGE_SIZE)
    return (page - 1) * page_size, page_size


def ensure_indexes(database) -> None:
    """Create the indexes the consistency rules depend on. Safe to call repeatedly."""
    # One cart per user
    database["cart"].create_index([("user", ASCENDING)], unique=True)
    # One review per (user, product)
    database["review"].create_index([("user", ASCENDING), ("product", ASCENDING)], unique=True)
    database["review"].create_index([("product", ASCENDING), ("created_at", DESCENDING)])
    database["order"].create_index([("user", ASCENDING), ("created_at", DESCENDING)])
    logger.info("Ensured storefront indexes")
