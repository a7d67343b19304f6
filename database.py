"""
MongoDB access for the storefront.

`db` is None when DATABASE_URL / DATABASE_NAME are not set; the API answers
"Database not configured" in that case. `DocumentStore` is the generic CRUD
accessor every repository is composed over.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection

import config

logger = logging.getLogger(__name__)

client = MongoClient(config.DATABASE_URL) if config.DATABASE_URL else None
db = client[config.DATABASE_NAME] if client is not None and config.DATABASE_NAME else None


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def to_str_id(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    d = dict(doc)
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    return d


@dataclass
class Page:
    data: List[dict]
    total: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class DocumentStore:
    """Create/find/update/soft-delete over one collection."""

    def __init__(self, collection: Collection):
        self.collection = collection

    def create(self, data: Dict[str, Any]) -> dict:
        doc = dict(data)
        doc.setdefault("created_at", now())
        doc.setdefault("updated_at", now())
        res = self.collection.insert_one(doc)
        doc["_id"] = res.inserted_id
        return doc

    def find_by_id(self, doc_id: Any) -> Optional[dict]:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def find_one(self, query: Dict[str, Any]) -> Optional[dict]:
        return self.collection.find_one(query)

    def find_all(self, query: Dict[str, Any], sort: Optional[Sequence[Tuple[str, int]]] = None) -> List[dict]:
        cursor = self.collection.find(query)
        if sort:
            cursor = cursor.sort(list(sort))
        return list(cursor)

    def find_page(self, query: Dict[str, Any], page: int, limit: int,
                  sort: Optional[Sequence[Tuple[str, int]]] = None) -> Page:
        skip = max(page - 1, 0) * limit
        total = self.collection.count_documents(query)
        cursor = self.collection.find(query)
        if sort:
            cursor = cursor.sort(list(sort))
        items = list(cursor.skip(skip).limit(limit))
        return Page(data=items, total=total, limit=limit)

    def count(self, query: Dict[str, Any]) -> int:
        return self.collection.count_documents(query)

    def update(self, doc_id: Any, fields: Dict[str, Any], query: Optional[Dict[str, Any]] = None) -> Optional[dict]:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        update = dict(fields)
        update["updated_at"] = now()
        return self.collection.find_one_and_update(
            {"_id": oid, **(query or {})},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )

    def soft_delete(self, doc_id: Any) -> bool:
        oid = to_object_id(doc_id)
        if oid is None:
            return False
        res = self.collection.update_one(
            {"_id": oid, "is_deleted": {"$ne": True}},
            {"$set": {"is_deleted": True, "updated_at": now()}},
        )
        return res.modified_count > 0

    def delete(self, query: Dict[str, Any]) -> bool:
        return self.collection.delete_one(query).deleted_count > 0


def ensure_indexes(database) -> None:
    database["cart"].create_index([("user_id", ASCENDING)], unique=True)
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["pending_registration"].create_index([("email", ASCENDING)], unique=True)
    # Mongo drops pending signups once expires_at has passed
    database["pending_registration"].create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
    database["review"].create_index([("product_id", ASCENDING), ("user_id", ASCENDING)])
    database["checkout"].create_index([("user_id", ASCENDING), ("created_at", ASCENDING)])
    logger.info("Indexes ensured on %s", database.name)
