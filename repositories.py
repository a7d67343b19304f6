"""
Persistence for each entity family.

Repositories are thin: they know collection queries, not business rules.
Each one wraps a DocumentStore so any collection-like backend can be used.
"""
import re
from typing import Any, Dict, List, Optional, Set

from pymongo import ASCENDING, DESCENDING

from database import DocumentStore, Page, now, to_object_id
from schemas import UNASSIGNED_PRIORITY

NOT_DELETED = {"is_deleted": {"$ne": True}}


def _exclude(doc_id: Optional[Any]) -> Dict[str, Any]:
    oid = to_object_id(doc_id) if doc_id is not None else None
    return {"_id": {"$ne": oid}} if oid is not None else {}


class CategoryRepository:
    """Categories and subcategories; `parent_field` is set for the latter."""

    def __init__(self, store: DocumentStore, parent_field: Optional[str] = None):
        self.store = store
        self.parent_field = parent_field

    def add(self, data: Dict[str, Any]) -> dict:
        return self.store.create(data)

    def get(self, category_id: Any) -> Optional[dict]:
        return self.store.find_by_id(category_id)

    def page(self, page: int, limit: int) -> Page:
        return self.store.find_page(dict(NOT_DELETED), page, limit, sort=[("priority", ASCENDING)])

    def search(self, name: str, page: int, limit: int) -> Page:
        query = {**NOT_DELETED, "name": {"$regex": f"^{re.escape(name)}", "$options": "i"}}
        return self.store.find_page(query, page, limit, sort=[("priority", ASCENDING)])

    def listed(self, page: int, limit: int, parent_id: Optional[str] = None) -> Page:
        query: Dict[str, Any] = {"is_listed": True, **NOT_DELETED}
        if self.parent_field and parent_id is not None:
            query[self.parent_field] = parent_id
        return self.store.find_page(query, page, limit, sort=[("priority", ASCENDING)])

    def find_by_name(self, name: str, exclude_id: Optional[Any] = None) -> Optional[dict]:
        query = {**NOT_DELETED, "name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}}
        query.update(_exclude(exclude_id))
        return self.store.find_one(query)

    def find_by_priority(self, priority: int, exclude_id: Optional[Any] = None) -> Optional[dict]:
        query = {**NOT_DELETED, "priority": priority}
        query.update(_exclude(exclude_id))
        return self.store.find_one(query)

    def assigned_priorities(self) -> List[int]:
        docs = self.store.find_all({**NOT_DELETED, "priority": {"$ne": UNASSIGNED_PRIORITY}})
        return [d["priority"] for d in docs if isinstance(d.get("priority"), int)]

    def update(self, category_id: Any, fields: Dict[str, Any]) -> Optional[dict]:
        return self.store.update(category_id, fields)

    def delete(self, category_id: Any) -> bool:
        return self.store.soft_delete(category_id)


class ProductRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    def add(self, data: Dict[str, Any]) -> dict:
        return self.store.create(data)

    def get(self, product_id: Any) -> Optional[dict]:
        return self.store.find_by_id(product_id)

    def page(self, page: int, limit: int, listed_only: bool = False,
             category_id: Optional[str] = None, sub_category_id: Optional[str] = None) -> Page:
        query: Dict[str, Any] = dict(NOT_DELETED)
        if listed_only:
            query["is_listed"] = True
        if category_id:
            query["category_id"] = category_id
        if sub_category_id:
            query["sub_category_id"] = sub_category_id
        return self.store.find_page(query, page, limit, sort=[("created_at", DESCENDING)])

    def update(self, product_id: Any, fields: Dict[str, Any]) -> Optional[dict]:
        return self.store.update(product_id, fields)

    def delete(self, product_id: Any) -> bool:
        return self.store.soft_delete(product_id)

    def count(self) -> int:
        return self.store.count(dict(NOT_DELETED))


class CartRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    def get_by_user(self, user_id: str) -> Optional[dict]:
        return self.store.find_one({"user_id": user_id})

    def create(self, user_id: str) -> dict:
        return self.store.create({"user_id": user_id, "items": []})

    def set_items(self, cart_id: Any, items: List[dict]) -> Optional[dict]:
        return self.store.update(cart_id, {"items": items})

    def delete_by_user(self, user_id: str) -> bool:
        return self.store.delete({"user_id": user_id})


class CheckoutRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    def add(self, data: Dict[str, Any]) -> dict:
        return self.store.create(data)

    def get(self, order_id: Any, user_id: Optional[str] = None) -> Optional[dict]:
        order = self.store.find_by_id(order_id)
        if order is None or (user_id is not None and order.get("user_id") != user_id):
            return None
        return order

    def for_user(self, user_id: str) -> List[dict]:
        return self.store.find_all({"user_id": user_id}, sort=[("created_at", DESCENDING)])

    def page(self, page: int, limit: int, order_status: Optional[str] = None) -> Page:
        query: Dict[str, Any] = {}
        if order_status:
            query["order_status"] = order_status
        return self.store.find_page(query, page, limit, sort=[("created_at", DESCENDING)])

    def update(self, order_id: Any, fields: Dict[str, Any]) -> Optional[dict]:
        return self.store.update(order_id, fields)

    def count(self) -> int:
        return self.store.count({})

    def open_variant_ids(self, product_id: str) -> Set[str]:
        """Variant ids of `product_id` held by orders that can still be cancelled."""
        query = {"items.product_id": product_id, "order_status": {"$in": ["processing", "shipped"]}}
        return {
            item["variant_id"]
            for order in self.store.find_all(query)
            for item in order.get("items", [])
            if item.get("product_id") == product_id
        }

    def status_summary(self) -> List[dict]:
        pipeline = [
            {"$group": {"_id": "$order_status", "count": {"$sum": 1}, "amount": {"$sum": "$amount"}}},
        ]
        return list(self.store.collection.aggregate(pipeline))

    def revenue(self) -> float:
        pipeline = [
            {"$match": {"payment_status": "completed"}},
            {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
        ]
        agg = list(self.store.collection.aggregate(pipeline))
        return float(agg[0]["total"]) if agg else 0.0


class ReviewRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    def add(self, data: Dict[str, Any]) -> dict:
        return self.store.create(data)

    def get(self, review_id: Any) -> Optional[dict]:
        return self.store.find_by_id(review_id)

    def find_by_user(self, product_id: str, user_id: str) -> Optional[dict]:
        return self.store.find_one({"product_id": product_id, "user_id": user_id})

    def page(self, page: int, limit: int, status: Optional[str] = None,
             product_id: Optional[str] = None) -> Page:
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status
        if product_id:
            query["product_id"] = product_id
        return self.store.find_page(query, page, limit, sort=[("created_at", DESCENDING)])

    def update(self, review_id: Any, fields: Dict[str, Any], expected_status: Optional[str] = None) -> Optional[dict]:
        query = {"status": expected_status} if expected_status else None
        return self.store.update(review_id, fields, query=query)

    def approved_stats(self, product_id: str) -> Dict[str, Any]:
        pipeline = [
            {"$match": {"product_id": product_id, "status": "approved"}},
            {"$group": {"_id": "$product_id", "avg": {"$avg": "$rating"}, "count": {"$sum": 1}}},
        ]
        agg = list(self.store.collection.aggregate(pipeline))
        if not agg:
            return {"rating": 0, "num_reviews": 0}
        return {"rating": round(agg[0]["avg"], 2), "num_reviews": agg[0]["count"]}


class UserRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    def add(self, data: Dict[str, Any]) -> dict:
        return self.store.create(data)

    def get(self, user_id: Any) -> Optional[dict]:
        return self.store.find_by_id(user_id)

    def find_by_email(self, email: str) -> Optional[dict]:
        return self.store.find_one({"email": email.lower()})

    def page(self, page: int, limit: int) -> Page:
        return self.store.find_page({}, page, limit, sort=[("created_at", DESCENDING)])

    def update(self, user_id: Any, fields: Dict[str, Any]) -> Optional[dict]:
        return self.store.update(user_id, fields)

    def count(self) -> int:
        return self.store.count({})


class PendingRegistrationRepository:
    """Unverified signups keyed by email."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def put(self, email: str, fields: Dict[str, Any]) -> None:
        self.store.collection.update_one(
            {"email": email},
            {"$set": {**fields, "email": email, "updated_at": now()}, "$setOnInsert": {"created_at": now()}},
            upsert=True,
        )

    def get(self, email: str) -> Optional[dict]:
        return self.store.find_one({"email": email})

    def delete(self, email: str) -> bool:
        return self.store.delete({"email": email})
