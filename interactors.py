"""
Business rules for each entity family.

Interactors return serialized documents on success, a `Rejection` for
domain-level refusals, and None/False when the target does not exist.
Persistence and upload errors are not caught here.
"""
import logging
import uuid
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Type, Union

from bson import ObjectId
from pydantic import BaseModel

import config
import order_lifecycle
from database import Page, now, to_str_id
from media import MediaUploader
from order_lifecycle import InvalidTransition
from repositories import (
    CartRepository,
    CategoryRepository,
    CheckoutRepository,
    ProductRepository,
    ReviewRepository,
    UserRepository,
)
from schemas import UNASSIGNED_PRIORITY, Category, Checkout, Product, Review

logger = logging.getLogger(__name__)

PRIORITY_SLOTS = range(1, 11)


@dataclass
class Rejection:
    message: str
    status: int

    def as_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "status": self.status}


class ImageFile(NamedTuple):
    filename: str
    content: bytes


def paginated(page: Page, mapper: Callable[[dict], dict] = to_str_id) -> Dict[str, Any]:
    return {"data": [mapper(d) for d in page.data], "totalPages": page.total_pages}


def is_live(doc: Optional[dict]) -> bool:
    return doc is not None and not doc.get("is_deleted")


def find_variant(product: dict, variant_id: str) -> Optional[dict]:
    for variant in product.get("variants", []):
        if variant.get("id") == variant_id:
            return variant
    return None


def public_user(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "is_admin": user.get("is_admin", False),
        "is_blocked": user.get("is_blocked", False),
    }


# Catalog

class CategoryInteractor:
    """Categories and subcategories; `parents` is given for subcategories."""

    def __init__(self, repo: CategoryRepository, uploader: MediaUploader, kind: str = "Category",
                 model: Type[BaseModel] = Category, parents: Optional[CategoryRepository] = None,
                 folder: str = "categories"):
        self.repo = repo
        self.uploader = uploader
        self.kind = kind
        self.model = model
        self.parents = parents
        self.folder = folder

    def _upload(self, photo: Optional[ImageFile]) -> Optional[str]:
        if photo is None:
            return None
        return self.uploader.upload(photo.content, photo.filename, self.folder)

    def _check_priority(self, priority: Optional[int], exclude_id: Optional[Any] = None) -> Optional[Rejection]:
        if priority is None or priority == UNASSIGNED_PRIORITY:
            return None
        if priority not in PRIORITY_SLOTS:
            return Rejection(f"Priority must be between 1 and 10 or {UNASSIGNED_PRIORITY}", 400)
        if self.repo.find_by_priority(priority, exclude_id=exclude_id):
            return Rejection(f"Priority {priority} is already taken", 409)
        return None

    def create(self, data: Dict[str, Any], photo: Optional[ImageFile] = None) -> Union[dict, Rejection, None]:
        if self.repo.find_by_name(data["name"]):
            logger.info("%s %r rejected: duplicate name", self.kind, data["name"])
            return Rejection(f"{self.kind} already exists", 409)
        rejection = self._check_priority(data.get("priority"))
        if rejection:
            return rejection
        if self.parents is not None and not is_live(self.parents.get(data.get("category_id"))):
            return None
        url = self._upload(photo)
        if url:
            data = {**data, "photo": url}
        doc = self.repo.add(self.model(**data).model_dump())
        logger.info("%s %s created", self.kind, doc["_id"])
        return to_str_id(doc)

    def list(self, page: int, limit: int) -> Dict[str, Any]:
        return paginated(self.repo.page(page, limit))

    def search(self, name: str, page: int, limit: int) -> Dict[str, Any]:
        return paginated(self.repo.search(name, page, limit))

    def list_listed(self, page: int, limit: int, parent_id: Optional[str] = None) -> Dict[str, Any]:
        if self.parents is not None and parent_id is not None and not is_live(self.parents.get(parent_id)):
            return {"data": [], "totalPages": 0}
        return paginated(self.repo.listed(page, limit, parent_id=parent_id))

    def get(self, category_id: str) -> Optional[dict]:
        doc = self.repo.get(category_id)
        return to_str_id(doc) if is_live(doc) else None

    def update(self, category_id: str, data: Dict[str, Any],
               photo: Optional[ImageFile] = None) -> Union[dict, Rejection, None]:
        if not is_live(self.repo.get(category_id)):
            return None
        if data.get("name") and self.repo.find_by_name(data["name"], exclude_id=category_id):
            return Rejection(f"{self.kind} already exists", 409)
        rejection = self._check_priority(data.get("priority"), exclude_id=category_id)
        if rejection:
            return rejection
        if self.parents is not None and data.get("category_id") \
                and not is_live(self.parents.get(data["category_id"])):
            return None
        url = self._upload(photo)
        if url:
            data = {**data, "photo": url}
        updated = self.repo.update(category_id, data)
        return to_str_id(updated) if is_live(updated) else None

    def delete(self, category_id: str) -> bool:
        deleted = self.repo.delete(category_id)
        if deleted:
            logger.info("%s %s soft-deleted", self.kind, category_id)
        return deleted

    def set_listed(self, category_id: str, listed: bool) -> Union[dict, Rejection, None]:
        doc = self.repo.get(category_id)
        if not is_live(doc):
            return None
        word = "listed" if listed else "unlisted"
        if bool(doc.get("is_listed")) == listed:
            return Rejection(f"{self.kind} is already {word}.", 400)
        self.repo.update(category_id, {"is_listed": listed})
        return {"message": f"{self.kind} {word} successfully"}

    def available_priority_slots(self) -> Dict[str, List[int]]:
        taken = set(self.repo.assigned_priorities())
        return {"priorities": [p for p in PRIORITY_SLOTS if p not in taken]}


class ProductInteractor:
    def __init__(self, products: ProductRepository, categories: CategoryRepository,
                 sub_categories: CategoryRepository, orders: Optional[CheckoutRepository] = None):
        self.products = products
        self.categories = categories
        self.sub_categories = sub_categories
        self.orders = orders

    def _check_refs(self, category_id: Optional[str], sub_category_id: Optional[str]) -> Optional[Rejection]:
        if not is_live(self.categories.get(category_id)):
            return Rejection("Category not found", 400)
        if sub_category_id:
            sub = self.sub_categories.get(sub_category_id)
            if not is_live(sub) or sub.get("category_id") != category_id:
                return Rejection("Subcategory not found in this category", 400)
        return None

    @staticmethod
    def _with_variant_ids(variants: List[dict]) -> List[dict]:
        return [{**v, "id": v.get("id") or str(ObjectId())} for v in variants]

    def create(self, data: Dict[str, Any]) -> Union[dict, Rejection]:
        rejection = self._check_refs(data.get("category_id"), data.get("sub_category_id"))
        if rejection:
            return rejection
        doc = Product(**data).model_dump()
        doc["variants"] = self._with_variant_ids(doc["variants"])
        doc = self.products.add(doc)
        logger.info("Product %s created", doc["_id"])
        return to_str_id(doc)

    def list(self, page: int, limit: int, category_id: Optional[str] = None,
             sub_category_id: Optional[str] = None, listed_only: bool = False) -> Dict[str, Any]:
        return paginated(self.products.page(page, limit, listed_only=listed_only,
                                            category_id=category_id, sub_category_id=sub_category_id))

    def get(self, product_id: str, listed_only: bool = False) -> Optional[dict]:
        doc = self.products.get(product_id)
        if not is_live(doc) or (listed_only and not doc.get("is_listed")):
            return None
        return to_str_id(doc)

    def update(self, product_id: str, data: Dict[str, Any]) -> Union[dict, Rejection, None]:
        current = self.products.get(product_id)
        if not is_live(current):
            return None
        if "category_id" in data or "sub_category_id" in data:
            rejection = self._check_refs(data.get("category_id", current.get("category_id")),
                                         data.get("sub_category_id", current.get("sub_category_id")))
            if rejection:
                return rejection
        if "variants" in data:
            rejection = self._check_open_variants(product_id, data["variants"])
            if rejection:
                return rejection
            data = {**data, "variants": self._with_variant_ids(data["variants"])}
        return to_str_id(self.products.update(product_id, data))

    def _check_open_variants(self, product_id: str, variants: List[dict]) -> Optional[Rejection]:
        if self.orders is None:
            return None
        kept = {v.get("id") for v in variants if v.get("id")}
        missing = sorted(self.orders.open_variant_ids(product_id) - kept)
        if missing:
            return Rejection(f"Variants {', '.join(missing)} are held by open orders and must be kept", 409)
        return None

    def delete(self, product_id: str) -> bool:
        return self.products.delete(product_id)

    def set_listed(self, product_id: str, listed: bool) -> Union[dict, Rejection, None]:
        doc = self.products.get(product_id)
        if not is_live(doc):
            return None
        word = "listed" if listed else "unlisted"
        if bool(doc.get("is_listed")) == listed:
            return Rejection(f"Product is already {word}.", 400)
        self.products.update(product_id, {"is_listed": listed})
        return {"message": f"Product {word} successfully"}


# Cart

class CartInteractor:
    def __init__(self, carts: CartRepository, products: ProductRepository):
        self.carts = carts
        self.products = products

    def _live_variant(self, product_id: str, variant_id: str) -> Optional[dict]:
        product = self.products.get(product_id)
        if not is_live(product) or not product.get("is_listed"):
            return None
        return find_variant(product, variant_id)

    def _describe(self, cart: dict) -> dict:
        out = to_str_id(cart)
        items = []
        subtotal = 0.0
        for item in cart.get("items", []):
            line = dict(item)
            product = self.products.get(item["product_id"])
            variant = find_variant(product, item["variant_id"]) if is_live(product) else None
            if variant:
                line.update({
                    "name": product.get("name"),
                    "image": (product.get("images") or [None])[0],
                    "weight": variant.get("weight"),
                    "out_price": variant.get("out_price"),
                    "available": product.get("is_listed", False),
                })
                subtotal += variant.get("out_price", 0) * item["quantity"]
            else:
                line["available"] = False
            items.append(line)
        out["items"] = items
        out["subtotal"] = round(subtotal, 2)
        return out

    def create_cart(self, user_id: str) -> dict:
        cart = self.carts.get_by_user(user_id) or self.carts.create(user_id)
        return self._describe(cart)

    def get_cart(self, user_id: str) -> Optional[dict]:
        cart = self.carts.get_by_user(user_id)
        return self._describe(cart) if cart else None

    def add_item(self, user_id: str, product_id: str, variant_id: str, quantity: int) -> Optional[dict]:
        if self._live_variant(product_id, variant_id) is None:
            return None
        cart = self.carts.get_by_user(user_id) or self.carts.create(user_id)
        items = list(cart.get("items", []))
        for item in items:
            if item["product_id"] == product_id and item["variant_id"] == variant_id:
                item["quantity"] += quantity
                break
        else:
            items.append({"product_id": product_id, "variant_id": variant_id, "quantity": quantity})
        return self._describe(self.carts.set_items(cart["_id"], items))

    def update_quantity(self, user_id: str, product_id: str, variant_id: str, quantity: int) -> Optional[dict]:
        cart = self.carts.get_by_user(user_id)
        if not cart:
            return None
        items = list(cart.get("items", []))
        for item in items:
            if item["product_id"] == product_id and item["variant_id"] == variant_id:
                item["quantity"] = quantity
                return self._describe(self.carts.set_items(cart["_id"], items))
        return None

    def remove_item(self, user_id: str, product_id: str, variant_id: str) -> Optional[dict]:
        cart = self.carts.get_by_user(user_id)
        if not cart:
            return None
        items = [i for i in cart.get("items", [])
                 if not (i["product_id"] == product_id and i["variant_id"] == variant_id)]
        if len(items) == len(cart.get("items", [])):
            return None
        return self._describe(self.carts.set_items(cart["_id"], items))

    def clear(self, user_id: str) -> bool:
        return self.carts.delete_by_user(user_id)


# Checkout / orders

def serialize_order(order: dict) -> dict:
    out = to_str_id(order)
    out["display_status"] = order_lifecycle.display_status(order)
    return out


class CheckoutInteractor:
    def __init__(self, carts: CartRepository, orders: CheckoutRepository, products: ProductRepository,
                 currency: str = config.CURRENCY, payment_key: str = config.PAYMENT_PUBLIC_KEY):
        self.carts = carts
        self.orders = orders
        self.products = products
        self.currency = currency
        self._payment_key = payment_key

    def payment_key(self) -> Dict[str, str]:
        return {"key": self._payment_key}

    def checkout(self, user_id: str, payment_method: str, shipping_address: Dict[str, Any],
                 billing_address: Optional[Dict[str, Any]] = None) -> Union[dict, Rejection, None]:
        cart = self.carts.get_by_user(user_id)
        if cart is None:
            return None
        if not cart.get("items"):
            return Rejection("Cart is empty", 400)

        snapshot = []
        for item in cart["items"]:
            product = self.products.get(item["product_id"])
            variant = find_variant(product, item["variant_id"]) if is_live(product) else None
            if variant is None or not product.get("is_listed"):
                return Rejection("A product in your cart is no longer available", 409)
            stock = variant.get("stock_quantity", 0)
            if item["quantity"] > stock:
                logger.info("Checkout for %s rejected: %s has %d in stock", user_id, product.get("name"), stock)
                return Rejection(f"Insufficient stock for {product.get('name')} ({variant.get('weight')})", 409)
            snapshot.append({
                "product_id": item["product_id"],
                "variant_id": item["variant_id"],
                "name": product.get("name"),
                "quantity": item["quantity"],
                "weight": variant.get("weight"),
                "in_price": variant.get("in_price"),
                "out_price": variant.get("out_price"),
                "image": (product.get("images") or [None])[0],
                "stock_quantity": stock,
                "rating": product.get("rating", 0),
            })

        placed_at = now()
        order = Checkout(
            user_id=user_id,
            cart_id=str(cart["_id"]),
            transaction_id=uuid.uuid4().hex,
            order_placed_at=placed_at,
            items=deepcopy(snapshot),
            payment_method=payment_method,
            amount=round(sum(i["out_price"] * i["quantity"] for i in snapshot), 2),
            currency=self.currency,
            shipping_address=shipping_address,
            billing_address=billing_address or shipping_address,
        ).model_dump()
        order = self.orders.add(order)
        self._adjust_stock(snapshot, -1)
        self.carts.delete_by_user(user_id)
        logger.info("Order %s placed by %s for %.2f %s", order["_id"], user_id, order["amount"], order["currency"])
        return serialize_order(order)

    def _adjust_stock(self, items: List[dict], sign: int) -> None:
        by_product: Dict[str, List[dict]] = {}
        for item in items:
            by_product.setdefault(item["product_id"], []).append(item)
        for product_id, lines in by_product.items():
            product = self.products.get(product_id)
            if product is None:
                logger.warning("Stock for %s not adjusted: product no longer exists", product_id)
                continue
            variants = product.get("variants", [])
            for line in lines:
                variant = find_variant(product, line["variant_id"])
                if variant is None:
                    logger.warning("Stock for %s variant %s not adjusted: variant no longer exists",
                                   product_id, line["variant_id"])
                    continue
                variant["stock_quantity"] = max(0, variant.get("stock_quantity", 0) + sign * line["quantity"])
            self.products.update(product_id, {"variants": variants})

    def get_order(self, order_id: str, user_id: Optional[str] = None) -> Optional[dict]:
        order = self.orders.get(order_id, user_id=user_id)
        return serialize_order(order) if order else None

    def orders_for_user(self, user_id: str) -> List[dict]:
        return [serialize_order(o) for o in self.orders.for_user(user_id)]

    def all_orders(self, page: int, limit: int, order_status: Optional[str] = None) -> Dict[str, Any]:
        return paginated(self.orders.page(page, limit, order_status=order_status), mapper=serialize_order)

    def _move(self, order_id: str, axis: str, target: str, extra: Optional[Dict[str, Any]] = None,
              user_id: Optional[str] = None) -> Union[dict, Rejection, None]:
        order = self.orders.get(order_id, user_id=user_id)
        if order is None:
            return None
        try:
            changes = order_lifecycle.transition(order, axis, target)
        except InvalidTransition as e:
            logger.info("Order %s: %s", order_id, e)
            return Rejection(str(e), 409)
        changes.update({k: v for k, v in (extra or {}).items() if v is not None})
        updated = self.orders.update(order_id, changes)
        logger.info("Order %s %s -> %s", order_id, axis, target)
        if axis == order_lifecycle.ORDER and target == "cancelled":
            self._adjust_stock(order.get("items", []), 1)
        return serialize_order(updated)

    def record_payment(self, order_id: str, status: str, transaction_id: Optional[str] = None,
                       reason: Optional[str] = None, user_id: Optional[str] = None) -> Union[dict, Rejection, None]:
        extra: Dict[str, Any] = {"transaction_id": transaction_id}
        if status == "failed":
            extra["payment_failure_reason"] = reason
        return self._move(order_id, order_lifecycle.PAYMENT, status, extra, user_id=user_id)

    def update_order_status(self, order_id: str, status: str,
                            tracking_id: Optional[str] = None) -> Union[dict, Rejection, None]:
        if status == "cancelled":
            return self.cancel_order(order_id)
        return self._move(order_id, order_lifecycle.ORDER, status, {"tracking_id": tracking_id})

    def cancel_order(self, order_id: str, reason: Optional[str] = None,
                     user_id: Optional[str] = None) -> Union[dict, Rejection, None]:
        return self._move(order_id, order_lifecycle.ORDER, "cancelled",
                          {"cancellation_reason": reason}, user_id=user_id)

    def request_return(self, order_id: str, user_id: str, reason: Optional[str] = None) -> Union[dict, Rejection, None]:
        return self._move(order_id, order_lifecycle.RETURN, "requested", {"return_reason": reason}, user_id=user_id)

    def resolve_return(self, order_id: str, approve: bool) -> Union[dict, Rejection, None]:
        return self._move(order_id, order_lifecycle.RETURN, "approved" if approve else "rejected")

    def update_refund(self, order_id: str, status: str) -> Union[dict, Rejection, None]:
        return self._move(order_id, order_lifecycle.REFUND, status)


# Reviews

class ReviewInteractor:
    def __init__(self, reviews: ReviewRepository, products: ProductRepository):
        self.reviews = reviews
        self.products = products

    def submit(self, user: dict, product_id: str, rating: int, comment: Optional[str] = None) -> Union[dict, Rejection, None]:
        if not is_live(self.products.get(product_id)):
            return None
        user_id = str(user["_id"])
        if self.reviews.find_by_user(product_id, user_id):
            return Rejection("You already reviewed this product", 409)
        doc = Review(product_id=product_id, user_id=user_id, user_name=user.get("name", ""),
                     rating=rating, comment=comment).model_dump()
        return to_str_id(self.reviews.add(doc))

    def product_reviews(self, product_id: str, page: int, limit: int) -> Dict[str, Any]:
        return paginated(self.reviews.page(page, limit, status="approved", product_id=product_id))

    def all_reviews(self, page: int, limit: int, status: Optional[str] = None) -> Dict[str, Any]:
        return paginated(self.reviews.page(page, limit, status=status))

    def moderate(self, review_id: str, approve: bool) -> Union[dict, Rejection, None]:
        review = self.reviews.get(review_id)
        if review is None:
            return None
        target = "approved" if approve else "declined"
        if review.get("status") != "pending":
            return Rejection(f"Review is already {review.get('status')}", 409)
        updated = self.reviews.update(review_id, {"status": target}, expected_status="pending")
        if updated is None:
            return Rejection("Review was moderated concurrently", 409)
        self.products.update(review["product_id"], self.reviews.approved_stats(review["product_id"]))
        logger.info("Review %s %s", review_id, target)
        return to_str_id(updated)


# Admin

class AdminInteractor:
    def __init__(self, users: UserRepository, products: ProductRepository, orders: CheckoutRepository):
        self.users = users
        self.products = products
        self.orders = orders

    def all_users(self, page: int, limit: int) -> Dict[str, Any]:
        return paginated(self.users.page(page, limit), mapper=public_user)

    def set_blocked(self, user_id: str, blocked: bool) -> Union[dict, Rejection, None]:
        user = self.users.get(user_id)
        if user is None:
            return None
        word = "blocked" if blocked else "unblocked"
        if blocked and user.get("is_admin"):
            return Rejection("Admins cannot be blocked", 400)
        if bool(user.get("is_blocked")) == blocked:
            return Rejection(f"User is already {word}", 400)
        self.users.update(user_id, {"is_blocked": blocked})
        logger.info("User %s %s", user_id, word)
        return {"message": f"User {word} successfully"}

    def dashboard(self) -> Dict[str, Any]:
        by_status = {s: {"count": 0, "amount": 0.0} for s in order_lifecycle.TRANSITIONS[order_lifecycle.ORDER]}
        for row in self.orders.status_summary():
            if row["_id"] in by_status:
                by_status[row["_id"]] = {"count": row["count"], "amount": round(float(row["amount"]), 2)}
        return {
            "total_users": self.users.count(),
            "total_products": self.products.count(),
            "total_orders": self.orders.count(),
            "revenue": round(self.orders.revenue(), 2),
            "order_status_counts": by_status,
        }
