import sys
import logging
from typing import Annotated, List, Literal, Optional, Dict, Any

from fastapi import FastAPI, Depends, HTTPException, Query, Request, status, UploadFile, File, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import PyMongoError

import config
import database
from database import DocumentStore, ensure_indexes
from interactors import (
    AdminInteractor,
    CartInteractor,
    CategoryInteractor,
    CheckoutInteractor,
    ImageFile,
    ProductInteractor,
    Rejection,
    ReviewInteractor,
    public_user,
)
from mailer import OtpMailer, default_mailer
from media import MediaUploader, UploadError, default_uploader
from registration import AccountInteractor
from repositories import (
    CartRepository,
    CategoryRepository,
    CheckoutRepository,
    PendingRegistrationRepository,
    ProductRepository,
    ReviewRepository,
    UserRepository,
)
from schemas import Address, Description, PaymentMethod, SubCategory, Variant
from security import TokenError, hash_password, read_token

logger = logging.getLogger("storefront")


def setup_logging():
    root = logging.getLogger()
    root.setLevel(config.LOG_LEVEL)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - [%(levelname)-7s] - %(message)s"))
    if not root.handlers:
        root.addHandler(handler)


setup_logging()

app = FastAPI(title="Storefront API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

uploader = default_uploader()
mailer = default_mailer()


@app.exception_handler(PyMongoError)
def database_error(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error", "status": 500})


@app.exception_handler(UploadError)
def upload_error(request: Request, exc: UploadError):
    logger.error("Upload error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"message": str(exc), "status": 502})


@app.on_event("startup")
def startup():
    if database.db is None:
        logger.warning("Database not configured; set DATABASE_URL and DATABASE_NAME")
        return
    try:
        ensure_indexes(database.db)
    except PyMongoError as e:
        logger.error("Could not ensure indexes: %s", e)


# Request models
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: Optional[str] = None


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    otp: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    category_id: str
    sub_category_id: Optional[str] = None
    variants: List[Variant] = Field(..., min_length=1)
    descriptions: List[Description] = Field(..., min_length=1)
    images: List[str] = []
    sku: str = Field(..., min_length=1)
    ean: str = Field(..., min_length=1)
    is_listed: bool = True


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    category_id: Optional[str] = None
    sub_category_id: Optional[str] = None
    variants: Optional[List[Variant]] = Field(None, min_length=1)
    descriptions: Optional[List[Description]] = Field(None, min_length=1)
    images: Optional[List[str]] = None
    sku: Optional[str] = Field(None, min_length=1)
    ean: Optional[str] = Field(None, min_length=1)


class CartItemRequest(BaseModel):
    product_id: str
    variant_id: str
    quantity: int = Field(..., ge=1)


class CartItemKey(BaseModel):
    product_id: str
    variant_id: str


class CheckoutRequest(BaseModel):
    payment_method: PaymentMethod
    shipping_address: Address
    billing_address: Optional[Address] = None


class PaymentUpdate(BaseModel):
    status: Literal["completed", "failed"]
    transaction_id: Optional[str] = None
    reason: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    order_status: Literal["processing", "shipped", "delivered", "cancelled"]
    tracking_id: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class ReturnDecision(BaseModel):
    approve: bool


class RefundUpdate(BaseModel):
    refund_status: Literal["initiated", "completed", "failed"]


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


# Dependencies
def get_db():
    if database.db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return database.db


def get_uploader() -> MediaUploader:
    return uploader


def _store(db, name: str) -> DocumentStore:
    return DocumentStore(db[name])


def category_interactor(db=Depends(get_db), media: MediaUploader = Depends(get_uploader)) -> CategoryInteractor:
    return CategoryInteractor(CategoryRepository(_store(db, "category")), media)


def sub_category_interactor(db=Depends(get_db), media: MediaUploader = Depends(get_uploader)) -> CategoryInteractor:
    return CategoryInteractor(
        CategoryRepository(_store(db, "subcategory"), parent_field="category_id"),
        media,
        kind="Subcategory",
        model=SubCategory,
        parents=CategoryRepository(_store(db, "category")),
        folder="subcategories",
    )


def product_interactor(db=Depends(get_db)) -> ProductInteractor:
    return ProductInteractor(
        ProductRepository(_store(db, "product")),
        CategoryRepository(_store(db, "category")),
        CategoryRepository(_store(db, "subcategory"), parent_field="category_id"),
        CheckoutRepository(_store(db, "checkout")),
    )


def cart_interactor(db=Depends(get_db)) -> CartInteractor:
    return CartInteractor(CartRepository(_store(db, "cart")), ProductRepository(_store(db, "product")))


def checkout_interactor(db=Depends(get_db)) -> CheckoutInteractor:
    return CheckoutInteractor(
        CartRepository(_store(db, "cart")),
        CheckoutRepository(_store(db, "checkout")),
        ProductRepository(_store(db, "product")),
    )


def review_interactor(db=Depends(get_db)) -> ReviewInteractor:
    return ReviewInteractor(ReviewRepository(_store(db, "review")), ProductRepository(_store(db, "product")))


def admin_interactor(db=Depends(get_db)) -> AdminInteractor:
    return AdminInteractor(
        UserRepository(_store(db, "user")),
        ProductRepository(_store(db, "product")),
        CheckoutRepository(_store(db, "checkout")),
    )


def get_mailer() -> OtpMailer:
    return mailer


def account_interactor(db=Depends(get_db), otp_mailer: OtpMailer = Depends(get_mailer)) -> AccountInteractor:
    return AccountInteractor(
        UserRepository(_store(db, "user")),
        PendingRegistrationRepository(_store(db, "pending_registration")),
        send_otp=otp_mailer.send if otp_mailer.configured else None,
    )


def get_current_user(token: str = Depends(oauth2_scheme), db=Depends(get_db)) -> dict:
    try:
        user_id = read_token(token)
    except TokenError as e:
        logger.info("Rejected bearer token: %s", e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")
    user = UserRepository(_store(db, "user")).get(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if user.get("is_blocked"):
        raise HTTPException(status_code=403, detail="User is blocked")
    return user


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if not user.get("is_admin"):
        raise HTTPException(status_code=403, detail="Admin only")
    return user


def respond(result: Any, not_found: str = "Not found"):
    if isinstance(result, Rejection):
        return JSONResponse(status_code=result.status, content=result.as_dict())
    if result is None or result is False:
        raise HTTPException(status_code=404, detail=not_found)
    return result


def _image(photo: Optional[UploadFile]) -> Optional[ImageFile]:
    if photo is None or not photo.filename:
        return None
    return ImageFile(photo.filename, photo.file.read())


def _form_fields(**fields) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


PageNumber = Annotated[int, Query(ge=1)]
PageSize = Annotated[int, Query(ge=1, le=100)]


# Auth
@app.post("/api/auth/register", status_code=201)
def register(body: RegisterRequest, accounts: AccountInteractor = Depends(account_interactor)):
    return respond(accounts.register(body.email, body.password, body.name))


@app.post("/api/auth/verify-otp", status_code=201)
def verify_otp(body: VerifyOtpRequest, accounts: AccountInteractor = Depends(account_interactor)):
    return respond(accounts.verify_otp(body.email, body.otp))


@app.post("/api/auth/login")
def login(body: LoginRequest, accounts: AccountInteractor = Depends(account_interactor)):
    return respond(accounts.login(body.email, body.password))


@app.get("/api/users/me")
def get_me(current_user: dict = Depends(get_current_user)):
    return public_user(current_user)


# Admin
@app.post("/api/admin/login")
def admin_login(body: LoginRequest, accounts: AccountInteractor = Depends(account_interactor)):
    return respond(accounts.login(body.email, body.password, admin=True))


@app.get("/api/admin/users")
def admin_users(page: PageNumber = 1, limit: PageSize = 10, _: dict = Depends(require_admin),
                admin: AdminInteractor = Depends(admin_interactor)):
    return admin.all_users(page, limit)


@app.post("/api/admin/users/{user_id}/block")
def block_user(user_id: str, _: dict = Depends(require_admin), admin: AdminInteractor = Depends(admin_interactor)):
    return respond(admin.set_blocked(user_id, True), "User not found")


@app.post("/api/admin/users/{user_id}/unblock")
def unblock_user(user_id: str, _: dict = Depends(require_admin), admin: AdminInteractor = Depends(admin_interactor)):
    return respond(admin.set_blocked(user_id, False), "User not found")


@app.get("/api/admin/dashboard")
def dashboard(_: dict = Depends(require_admin), admin: AdminInteractor = Depends(admin_interactor)):
    return admin.dashboard()


# Categories
@app.post("/api/categories", status_code=201)
def create_category(
    name: str = Form(...),
    description: Optional[str] = Form(None),
    priority: Optional[int] = Form(None),
    is_listed: Optional[bool] = Form(None),
    photo: Optional[UploadFile] = File(None),
    _: dict = Depends(require_admin),
    categories: CategoryInteractor = Depends(category_interactor),
):
    data = _form_fields(name=name, description=description, priority=priority, is_listed=is_listed)
    return respond(categories.create(data, _image(photo)))


@app.get("/api/categories")
def list_categories(page: PageNumber = 1, limit: PageSize = 10, _: dict = Depends(require_admin),
                    categories: CategoryInteractor = Depends(category_interactor)):
    return categories.list(page, limit)


@app.get("/api/categories/search")
def search_categories(name: str = Query(..., min_length=1), page: PageNumber = 1, limit: PageSize = 10,
                      _: dict = Depends(require_admin),
                      categories: CategoryInteractor = Depends(category_interactor)):
    return categories.search(name, page, limit)


@app.get("/api/categories/listed")
def listed_categories(page: PageNumber = 1, limit: PageSize = 10,
                      categories: CategoryInteractor = Depends(category_interactor)):
    return categories.list_listed(page, limit)


@app.get("/api/categories/priorities")
def category_priorities(_: dict = Depends(require_admin),
                        categories: CategoryInteractor = Depends(category_interactor)):
    return categories.available_priority_slots()


@app.get("/api/categories/{category_id}")
def get_category(category_id: str, categories: CategoryInteractor = Depends(category_interactor)):
    return respond(categories.get(category_id), "Category not found")


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    priority: Optional[int] = Form(None),
    photo: Optional[UploadFile] = File(None),
    _: dict = Depends(require_admin),
    categories: CategoryInteractor = Depends(category_interactor),
):
    data = _form_fields(name=name, description=description, priority=priority)
    return respond(categories.update(category_id, data, _image(photo)), "Category not found")


@app.patch("/api/categories/{category_id}")
def toggle_category(category_id: str, action: Literal["list", "unlist"], _: dict = Depends(require_admin),
                    categories: CategoryInteractor = Depends(category_interactor)):
    return respond(categories.set_listed(category_id, action == "list"), "Category not found")


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: str, _: dict = Depends(require_admin),
                    categories: CategoryInteractor = Depends(category_interactor)):
    respond(categories.delete(category_id), "Category not found")
    return {"message": "Category deleted successfully"}


# Subcategories
@app.post("/api/subcategories", status_code=201)
def create_sub_category(
    name: str = Form(...),
    category_id: str = Form(...),
    description: Optional[str] = Form(None),
    priority: Optional[int] = Form(None),
    is_listed: Optional[bool] = Form(None),
    photo: Optional[UploadFile] = File(None),
    _: dict = Depends(require_admin),
    sub_categories: CategoryInteractor = Depends(sub_category_interactor),
):
    data = _form_fields(name=name, category_id=category_id, description=description,
                        priority=priority, is_listed=is_listed)
    return respond(sub_categories.create(data, _image(photo)), "Category not found")


@app.get("/api/subcategories")
def list_sub_categories(page: PageNumber = 1, limit: PageSize = 10, _: dict = Depends(require_admin),
                        sub_categories: CategoryInteractor = Depends(sub_category_interactor)):
    return sub_categories.list(page, limit)


@app.get("/api/subcategories/search")
def search_sub_categories(name: str = Query(..., min_length=1), page: PageNumber = 1, limit: PageSize = 10,
                          _: dict = Depends(require_admin),
                          sub_categories: CategoryInteractor = Depends(sub_category_interactor)):
    return sub_categories.search(name, page, limit)


@app.get("/api/subcategories/listed")
def listed_sub_categories(category_id: str, page: PageNumber = 1, limit: PageSize = 10,
                          sub_categories: CategoryInteractor = Depends(sub_category_interactor)):
    return sub_categories.list_listed(page, limit, parent_id=category_id)


@app.get("/api/subcategories/priorities")
def sub_category_priorities(_: dict = Depends(require_admin),
                            sub_categories: CategoryInteractor = Depends(sub_category_interactor)):
    return sub_categories.available_priority_slots()


@app.get("/api/subcategories/{sub_category_id}")
def get_sub_category(sub_category_id: str, sub_categories: CategoryInteractor = Depends(sub_category_interactor)):
    return respond(sub_categories.get(sub_category_id), "Subcategory not found")


@app.put("/api/subcategories/{sub_category_id}")
def update_sub_category(
    sub_category_id: str,
    name: Optional[str] = Form(None),
    category_id: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    priority: Optional[int] = Form(None),
    photo: Optional[UploadFile] = File(None),
    _: dict = Depends(require_admin),
    sub_categories: CategoryInteractor = Depends(sub_category_interactor),
):
    data = _form_fields(name=name, category_id=category_id, description=description, priority=priority)
    return respond(sub_categories.update(sub_category_id, data, _image(photo)), "Subcategory not found")


@app.patch("/api/subcategories/{sub_category_id}")
def toggle_sub_category(sub_category_id: str, action: Literal["list", "unlist"], _: dict = Depends(require_admin),
                        sub_categories: CategoryInteractor = Depends(sub_category_interactor)):
    return respond(sub_categories.set_listed(sub_category_id, action == "list"), "Subcategory not found")


@app.delete("/api/subcategories/{sub_category_id}")
def delete_sub_category(sub_category_id: str, _: dict = Depends(require_admin),
                        sub_categories: CategoryInteractor = Depends(sub_category_interactor)):
    respond(sub_categories.delete(sub_category_id), "Subcategory not found")
    return {"message": "Subcategory deleted successfully"}


# Products
@app.post("/api/products", status_code=201)
def create_product(body: ProductCreate, _: dict = Depends(require_admin),
                   products: ProductInteractor = Depends(product_interactor)):
    return respond(products.create(body.model_dump()))


@app.get("/api/admin/products")
def admin_products(page: PageNumber = 1, limit: PageSize = 10, category_id: Optional[str] = None,
                   sub_category_id: Optional[str] = None, _: dict = Depends(require_admin),
                   products: ProductInteractor = Depends(product_interactor)):
    return products.list(page, limit, category_id=category_id, sub_category_id=sub_category_id)


@app.get("/api/products")
def list_products(page: PageNumber = 1, limit: PageSize = 10, category_id: Optional[str] = None,
                  sub_category_id: Optional[str] = None,
                  products: ProductInteractor = Depends(product_interactor)):
    return products.list(page, limit, category_id=category_id, sub_category_id=sub_category_id, listed_only=True)


@app.get("/api/products/{product_id}")
def get_product(product_id: str, products: ProductInteractor = Depends(product_interactor)):
    return respond(products.get(product_id, listed_only=True), "Product not found")


@app.put("/api/products/{product_id}")
def update_product(product_id: str, body: ProductUpdate, _: dict = Depends(require_admin),
                   products: ProductInteractor = Depends(product_interactor)):
    return respond(products.update(product_id, body.model_dump(exclude_none=True)), "Product not found")


@app.patch("/api/products/{product_id}")
def toggle_product(product_id: str, action: Literal["list", "unlist"], _: dict = Depends(require_admin),
                   products: ProductInteractor = Depends(product_interactor)):
    return respond(products.set_listed(product_id, action == "list"), "Product not found")


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, _: dict = Depends(require_admin),
                   products: ProductInteractor = Depends(product_interactor)):
    respond(products.delete(product_id), "Product not found")
    return {"message": "Product deleted successfully"}


# Reviews
@app.get("/api/products/{product_id}/reviews")
def product_reviews(product_id: str, page: PageNumber = 1, limit: PageSize = 10,
                    reviews: ReviewInteractor = Depends(review_interactor)):
    return reviews.product_reviews(product_id, page, limit)


@app.post("/api/products/{product_id}/reviews", status_code=201)
def add_review(product_id: str, body: ReviewCreate, current_user: dict = Depends(get_current_user),
               reviews: ReviewInteractor = Depends(review_interactor)):
    return respond(reviews.submit(current_user, product_id, body.rating, body.comment), "Product not found")


@app.get("/api/admin/reviews")
def admin_reviews(page: PageNumber = 1, limit: PageSize = 10,
                  status: Optional[Literal["pending", "approved", "declined"]] = None,
                  _: dict = Depends(require_admin), reviews: ReviewInteractor = Depends(review_interactor)):
    return reviews.all_reviews(page, limit, status=status)


@app.patch("/api/admin/reviews/{review_id}/approve")
def approve_review(review_id: str, _: dict = Depends(require_admin),
                   reviews: ReviewInteractor = Depends(review_interactor)):
    return respond(reviews.moderate(review_id, True), "Review not found")


@app.patch("/api/admin/reviews/{review_id}/decline")
def decline_review(review_id: str, _: dict = Depends(require_admin),
                   reviews: ReviewInteractor = Depends(review_interactor)):
    return respond(reviews.moderate(review_id, False), "Review not found")


# Cart
@app.post("/api/cart", status_code=201)
def create_cart(current_user: dict = Depends(get_current_user), carts: CartInteractor = Depends(cart_interactor)):
    return carts.create_cart(str(current_user["_id"]))


@app.get("/api/cart")
def get_cart(current_user: dict = Depends(get_current_user), carts: CartInteractor = Depends(cart_interactor)):
    return respond(carts.get_cart(str(current_user["_id"])), "Cart not found")


@app.post("/api/cart/items")
def add_to_cart(body: CartItemRequest, current_user: dict = Depends(get_current_user),
                carts: CartInteractor = Depends(cart_interactor)):
    cart = carts.add_item(str(current_user["_id"]), body.product_id, body.variant_id, body.quantity)
    return respond(cart, "Product not found")


@app.put("/api/cart/items")
def update_cart_item(body: CartItemRequest, current_user: dict = Depends(get_current_user),
                     carts: CartInteractor = Depends(cart_interactor)):
    cart = carts.update_quantity(str(current_user["_id"]), body.product_id, body.variant_id, body.quantity)
    return respond(cart, "Cart item not found")


@app.post("/api/cart/items/remove")
def remove_from_cart(body: CartItemKey, current_user: dict = Depends(get_current_user),
                     carts: CartInteractor = Depends(cart_interactor)):
    return respond(carts.remove_item(str(current_user["_id"]), body.product_id, body.variant_id),
                   "Cart item not found")


@app.delete("/api/cart")
def clear_cart(current_user: dict = Depends(get_current_user), carts: CartInteractor = Depends(cart_interactor)):
    respond(carts.clear(str(current_user["_id"])), "Cart not found")
    return {"message": "Cart cleared successfully"}


# Checkout
@app.get("/api/checkout")
def payment_key(_: dict = Depends(get_current_user), checkout: CheckoutInteractor = Depends(checkout_interactor)):
    return checkout.payment_key()


@app.post("/api/checkout", status_code=201)
def place_order(body: CheckoutRequest, current_user: dict = Depends(get_current_user),
                checkout: CheckoutInteractor = Depends(checkout_interactor)):
    result = checkout.checkout(
        str(current_user["_id"]),
        body.payment_method,
        body.shipping_address.model_dump(),
        body.billing_address.model_dump() if body.billing_address else None,
    )
    return respond(result, "Cart not found")


# Orders
@app.get("/api/orders")
def my_orders(current_user: dict = Depends(get_current_user),
              checkout: CheckoutInteractor = Depends(checkout_interactor)):
    return {"data": checkout.orders_for_user(str(current_user["_id"]))}


@app.get("/api/orders/{order_id}")
def order_detail(order_id: str, current_user: dict = Depends(get_current_user),
                 checkout: CheckoutInteractor = Depends(checkout_interactor)):
    return respond(checkout.get_order(order_id, user_id=str(current_user["_id"])), "Order not found")


@app.post("/api/orders/{order_id}/cancel")
def cancel_my_order(order_id: str, body: CancelRequest, current_user: dict = Depends(get_current_user),
                    checkout: CheckoutInteractor = Depends(checkout_interactor)):
    result = checkout.cancel_order(order_id, body.reason, user_id=str(current_user["_id"]))
    return respond(result, "Order not found")


@app.post("/api/orders/{order_id}/return")
def request_return(order_id: str, body: CancelRequest, current_user: dict = Depends(get_current_user),
                   checkout: CheckoutInteractor = Depends(checkout_interactor)):
    result = checkout.request_return(order_id, str(current_user["_id"]), body.reason)
    return respond(result, "Order not found")


@app.get("/api/admin/orders")
def admin_orders(page: PageNumber = 1, limit: PageSize = 10,
                 order_status: Optional[Literal["processing", "shipped", "delivered", "cancelled"]] = None,
                 _: dict = Depends(require_admin), checkout: CheckoutInteractor = Depends(checkout_interactor)):
    return checkout.all_orders(page, limit, order_status=order_status)


@app.get("/api/admin/orders/{order_id}")
def admin_order_detail(order_id: str, _: dict = Depends(require_admin),
                       checkout: CheckoutInteractor = Depends(checkout_interactor)):
    return respond(checkout.get_order(order_id), "Order not found")


@app.patch("/api/admin/orders/{order_id}/status")
def admin_update_order_status(order_id: str, body: OrderStatusUpdate, _: dict = Depends(require_admin),
                              checkout: CheckoutInteractor = Depends(checkout_interactor)):
    return respond(checkout.update_order_status(order_id, body.order_status, body.tracking_id), "Order not found")


@app.delete("/api/admin/orders/{order_id}")
def admin_cancel_order(order_id: str, _: dict = Depends(require_admin),
                       checkout: CheckoutInteractor = Depends(checkout_interactor)):
    return respond(checkout.cancel_order(order_id, "Cancelled by admin"), "Order not found")


@app.post("/api/admin/orders/{order_id}/payment")
def admin_record_payment(order_id: str, body: PaymentUpdate, _: dict = Depends(require_admin),
                         checkout: CheckoutInteractor = Depends(checkout_interactor)):
    result = checkout.record_payment(order_id, body.status, body.transaction_id, body.reason)
    return respond(result, "Order not found")


@app.patch("/api/admin/orders/{order_id}/return")
def admin_resolve_return(order_id: str, body: ReturnDecision, _: dict = Depends(require_admin),
                         checkout: CheckoutInteractor = Depends(checkout_interactor)):
    return respond(checkout.resolve_return(order_id, body.approve), "Order not found")


@app.patch("/api/admin/orders/{order_id}/refund")
def admin_update_refund(order_id: str, body: RefundUpdate, _: dict = Depends(require_admin),
                        checkout: CheckoutInteractor = Depends(checkout_interactor)):
    return respond(checkout.update_refund(order_id, body.refund_status), "Order not found")


# Images
@app.post("/api/images/upload", status_code=201)
def upload_image(file: UploadFile = File(...), _: dict = Depends(require_admin),
                 media: MediaUploader = Depends(get_uploader)):
    return {"url": media.upload(file.file.read(), file.filename or "image", "products")}


# Health + seed
@app.get("/")
def root():
    return {"message": "Storefront API running"}


STOREFRONT_COLLECTIONS = ("category", "subcategory", "product", "cart", "checkout", "review", "user")


@app.get("/test")
def health():
    report: Dict[str, Any] = {"backend": "running", "database": "not configured", "collections": {}}
    if database.db is None:
        return report
    try:
        database.db.command("ping")
        report["database"] = "connected"
        report["collections"] = {name: database.db[name].estimated_document_count()
                                 for name in STOREFRONT_COLLECTIONS}
    except PyMongoError as e:
        logger.error("Health check failed: %s", e)
        report["database"] = "unreachable"
    return report


@app.post("/seed/init")
def seed(db=Depends(get_db)):
    if config.ADMIN_EMAIL and config.ADMIN_PASSWORD:
        users = UserRepository(_store(db, "user"))
        if not users.find_by_email(config.ADMIN_EMAIL):
            users.add({
                "name": "Admin",
                "email": config.ADMIN_EMAIL.lower(),
                "password_hash": hash_password(config.ADMIN_PASSWORD),
                "is_admin": True,
                "is_blocked": False,
            })
    categories = CategoryRepository(_store(db, "category"))
    defaults = [
        {"name": "Fruits", "description": "Fresh fruits", "priority": 1},
        {"name": "Vegetables", "description": "Farm vegetables", "priority": 2},
        {"name": "Dry Fruits", "description": "Nuts and dried fruits", "priority": 3},
    ]
    for c in defaults:
        if not categories.find_by_name(c["name"]) and not categories.find_by_priority(c["priority"]):
            categories.add({**c, "photo": None, "is_listed": True, "is_deleted": False})
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
