"""
Database Schemas for the storefront

Each Pydantic model represents a MongoDB collection.
Collection name is the lowercase of the class name, except SubCategory
("subcategory") and PendingRegistration ("pending_registration").
"""
from typing import List, Literal, Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

UNASSIGNED_PRIORITY = 101

PaymentMethod = Literal["COD", "Razorpay", "Stripe"]
PaymentStatus = Literal["pending", "completed", "failed"]
OrderStatus = Literal["processing", "shipped", "delivered", "cancelled"]
ReturnStatus = Literal["not_requested", "requested", "approved", "rejected"]
RefundStatus = Literal["not_initiated", "initiated", "completed", "failed"]
ReviewStatus = Literal["pending", "approved", "declined"]


class User(BaseModel):
    name: str
    email: EmailStr
    password_hash: str
    is_admin: bool = False
    is_blocked: bool = False


class PendingRegistration(BaseModel):
    email: EmailStr
    password_hash: str
    otp: str
    expires_at: datetime


class Category(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    photo: Optional[str] = None
    is_listed: bool = True
    is_deleted: bool = False
    priority: int = Field(UNASSIGNED_PRIORITY, description="1-10, 101 = unassigned")


class SubCategory(Category):
    category_id: str


class Variant(BaseModel):
    id: Optional[str] = None
    weight: str
    in_price: float = Field(..., ge=0)
    out_price: float = Field(..., ge=0)
    stock_quantity: int = Field(0, ge=0)


class Description(BaseModel):
    header: str
    content: str


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    category_id: str
    sub_category_id: Optional[str] = None
    variants: List[Variant] = Field(..., min_length=1)
    descriptions: List[Description] = Field(..., min_length=1)
    images: List[str] = []
    sku: str = Field(..., min_length=1)
    ean: str = Field(..., min_length=1)
    is_listed: bool = True
    is_deleted: bool = False
    rating: float = 0
    num_reviews: int = 0


class CartItem(BaseModel):
    product_id: str
    variant_id: str
    quantity: int = Field(..., ge=1)


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = []


class Address(BaseModel):
    full_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    postal_code: str
    country: str
    phone: str


class OrderItem(BaseModel):
    product_id: str
    variant_id: str
    name: str
    quantity: int
    weight: str
    in_price: float
    out_price: float
    image: Optional[str] = None
    stock_quantity: int
    rating: float = 0


class Checkout(BaseModel):
    user_id: str
    cart_id: str
    transaction_id: str
    order_placed_at: datetime
    items: List[OrderItem]
    payment_method: PaymentMethod
    amount: float
    coupon_code: Optional[str] = None
    discount_amount: float = Field(0, ge=0)
    currency: str
    shipping_address: Address
    billing_address: Address
    payment_status: PaymentStatus = "pending"
    payment_failure_reason: Optional[str] = None
    order_status: OrderStatus = "processing"
    return_status: ReturnStatus = "not_requested"
    return_reason: Optional[str] = None
    refund_status: RefundStatus = "not_initiated"
    cancellation_reason: Optional[str] = None
    tracking_id: Optional[str] = None
    payment_completed_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class Review(BaseModel):
    product_id: str
    user_id: str
    user_name: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    status: ReviewStatus = "pending"
