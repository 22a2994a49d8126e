"""
Request schemas for the storefront API

Collections:
- user: admins and customers, with a one-time password pair for resets
- size, category, subcategory, product: the catalog
- cart: one per user, line items snapshotted at add time
- order: immutable checkout record, only status fields move
- banner, wishlist, message: storefront extras

Line-item payloads for carts and orders are not modelled here; they arrive in
several shapes and are normalized by pricing.normalize_item.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator


class OrderStatus(str, Enum):
    PENDING = "Pending"
    RECEIVED = "Received"
    CONFIRMED = "Confirmed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"


TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.REJECTED, OrderStatus.CANCELLED}

Gender = Literal["Male", "Female", "Unisex"]
DiscountType = Literal["Percentage", "Flat"]


# Users

class Address(BaseModel):
    houseno: Optional[str] = None
    society: Optional[str] = None
    landmark: Optional[str] = None
    area: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


class SignupRequest(BaseModel):
    username: str = Field(..., min_length=3)
    email: EmailStr
    password: str = Field(..., min_length=6)
    gender: str
    contactno: Optional[str] = None
    address: Optional[Address] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserUpdate(BaseModel):
    usertype: Optional[Literal["user", "admin"]] = None
    username: Optional[str] = Field(None, min_length=3)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    gender: Optional[str] = None
    contactno: Optional[str] = None
    address: Optional[Address] = None


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6)
    new_password: str = Field(..., min_length=6)


# Catalog

class ImageRef(BaseModel):
    filename: str
    filepath: str


class SizeIn(BaseModel):
    size: str = Field(..., min_length=1, max_length=20)

    @field_validator("size", mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class CategoryIn(BaseModel):
    categoryname: str = Field(..., min_length=2)
    categoryimage: Optional[ImageRef] = None


class CategoryUpdate(BaseModel):
    categoryname: Optional[str] = Field(None, min_length=2)
    categoryimage: Optional[ImageRef] = None


class SubcategoryIn(BaseModel):
    subcategory: str = Field(..., min_length=2)
    category: str
    sizes: List[str] = Field(default_factory=list)


class SubcategoryUpdate(BaseModel):
    subcategory: Optional[str] = Field(None, min_length=2)
    category: Optional[str] = None
    sizes: Optional[List[str]] = None


class ProductSizeIn(BaseModel):
    size: str = Field(..., description="Referenced size _id")
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)


class ProductIn(BaseModel):
    product_name: str = Field(..., min_length=2)
    gender: Gender
    price: Optional[float] = Field(None, ge=0, description="Required when there are no sizes")
    stock: Optional[int] = Field(None, ge=0)
    discount: float = Field(0, ge=0)
    discount_type: Optional[DiscountType] = None
    description: Optional[str] = None
    review: Optional[str] = None
    category: str
    subcategory: str
    sizes: List[ProductSizeIn] = Field(default_factory=list)
    images: List[ImageRef] = Field(default_factory=list)


class ProductUpdate(BaseModel):
    product_name: Optional[str] = Field(None, min_length=2)
    gender: Optional[Gender] = None
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0)
    discount_type: Optional[DiscountType] = None
    description: Optional[str] = None
    review: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    sizes: Optional[List[ProductSizeIn]] = None
    images: List[ImageRef] = Field(default_factory=list, description="Appended to existing images")


# Cart

class CartQuantityUpdate(BaseModel):
    quantity: int


# Orders

class ShippingAddress(BaseModel):
    houseno: Optional[str] = None
    street: Optional[str] = None
    landmark: Optional[str] = None
    city: str
    state: str
    pincode: str
    country: str = "India"
    phone: Optional[str] = None


class PlaceOrderRequest(BaseModel):
    shipping_address: ShippingAddress
    payment_method: Literal["COD"] = "COD"
    items: Optional[List[Dict[str, Any]]] = Field(None, description="Buy-now items; cart is used when absent")


class GatewayOrderRequest(BaseModel):
    shipping_address: ShippingAddress
    amount: Optional[float] = Field(None, description="Client-side total, checked but never trusted")
    items: Optional[List[Dict[str, Any]]] = Field(None, description="Buy-now items; cart is used when absent")


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class StatusUpdate(BaseModel):
    status: OrderStatus


# Extras

class BannerIn(BaseModel):
    bannerimage: List[ImageRef] = Field(..., min_length=1)


class WishRequest(BaseModel):
    product_id: str = Field(..., validation_alias=AliasChoices("product_id", "productId"))


class MessageIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    contact: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


class MessageUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    contact: Optional[str] = None
    message: Optional[str] = None


class ReplyRequest(BaseModel):
    subject: str = Field("Re: your message", min_length=1)
    body: str = Field(..., min_length=1)
