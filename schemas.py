"""
Schemas for the Storefront API

Each stored model corresponds to a MongoDB collection (lowercased class name):
Product -> "product", User -> "user", Order -> "order". Order items are kept
inside their order document.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import BaseModel, EmailStr, Field, PlainSerializer

# Exact decimals internally, plain JSON numbers on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

DEFAULT_DELIVERY_ADDRESS = "Not Provided"
PLACEHOLDER_IMAGE = "https://placehold.co/200x200?text=No+Image"

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"

# -----------------------------
# Catalog
# -----------------------------
class ProductIn(BaseModel):
    name: str = Field(..., min_length=1)
    price: Money = Field(..., gt=0)
    description: Optional[str] = None
    image: Optional[str] = None
    stock: int = Field(0, ge=0)
    category: Optional[str] = None


class Product(ProductIn):
    id: str
    price: Money = Field(..., ge=0)
    created_at: Optional[datetime] = None

# -----------------------------
# Accounts
# -----------------------------
class User(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    created_at: Optional[datetime] = None


class RegisterPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)


class LoginPayload(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class SessionStatus(BaseModel):
    logged_in: bool
    user_email: Optional[str] = None
    user_id: Optional[str] = None

# -----------------------------
# Cart
# -----------------------------
class AddToCartPayload(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class UpdateCartPayload(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=0)  # 0 removes the line


class CartLine(BaseModel):
    product_id: str
    name: str
    price: Money
    image: Optional[str] = None
    quantity: int
    subtotal: Money


class CartView(BaseModel):
    items: List[CartLine] = []
    total_items: int = 0
    total_amount: Money = Decimal("0")

# -----------------------------
# Orders / Checkout
# -----------------------------
class OrderItem(BaseModel):
    id: str
    order_id: str
    product_id: str
    product_name: str
    quantity: int = Field(..., ge=1)
    price: Money = Field(..., ge=0)
    product_image: Optional[str] = None


class Order(BaseModel):
    id: str
    user_id: Optional[str] = None
    total: Money = Field(..., ge=0)
    status: str = STATUS_PENDING
    delivery_address: str = DEFAULT_DELIVERY_ADDRESS
    created_at: Optional[datetime] = None
    items: List[OrderItem] = []


class CheckoutPayload(BaseModel):
    delivery_address: Optional[str] = None


class CheckoutResult(BaseModel):
    success: bool = True
    order_id: str
    total: Money
    message: str = "Order placed successfully! Thank you for your purchase."
    order: Order
