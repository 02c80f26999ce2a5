"""
Database Schemas

Pydantic models validating what callers send before it reaches MongoDB.
Stored documents use the same snake_case field names; the collection for
each entity is its lowercased name (product, cart, order, review, user).
"""

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

import settings

OrderStatus = Literal["pending", "shipped", "delivered", "canceled"]

_POSTAL_CODE = re.compile(settings.POSTAL_CODE_PATTERN)


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    title: str = Field(..., min_length=1, max_length=150, description="Product title")
    description: str = Field(..., min_length=1, max_length=2000, description="Product description")
    price: float = Field(..., ge=0, description="Price in dollars")
    stock_quantity: int = Field(0, ge=0, description="Sellable units on hand")
    image: Optional[str] = Field(None, description="Image URL")


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    price: Optional[float] = Field(None, ge=0)
    stock_quantity: Optional[int] = Field(None, ge=0)
    image: Optional[str] = None


class Address(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postal_code: str

    @field_validator("postal_code")
    @classmethod
    def check_postal_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not _POSTAL_CODE.match(v):
            raise ValueError("Please enter a valid postal code in the format A1A 1A1")
        return v


class OrderLineInput(BaseModel):
    product_id: str = Field(..., description="Product ObjectId as string")
    order_quantity: int = Field(..., ge=1, description="Units ordered")


class OrderInput(BaseModel):
    """
    Checkout request. Line items are copied into the order as a snapshot.
    """
    name: str = Field(..., min_length=1)
    email: EmailStr
    address: Address
    products: List[OrderLineInput] = Field(..., min_length=1)
    total_amount: float = Field(..., ge=0, description="Total the client displayed")
    status: OrderStatus = "pending"

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("status")
    @classmethod
    def starts_pending(cls, v: str) -> str:
        if v != "pending":
            raise ValueError("New orders must start as pending")
        return v


class OrderUpdate(BaseModel):
    """Fields a privileged caller may change on an existing order."""
    status: Optional[OrderStatus] = None
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    address: Optional[Address] = None


class ReviewInput(BaseModel):
    rating: float = Field(..., ge=0, le=5)
    comment: str = Field(..., min_length=1, max_length=1000)


class ReviewUpdate(BaseModel):
    rating: Optional[float] = Field(None, ge=0, le=5)
    comment: Optional[str] = Field(None, min_length=1, max_length=1000)


class PaymentRequest(BaseModel):
    amount: float = Field(..., gt=0, description="Amount in dollars")
    currency: str = Field(settings.PAYMENT_CURRENCY, min_length=3, max_length=3)
