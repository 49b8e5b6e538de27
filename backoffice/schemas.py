"""Request and response models for the JSON API."""
import re
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

EMAIL_RE    = re.compile(r'^[^\@\s]+@[^\@\s]+\.[^\@\s]+$')
USERNAME_RE = re.compile(r'^[a-zA-Z0-9_.]{3,30}$')


def _rate():
    return Field(None, ge=0, le=100, max_digits=5, decimal_places=2)


def _check_email(v):
    if v is not None and not EMAIL_RE.match(v):
        raise ValueError("Invalid email address")
    return v


def _not_null(v):
    if v is None:
        raise ValueError("Field cannot be null")
    return v


# ==================== Auth ====================

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


# ==================== Representatives ====================

class RepresentativeCreate(BaseModel):
    username: str
    password: str = Field(..., min_length=6, max_length=72)
    email: str
    full_name: str = Field(..., min_length=1, max_length=200)
    role: Literal["admin", "representative"] = "representative"
    phone: Optional[str] = None
    upline_id: Optional[str] = None
    commission_rate: Decimal = Field(Decimal("10.00"), ge=0, le=100, max_digits=5, decimal_places=2)
    is_active: bool = True

    @field_validator("username")
    @classmethod
    def username_format(cls, v):
        if not USERNAME_RE.match(v):
            raise ValueError("Username must be 3-30 characters: letters, numbers, dots and underscores")
        return v

    @field_validator("email")
    @classmethod
    def email_format(cls, v):
        return _check_email(v)


class RepresentativeUpdate(BaseModel):
    password: Optional[str] = Field(None, min_length=6, max_length=72)
    email: Optional[str] = None
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = None
    upline_id: Optional[str] = None
    commission_rate: Optional[Decimal] = _rate()
    is_active: Optional[bool] = None

    @field_validator("email", "full_name", "is_active")
    @classmethod
    def required_columns(cls, v):
        return _not_null(v)

    @field_validator("email")
    @classmethod
    def email_format(cls, v):
        return _check_email(v)


# ==================== Products & inventory ====================

class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: str = Field(..., min_length=1)
    base_price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)
    sku: str = Field(..., min_length=1)
    image_url: Optional[str] = None
    is_active: bool = True


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1)
    base_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    tax_rate: Optional[Decimal] = _rate()
    sku: Optional[str] = Field(None, min_length=1)
    image_url: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name", "category", "base_price", "sku", "is_active")
    @classmethod
    def required_columns(cls, v):
        return _not_null(v)


class InventoryUpdate(BaseModel):
    quantity: Optional[int] = Field(None, ge=0)
    reorder_level: Optional[int] = Field(None, ge=0)


# ==================== Customers ====================

class CustomerCreate(BaseModel):
    representative_id: Optional[str] = None   # reps always own what they create
    name: str = Field(..., min_length=1)
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    custom_pricing: Optional[str] = None
    discount_percentage: Decimal = Field(Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def email_format(cls, v):
        return _check_email(v)


class CustomerUpdate(BaseModel):
    representative_id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    custom_pricing: Optional[str] = None
    discount_percentage: Optional[Decimal] = _rate()
    is_active: Optional[bool] = None

    @field_validator("representative_id", "name", "email", "is_active")
    @classmethod
    def required_columns(cls, v):
        return _not_null(v)

    @field_validator("email")
    @classmethod
    def email_format(cls, v):
        return _check_email(v)


# ==================== Sales & commissions ====================

class SaleCreate(BaseModel):
    product_id: str
    customer_id: str
    representative_id: Optional[str] = None   # reps always sell as themselves
    quantity: int = Field(..., ge=1)
    shipping: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    status: str = "completed"
    payment_status: Literal["pending", "paid", "refunded"] = "pending"
    delivery_status: Literal["pending", "shipped", "delivered"] = "pending"


class CommissionUpdate(BaseModel):
    status: Literal["pending", "paid"]


# ==================== Derived views ====================

class DashboardStats(BaseModel):
    total_sales: float
    total_commissions: float
    active_representatives: int
    active_customers: int
    low_stock_products: int
    recent_sales: int


class SalesChainNode(BaseModel):
    id: str
    name: str
    role: str
    total_sales: float
    total_commissions: float
    downline_count: int
    children: List["SalesChainNode"] = []


SalesChainNode.model_rebuild()


class AIRecommendation(BaseModel):
    type: Literal["product", "pricing", "sales", "lead"]
    title: str
    description: str
    confidence: int = Field(..., ge=0, le=100)
    action: Optional[str] = None
