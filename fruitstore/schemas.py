from datetime import datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, EmailStr, Field, AnyHttpUrl

PaymentMethod = Literal["CASH", "TRANSFER", "CREDIT_CARD", "DIGITAL_WALLET"]
OrderStatus = Literal["PROCESSING", "COMPLETED", "CANCELLED"]
PaymentStatus = Literal["PENDING", "COMPLETED", "FAILED"]
Role = Literal["USER", "ADMIN"]


# ---- inputs ----

class OrderItemCreate(BaseModel):
    fruit_id: UUID
    quantity: int = Field(gt=0)
    price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)


class OrderCreate(BaseModel):
    customer_id: UUID
    payment: PaymentMethod
    user_id: Optional[UUID] = None
    order_items: List[OrderItemCreate] = Field(min_length=1)


class OrderChanges(BaseModel):
    status: Optional[OrderStatus] = None
    payment: Optional[PaymentMethod] = None


class OrderUpdate(OrderChanges):
    id: UUID


class PaymentCreate(BaseModel):
    order_id: UUID
    amount_paid: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    payment_status: PaymentStatus = "PENDING"
    payment_method: Optional[PaymentMethod] = None
    proof_url: Optional[AnyHttpUrl] = None


class PaymentUpdate(BaseModel):
    id: UUID
    payment_status: PaymentStatus


class FruitCreate(BaseModel):
    name: str = Field(min_length=1)
    price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    stock: int = Field(ge=0)
    image: Optional[AnyHttpUrl] = None


class FruitUpdate(BaseModel):
    id: UUID
    name: Optional[str] = Field(default=None, min_length=1)
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    stock: Optional[int] = Field(default=None, ge=0)
    image: Optional[AnyHttpUrl] = None


class FruitSearch(BaseModel):
    query: Optional[str] = None
    sort_by: Literal["name", "price", "stock", "created_at"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, gt=0)
    limit: int = Field(default=20, gt=0, le=100)
    in_stock: Optional[bool] = None


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    user_id: UUID


class CustomerUpdate(BaseModel):
    id: UUID
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class CustomerSearch(BaseModel):
    query: Optional[str] = None
    page: int = Field(default=1, gt=0)
    limit: int = Field(default=20, gt=0, le=100)


class TrendQuery(BaseModel):
    period: Literal["daily", "weekly", "monthly", "yearly"] = "monthly"
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Role = "USER"


class UserUpdate(BaseModel):
    id: UUID
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=6)
    role: Optional[Role] = None


# ---- outputs ----

class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserOut(ORMModel):
    id: UUID
    name: str
    email: str
    role: str
    created_at: datetime


class CustomerOut(ORMModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    user_id: UUID
    created_at: datetime


class CustomerDetailOut(CustomerOut):
    order_count: int = 0
    total_spent: Decimal = Decimal("0")


class FruitOut(ORMModel):
    id: UUID
    name: str
    price: Decimal
    stock: int
    image: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class StockHistoryOut(ORMModel):
    id: int
    fruit_id: UUID
    quantity: int
    movement_type: str
    description: str
    user_id: Optional[UUID] = None
    created_at: datetime


class OrderItemOut(ORMModel):
    id: int
    fruit_id: UUID
    quantity: int
    price: Decimal
    subtotal: Decimal


class PaymentOut(ORMModel):
    id: UUID
    order_id: UUID
    amount_paid: Decimal
    payment_status: str
    payment_method: Optional[str] = None
    proof_url: Optional[str] = None
    payment_date: datetime


class OrderOut(ORMModel):
    id: UUID
    order_number: str
    customer_id: UUID
    payment: str
    total: Decimal
    status: str
    user_id: Optional[UUID] = None
    created_at: datetime


class OrderDetailOut(OrderOut):
    items: List[OrderItemOut] = []
    payments: List[PaymentOut] = []


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ActionResult(BaseModel):
    success: bool
    data: Any = None
    error: Optional[str] = None
