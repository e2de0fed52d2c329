import uuid
from datetime import datetime, timezone
from sqlalchemy import (Column, String, Numeric, Integer, Text, DateTime, ForeignKey,
                        Uuid, CheckConstraint, func)
from sqlalchemy.orm import relationship
from .database import Base

# Order status
PROCESSING = "PROCESSING"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"

# Payment status
PENDING = "PENDING"
FAILED = "FAILED"

PAYMENT_METHODS = ("CASH", "TRANSFER", "CREDIT_CARD", "DIGITAL_WALLET")

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"


def utcnow():
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
                        server_default=func.now())


class User(TimestampMixin, Base):
    __tablename__ = "users"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False, default="USER", server_default="USER")


class Customer(TimestampMixin, Base):
    __tablename__ = "customers"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True, unique=True)
    phone = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    user = relationship("User")
    orders = relationship("Order", back_populates="customer")


class Fruit(TimestampMixin, Base):
    __tablename__ = "fruits"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_fruits_stock_non_negative"),
        CheckConstraint("price > 0", name="ck_fruits_price_positive"),
    )
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, nullable=False, server_default="0")
    image = Column(String, nullable=True)
    stock_history = relationship("StockHistory", back_populates="fruit", order_by="StockHistory.created_at.desc()")


class StockHistory(Base):
    __tablename__ = "stock_history"
    id = Column(Integer, primary_key=True, autoincrement=True)
    fruit_id = Column(Uuid, ForeignKey("fruits.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)  # signed delta
    movement_type = Column(String(8), nullable=False)
    description = Column(Text, nullable=False, default="")
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    fruit = relationship("Fruit", back_populates="stock_history")


class Order(TimestampMixin, Base):
    __tablename__ = "orders"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(String, nullable=False, unique=True)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False)
    payment = Column(String, nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default=PROCESSING, server_default=PROCESSING)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    customer = relationship("Customer", back_populates="orders")
    items = relationship("OrderItem", back_populates="order")
    payments = relationship("Payment", back_populates="order", order_by="Payment.payment_date.desc()")


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False, index=True)
    fruit_id = Column(Uuid, ForeignKey("fruits.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    order = relationship("Order", back_populates="items")
    fruit = relationship("Fruit")


class Payment(TimestampMixin, Base):
    __tablename__ = "payments"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False, index=True)
    amount_paid = Column(Numeric(12, 2), nullable=False)
    payment_status = Column(String, nullable=False, default=PENDING, server_default=PENDING)
    payment_method = Column(String, nullable=True)
    proof_url = Column(String, nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    order = relationship("Order", back_populates="payments")
