import math
import logging
from decimal import Decimal
from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session
from . import models
from .errors import NotFoundError, DuplicateError, ReferencedRecordError

logger = logging.getLogger(__name__)


def _email_taken(db: Session, email, exclude_id=None) -> bool:
    stmt = select(models.Customer.id).where(models.Customer.email == email)
    if exclude_id is not None:
        stmt = stmt.where(models.Customer.id != exclude_id)
    return db.execute(stmt).first() is not None


def create_customer(db: Session, data):
    if db.get(models.User, data.user_id) is None:
        raise NotFoundError("User not found")
    if data.email and _email_taken(db, data.email):
        raise DuplicateError("Customer with this email already exists")

    customer = models.Customer(**data.model_dump())
    db.add(customer)
    db.commit()
    db.refresh(customer)
    logger.info("created customer %s", customer.id)
    return customer


def update_customer(db: Session, data):
    customer = db.get(models.Customer, data.id)
    if customer is None:
        raise NotFoundError("Customer not found")
    if data.email and _email_taken(db, data.email, exclude_id=data.id):
        raise DuplicateError("Customer with this email already exists")

    changes = data.model_dump(exclude={"id"}, exclude_unset=True)
    # name cannot be cleared
    if changes.get("name") is None:
        changes.pop("name", None)
    for field, value in changes.items():
        setattr(customer, field, value)
    db.commit()
    db.refresh(customer)
    return customer


def delete_customer(db: Session, customer_id):
    customer = db.get(models.Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")

    orders = db.execute(
        select(func.count(models.Order.id)).where(models.Order.customer_id == customer_id)
    ).scalar_one()
    if orders:
        raise ReferencedRecordError("Cannot delete customer with existing orders")

    db.delete(customer)
    db.commit()
    logger.info("deleted customer %s", customer_id)


def total_spent(db: Session, customer_id) -> Decimal:
    """Sum of totals over the customer's COMPLETED orders."""
    value = db.execute(
        select(func.coalesce(func.sum(models.Order.total), 0))
        .where(models.Order.customer_id == customer_id, models.Order.status == models.COMPLETED)
    ).scalar_one()
    return Decimal(value)


def order_count(db: Session, customer_id) -> int:
    return db.execute(
        select(func.count(models.Order.id)).where(models.Order.customer_id == customer_id)
    ).scalar_one()


def get_customers(db: Session, user_id=None):
    stmt = select(models.Customer).order_by(models.Customer.created_at.desc())
    if user_id is not None:
        stmt = stmt.where(models.Customer.user_id == user_id)
    return db.execute(stmt).scalars().all()


def get_customer(db: Session, customer_id):
    customer = db.get(models.Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def search_customers(db: Session, params):
    stmt = select(models.Customer)
    if params.query:
        stmt = stmt.where(or_(
            models.Customer.name.icontains(params.query, autoescape=True),
            models.Customer.email.icontains(params.query, autoescape=True),
            models.Customer.phone.icontains(params.query, autoescape=True),
        ))

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    customers = db.execute(
        stmt.order_by(models.Customer.created_at.desc())
        .offset((params.page - 1) * params.limit)
        .limit(params.limit)
    ).scalars().all()
    pagination = {
        "page": params.page,
        "limit": params.limit,
        "total": total,
        "pages": math.ceil(total / params.limit),
    }
    return customers, pagination
