import os
import time
import secrets
import string
import logging
from decimal import Decimal
from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload
from . import models, ledger
from .errors import (NotFoundError, InsufficientStockError, PriceMismatchError,
                     OrderStateError, PaymentStateError)

ENFORCE_CATALOG_PRICES = os.getenv("ENFORCE_CATALOG_PRICES", "0") == "1"

logger = logging.getLogger(__name__)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

# allowed payment transitions; both terminal states accept no further change
_PAYMENT_TRANSITIONS = {
    models.PENDING: {models.COMPLETED, models.FAILED},
}


def generate_order_number() -> str:
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def _lock_fruit(db: Session, fruit_id):
    return db.execute(
        select(models.Fruit)
        .where(models.Fruit.id == fruit_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _lock_order(db: Session, order_id) -> models.Order:
    order = db.execute(
        select(models.Order)
        .where(models.Order.id == order_id)
        .options(selectinload(models.Order.items))
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def create_order(db: Session, order_data):
    """
    In one transaction:
    - insert the order and its items
    - decrement stock and write an ``out`` ledger row per item
    - insert the initial PENDING payment
    """
    if db.get(models.Customer, order_data.customer_id) is None:
        raise NotFoundError("Customer not found")

    order_number = generate_order_number()
    total = sum((item.quantity * item.price for item in order_data.order_items), Decimal("0.00"))

    order = models.Order(
        order_number=order_number,
        customer_id=order_data.customer_id,
        payment=order_data.payment,
        total=total,
        status=models.PROCESSING,
        user_id=order_data.user_id,
    )
    db.add(order)
    db.flush()

    for item in order_data.order_items:
        fruit = _lock_fruit(db, item.fruit_id)
        if fruit is None or fruit.stock < item.quantity:
            raise InsufficientStockError(f"Insufficient stock for {fruit.name if fruit else 'fruit'}")
        if ENFORCE_CATALOG_PRICES and fruit.price != item.price:
            raise PriceMismatchError(f"Price changed for {fruit.name}")

        db.add(models.OrderItem(
            order_id=order.id,
            fruit_id=fruit.id,
            quantity=item.quantity,
            price=item.price,
            subtotal=item.quantity * item.price,
        ))
        ledger.record_movement(db, fruit, -item.quantity, f"Order {order_number}", order_data.user_id)

    db.add(models.Payment(
        order_id=order.id,
        amount_paid=total,
        payment_status=models.PENDING,
        payment_method=order.payment,
        payment_date=models.utcnow(),
    ))

    db.commit()
    db.refresh(order)
    logger.info("created order %s total=%s", order_number, total)
    return order


def _reverse_order(db: Session, order: models.Order):
    """Restore stock for every item, fail the payments and mark the order cancelled."""
    for item in order.items:
        fruit = _lock_fruit(db, item.fruit_id)
        if fruit is None:
            raise NotFoundError("Fruit not found")
        ledger.record_movement(db, fruit, item.quantity, f"Order {order.order_number} cancelled")

    db.execute(
        update(models.Payment)
        .where(models.Payment.order_id == order.id)
        .values(payment_status=models.FAILED)
    )
    order.status = models.CANCELLED


def cancel_order(db: Session, order_id):
    order = _lock_order(db, order_id)
    if order.status == models.CANCELLED:
        raise OrderStateError("Order is already cancelled")

    _reverse_order(db, order)
    db.commit()
    db.refresh(order)
    logger.info("cancelled order %s", order.order_number)
    return order


def update_order(db: Session, data):
    order = _lock_order(db, data.id)

    if data.status is not None and data.status != order.status:
        if order.status == models.CANCELLED:
            raise OrderStateError("Order is already cancelled")
        # a completed order only leaves COMPLETED through cancellation
        if order.status == models.COMPLETED and data.status != models.CANCELLED:
            raise OrderStateError("Order is already completed")
        if data.status == models.CANCELLED:
            _reverse_order(db, order)
        else:
            order.status = data.status
    if data.payment is not None:
        order.payment = data.payment

    db.commit()
    db.refresh(order)
    return order


def get_orders(db: Session, user_id=None):
    stmt = select(models.Order).order_by(models.Order.created_at.desc())
    if user_id is not None:
        stmt = stmt.where(models.Order.user_id == user_id)
    return db.execute(stmt).scalars().all()


def get_order(db: Session, order_id):
    order = db.execute(
        select(models.Order)
        .where(models.Order.id == order_id)
        .options(selectinload(models.Order.items), selectinload(models.Order.payments))
    ).scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found")
    return order


# ---- payments ----

def transition_payment(payment: models.Payment, target: str) -> bool:
    """Move ``payment`` to ``target``; returns False when it is already there."""
    current = payment.payment_status
    if current == target:
        return False
    if target not in _PAYMENT_TRANSITIONS.get(current, ()):
        raise PaymentStateError(f"Payment is already {current.lower()}")
    payment.payment_status = target
    return True


def _lock_payment(db: Session, payment_id):
    """Lock the payment's order, then the payment, and return both freshly read.

    Orders are always locked before their payments, matching ``cancel_order``.
    """
    order_id = db.execute(
        select(models.Payment.order_id).where(models.Payment.id == payment_id)
    ).scalar_one_or_none()
    if order_id is None:
        raise NotFoundError("Payment not found")
    order = _lock_order(db, order_id)
    payment = db.execute(
        select(models.Payment)
        .where(models.Payment.id == payment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one()
    return payment, order


def create_payment(db: Session, data):
    order = db.get(models.Order, data.order_id)
    if order is None:
        raise NotFoundError("Order not found")

    payment = models.Payment(
        order_id=order.id,
        amount_paid=data.amount_paid,
        payment_status=data.payment_status,
        payment_method=data.payment_method or order.payment,
        proof_url=str(data.proof_url) if data.proof_url else None,
        payment_date=models.utcnow(),
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


def approve_payment(db: Session, payment_id):
    payment, order = _lock_payment(db, payment_id)
    if order.status == models.CANCELLED:
        raise OrderStateError("Order is already cancelled")

    transition_payment(payment, models.COMPLETED)
    order.status = models.COMPLETED
    # payment and order share this commit
    db.commit()
    db.refresh(payment)
    logger.info("approved payment %s for order %s", payment.id, order.order_number)
    return payment


def reject_payment(db: Session, payment_id):
    payment, _ = _lock_payment(db, payment_id)
    transition_payment(payment, models.FAILED)
    db.commit()
    db.refresh(payment)
    logger.info("rejected payment %s", payment.id)
    return payment


def update_payment(db: Session, data):
    if data.payment_status == models.COMPLETED:
        return approve_payment(db, data.id)
    payment, _ = _lock_payment(db, data.id)
    transition_payment(payment, data.payment_status)
    db.commit()
    db.refresh(payment)
    return payment


def get_payments(db: Session):
    return db.execute(
        select(models.Payment).order_by(models.Payment.payment_date.desc())
    ).scalars().all()


def get_payments_by_order(db: Session, order_id):
    return db.execute(
        select(models.Payment)
        .where(models.Payment.order_id == order_id)
        .order_by(models.Payment.payment_date.desc())
    ).scalars().all()


def get_latest_payment(db: Session, order_id):
    payments = get_payments_by_order(db, order_id)
    if not payments:
        raise NotFoundError("Payment not found")
    return payments[0]
