"""Stock-history ledger.

Every change to ``Fruit.stock`` goes through :func:`record_movement`, which
updates the stock and appends the matching ledger row on the same session, so
both land in the caller's transaction or neither does. For any fruit,
``initial stock + ledger_balance(fruit) == fruit.stock``.
"""
import logging
from sqlalchemy import select, update, func
from sqlalchemy.orm import Session
from . import models
from .errors import InsufficientStockError, NotFoundError

logger = logging.getLogger(__name__)


def record_movement(db: Session, fruit: models.Fruit, delta: int, description: str, user_id=None):
    stmt = update(models.Fruit).where(models.Fruit.id == fruit.id)
    if delta < 0:
        # conditional decrement: never lets a concurrent writer push stock below zero
        stmt = stmt.where(models.Fruit.stock >= -delta)
    result = db.execute(stmt.values(stock=models.Fruit.stock + delta))
    if result.rowcount != 1:
        if delta < 0:
            raise InsufficientStockError(f"Insufficient stock for {fruit.name}")
        raise NotFoundError("Fruit not found")

    entry = models.StockHistory(
        fruit_id=fruit.id,
        quantity=delta,
        movement_type=models.MOVEMENT_IN if delta > 0 else models.MOVEMENT_OUT,
        description=description,
        user_id=user_id,
    )
    db.add(entry)
    logger.debug("stock %s %+d (%s)", fruit.id, delta, description)
    return entry


def get_stock_history(db: Session, fruit_id, limit: int = 10):
    return db.execute(
        select(models.StockHistory)
        .where(models.StockHistory.fruit_id == fruit_id)
        .order_by(models.StockHistory.created_at.desc(), models.StockHistory.id.desc())
        .limit(limit)
    ).scalars().all()


def ledger_balance(db: Session, fruit_id) -> int:
    total = db.execute(
        select(func.coalesce(func.sum(models.StockHistory.quantity), 0))
        .where(models.StockHistory.fruit_id == fruit_id)
    ).scalar_one()
    return int(total)
