import os
import math
import logging
from sqlalchemy import select, func
from sqlalchemy.orm import Session
from . import models, ledger
from .errors import NotFoundError, ReferencedRecordError

LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "10"))

logger = logging.getLogger(__name__)


def create_fruit(db: Session, data):
    fruit = models.Fruit(
        name=data.name,
        price=data.price,
        stock=data.stock,
        image=str(data.image) if data.image else None,
    )
    db.add(fruit)
    db.commit()
    db.refresh(fruit)
    logger.info("created fruit %s (%s)", fruit.name, fruit.id)
    return fruit


def update_fruit(db: Session, data, user_id=None):
    """Apply a partial update. A stock change is booked on the ledger as an adjustment."""
    fruit = db.get(models.Fruit, data.id)
    if fruit is None:
        raise NotFoundError("Fruit not found")

    if data.name is not None:
        fruit.name = data.name
    if data.price is not None:
        fruit.price = data.price
    if data.image is not None:
        fruit.image = str(data.image)
    if data.stock is not None and data.stock != fruit.stock:
        ledger.record_movement(db, fruit, data.stock - fruit.stock, "Stock adjustment", user_id)

    db.commit()
    db.refresh(fruit)
    return fruit


def delete_fruit(db: Session, fruit_id):
    fruit = db.get(models.Fruit, fruit_id)
    if fruit is None:
        raise NotFoundError("Fruit not found")

    ordered = db.execute(
        select(func.count(models.OrderItem.id)).where(models.OrderItem.fruit_id == fruit_id)
    ).scalar_one()
    if ordered:
        raise ReferencedRecordError("Cannot delete a fruit that has been ordered")

    image = fruit.image
    db.query(models.StockHistory).filter(models.StockHistory.fruit_id == fruit_id).delete()
    db.delete(fruit)
    db.commit()
    logger.info("deleted fruit %s", fruit_id)
    return image


def get_fruits(db: Session):
    return db.execute(select(models.Fruit).order_by(models.Fruit.created_at.desc())).scalars().all()


def get_fruit(db: Session, fruit_id):
    fruit = db.get(models.Fruit, fruit_id)
    if fruit is None:
        raise NotFoundError("Fruit not found")
    return fruit


def get_fruits_in_stock(db: Session):
    return db.execute(
        select(models.Fruit).where(models.Fruit.stock > 0).order_by(models.Fruit.name.asc())
    ).scalars().all()


def search_fruits(db: Session, params):
    stmt = select(models.Fruit)
    if params.query:
        stmt = stmt.where(models.Fruit.name.icontains(params.query, autoescape=True))
    if params.in_stock:
        stmt = stmt.where(models.Fruit.stock > 0)

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()

    column = getattr(models.Fruit, params.sort_by)
    stmt = stmt.order_by(column.asc() if params.sort_order == "asc" else column.desc())
    stmt = stmt.offset((params.page - 1) * params.limit).limit(params.limit)

    fruits = db.execute(stmt).scalars().all()
    pagination = {
        "page": params.page,
        "limit": params.limit,
        "total": total,
        "pages": math.ceil(total / params.limit),
    }
    return fruits, pagination


def get_fruit_stats(db: Session):
    def count(*criteria):
        return db.execute(select(func.count(models.Fruit.id)).where(*criteria)).scalar_one()

    total_stock, average_price = db.execute(
        select(func.coalesce(func.sum(models.Fruit.stock), 0), func.avg(models.Fruit.price))
    ).one()
    return {
        "total_fruits": count(),
        "in_stock_fruits": count(models.Fruit.stock > 0),
        "low_stock_fruits": count(models.Fruit.stock > 0, models.Fruit.stock <= LOW_STOCK_THRESHOLD),
        "out_of_stock_fruits": count(models.Fruit.stock == 0),
        "total_stock": int(total_stock),
        "average_price": float(average_price or 0),
    }


def get_popular_fruits(db: Session, limit: int = 6):
    sold = func.sum(models.OrderItem.quantity).label("total_sold")
    rows = db.execute(
        select(models.Fruit, sold)
        .join(models.OrderItem, models.OrderItem.fruit_id == models.Fruit.id)
        .group_by(models.Fruit.id)
        .order_by(sold.desc())
        .limit(limit)
    ).all()
    return [(fruit, int(total_sold)) for fruit, total_sold in rows]
