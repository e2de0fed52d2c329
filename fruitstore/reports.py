from datetime import datetime, timedelta, time as dtime
from decimal import Decimal
from sqlalchemy import select, func
from sqlalchemy.orm import Session
from . import models

PERIOD_FORMATS = {
    "daily": "%Y-%m-%d",
    "weekly": "%G-W%V",
    "monthly": "%Y-%m",
    "yearly": "%Y",
}

METHOD_NAMES = {
    "CASH": "Cash",
    "TRANSFER": "Bank Transfer",
    "CREDIT_CARD": "Credit Card",
    "DIGITAL_WALLET": "E-Wallet",
}


def _window(column, start, end):
    if start is not None and end is not None:
        return [column >= start, column <= end]
    return []


def _sales_total(db: Session, *criteria) -> Decimal:
    total = db.execute(
        select(func.coalesce(func.sum(models.Order.total), 0))
        .where(models.Order.status != models.CANCELLED, *criteria)
    ).scalar_one()
    return Decimal(total)


def get_sales_summary(db: Session, start: datetime = None, end: datetime = None):
    """Totals over non-cancelled orders, optionally limited to ``[start, end]``.

    ``growth_percentage`` compares against the window of the same length right
    before ``start``; without a window there is nothing to compare and it is 0.
    """
    criteria = [models.Order.status != models.CANCELLED, *_window(models.Order.created_at, start, end)]
    total, count = db.execute(
        select(func.coalesce(func.sum(models.Order.total), 0), func.count(models.Order.id)).where(*criteria)
    ).one()
    total = Decimal(total)
    average = (total / count).quantize(Decimal("0.01")) if count else Decimal("0.00")

    growth = Decimal("0.00")
    if start is not None and end is not None:
        previous = _sales_total(db, models.Order.created_at >= start - (end - start),
                                models.Order.created_at < start)
        if previous > 0:
            growth = ((total - previous) / previous * 100).quantize(Decimal("0.01"))

    return {
        "total_sales": total,
        "order_count": count,
        "average_order_value": average,
        "growth_percentage": growth,
    }


def _trend_range(start, end):
    end = end or models.utcnow()
    start = start or end - timedelta(days=365)
    return start, end


def _bucket(moment: datetime, period: str) -> str:
    return moment.strftime(PERIOD_FORMATS[period])


def get_sales_trend(db: Session, period: str = "monthly", start: datetime = None, end: datetime = None):
    """Non-cancelled sales per day, ISO week, month or year; the last year by default."""
    start, end = _trend_range(start, end)
    rows = db.execute(
        select(models.Order.created_at, models.Order.total)
        .where(models.Order.status != models.CANCELLED,
               models.Order.created_at >= start, models.Order.created_at <= end)
        .order_by(models.Order.created_at)
    ).all()

    buckets = {}
    for created_at, total in rows:
        bucket = buckets.setdefault(_bucket(created_at, period), {"total": Decimal("0"), "count": 0})
        bucket["total"] += Decimal(total)
        bucket["count"] += 1
    return [{"period": key, **values} for key, values in sorted(buckets.items())]


def get_top_products(db: Session, start: datetime = None, end: datetime = None, limit: int = 10):
    """Best sellers on non-cancelled orders, ranked by quantity and by revenue."""
    sold = func.sum(models.OrderItem.quantity).label("quantity_sold")
    revenue = func.sum(models.OrderItem.subtotal).label("revenue")
    rows = db.execute(
        select(models.Fruit.id, models.Fruit.name, models.Fruit.image, sold, revenue)
        .join(models.OrderItem, models.OrderItem.fruit_id == models.Fruit.id)
        .join(models.Order, models.Order.id == models.OrderItem.order_id)
        .where(models.Order.status != models.CANCELLED, *_window(models.Order.created_at, start, end))
        .group_by(models.Fruit.id, models.Fruit.name, models.Fruit.image)
        .order_by(sold.desc())
        .limit(limit)
    ).all()
    by_quantity = [
        {
            "fruit_id": r.id,
            "name": r.name,
            "image": r.image,
            "quantity_sold": int(r.quantity_sold),
            "revenue": Decimal(r.revenue),
        }
        for r in rows
    ]
    return {
        "by_quantity": by_quantity,
        "by_revenue": sorted(by_quantity, key=lambda p: p["revenue"], reverse=True),
    }


def get_payment_summary(db: Session, start: datetime = None, end: datetime = None, now: datetime = None):
    now = now or models.utcnow()
    today = datetime.combine(now.date(), dtime.min, tzinfo=now.tzinfo)
    tomorrow = today + timedelta(days=1)
    window = _window(models.Payment.payment_date, start, end)

    def completed(*criteria):
        amount, count = db.execute(
            select(func.coalesce(func.sum(models.Payment.amount_paid), 0), func.count(models.Payment.id))
            .where(models.Payment.payment_status == models.COMPLETED, *criteria)
        ).one()
        return Decimal(amount), count

    def counted(status):
        return db.execute(
            select(func.count(models.Payment.id)).where(models.Payment.payment_status == status, *window)
        ).scalar_one()

    total_amount, completed_count = completed(*window)
    today_amount, today_count = completed(
        models.Payment.payment_date >= today, models.Payment.payment_date < tomorrow
    )
    pending = counted(models.PENDING)
    failed = counted(models.FAILED)
    total_count = completed_count + pending + failed

    methods = db.execute(
        select(models.Payment.payment_method, func.count(models.Payment.id))
        .where(*window)
        .group_by(models.Payment.payment_method)
        .order_by(models.Payment.payment_method)
    ).all()
    distribution = [
        {
            "method": method,
            "name": METHOD_NAMES.get(method, method),
            "count": count,
            "value": round(count / total_count * 100, 2) if total_count else 0,
        }
        for method, count in methods
    ]

    return {
        "total_amount": total_amount,
        "completed_count": completed_count,
        "pending_count": pending,
        "failed_count": failed,
        "total_count": total_count,
        "today_amount": today_amount,
        "today_count": today_count,
        "method_distribution": distribution,
    }


def get_payment_trend(db: Session, period: str = "monthly", start: datetime = None, end: datetime = None):
    """Payments per bucket: completed amount plus completed, pending and failed counts."""
    start, end = _trend_range(start, end)
    rows = db.execute(
        select(models.Payment.payment_date, models.Payment.payment_status, models.Payment.amount_paid)
        .where(models.Payment.payment_date >= start, models.Payment.payment_date <= end)
        .order_by(models.Payment.payment_date)
    ).all()

    buckets = {}
    for paid_at, status, amount in rows:
        bucket = buckets.setdefault(_bucket(paid_at, period), {
            "completed": Decimal("0"), "completed_count": 0, "pending_count": 0, "failed_count": 0,
        })
        if status == models.COMPLETED:
            bucket["completed"] += Decimal(amount)
        bucket[f"{status.lower()}_count"] += 1
    return [{"period": key, **values} for key, values in sorted(buckets.items())]


def get_recent_payments(db: Session, limit: int = 10):
    rows = db.execute(
        select(models.Payment, models.Order.order_number, models.Customer.name)
        .join(models.Order, models.Order.id == models.Payment.order_id)
        .outerjoin(models.Customer, models.Customer.id == models.Order.customer_id)
        .order_by(models.Payment.payment_date.desc())
        .limit(limit)
    ).all()
    return [
        {
            "id": payment.id,
            "order_number": order_number,
            "customer": customer or "Unknown",
            "amount": payment.amount_paid,
            "method": payment.payment_method,
            "status": payment.payment_status,
            "date": payment.payment_date,
        }
        for payment, order_number, customer in rows
    ]
