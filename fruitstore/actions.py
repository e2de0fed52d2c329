"""Request/response actions.

Each action validates its input record, runs the data-access call and returns
an :class:`~fruitstore.schemas.ActionResult`. Nothing raises across this
boundary: validation errors are reported verbatim, business-rule violations
(:class:`~fruitstore.errors.StoreError`) with their own message, and anything
else is logged and reported with the action's generic failure message.
Successful mutations trigger a view refresh for the pages they affect.
"""
import uuid
import logging
import functools
from pydantic import ValidationError
from sqlalchemy.orm import Session
from . import crud, inventory, customers, users, reports, ledger, revalidate, schemas
from .errors import StoreError, NotFoundError
from .schemas import ActionResult

logger = logging.getLogger(__name__)


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def action(failure: str, refresh=()):
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(db: Session, *args, **kwargs) -> ActionResult:
            try:
                data = fn(db, *args, **kwargs)
            except ValidationError as e:
                db.rollback()
                return ActionResult(success=False, error=format_validation_error(e))
            except StoreError as e:
                db.rollback()
                logger.warning("%s: %s", failure, e)
                return ActionResult(success=False, error=str(e))
            except Exception:
                db.rollback()
                logger.exception(failure)
                return ActionResult(success=False, error=failure)
            revalidate.paths(*refresh)
            return ActionResult(success=True, data=data)
        return wrapper
    return decorator


def _parse_id(value, what: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFoundError(f"{what} not found")


def _dump(model, rows):
    return [model.model_validate(r) for r in rows]


# ---- orders ----

@action("Failed to create order", refresh=("/orders", "/dashboard/orders", "/dashboard/buah"))
def create_order(db, data):
    order = crud.create_order(db, schemas.OrderCreate.model_validate(data))
    return schemas.OrderOut.model_validate(order)


@action("Failed to update order", refresh=("/orders", "/dashboard/orders"))
def update_order(db, data):
    order = crud.update_order(db, schemas.OrderUpdate.model_validate(data))
    return schemas.OrderOut.model_validate(order)


@action("Failed to cancel order", refresh=("/orders", "/dashboard/orders", "/dashboard/buah"))
def cancel_order(db, order_id):
    order = crud.cancel_order(db, _parse_id(order_id, "Order"))
    return schemas.OrderOut.model_validate(order)


@action("Failed to fetch orders")
def get_orders(db, user_id=None):
    if user_id is not None:
        user_id = _parse_id(user_id, "User")
    return _dump(schemas.OrderOut, crud.get_orders(db, user_id))


@action("Failed to fetch order")
def get_order(db, order_id):
    return schemas.OrderDetailOut.model_validate(crud.get_order(db, _parse_id(order_id, "Order")))


# ---- payments ----

@action("Failed to create payment", refresh=("/payments", "/dashboard/payments"))
def create_payment(db, data):
    payment = crud.create_payment(db, schemas.PaymentCreate.model_validate(data))
    return schemas.PaymentOut.model_validate(payment)


@action("Failed to update payment", refresh=("/payments", "/dashboard/payments", "/dashboard/orders"))
def update_payment(db, data):
    payment = crud.update_payment(db, schemas.PaymentUpdate.model_validate(data))
    return schemas.PaymentOut.model_validate(payment)


@action("Failed to approve payment", refresh=("/payments", "/dashboard/payments", "/dashboard/orders"))
def approve_payment(db, payment_id):
    payment = crud.approve_payment(db, _parse_id(payment_id, "Payment"))
    return schemas.PaymentOut.model_validate(payment)


@action("Failed to reject payment", refresh=("/payments", "/dashboard/payments"))
def reject_payment(db, payment_id):
    payment = crud.reject_payment(db, _parse_id(payment_id, "Payment"))
    return schemas.PaymentOut.model_validate(payment)


@action("Failed to fetch payments")
def get_payments(db):
    return _dump(schemas.PaymentOut, crud.get_payments(db))


@action("Failed to fetch payments for order")
def get_payments_by_order(db, order_id):
    return _dump(schemas.PaymentOut, crud.get_payments_by_order(db, _parse_id(order_id, "Order")))


@action("Failed to fetch payment")
def get_latest_payment(db, order_id):
    return schemas.PaymentOut.model_validate(crud.get_latest_payment(db, _parse_id(order_id, "Order")))


# ---- fruits ----

@action("Failed to create fruit", refresh=("/dashboard/buah", "/dashboard"))
def create_fruit(db, data):
    return schemas.FruitOut.model_validate(inventory.create_fruit(db, schemas.FruitCreate.model_validate(data)))


@action("Failed to update fruit", refresh=("/dashboard/buah", "/dashboard"))
def update_fruit(db, data, user_id=None):
    if user_id is not None:
        user_id = _parse_id(user_id, "User")
    fruit = inventory.update_fruit(db, schemas.FruitUpdate.model_validate(data), user_id)
    return schemas.FruitOut.model_validate(fruit)


@action("Failed to delete fruit", refresh=("/dashboard/buah", "/dashboard"))
def delete_fruit(db, fruit_id):
    # the image URL is handed back so the caller can drop the blob
    return {"image": inventory.delete_fruit(db, _parse_id(fruit_id, "Fruit"))}


@action("Failed to fetch fruits")
def get_fruits(db):
    return _dump(schemas.FruitOut, inventory.get_fruits(db))


@action("Failed to fetch fruit")
def get_fruit(db, fruit_id):
    fruit = inventory.get_fruit(db, _parse_id(fruit_id, "Fruit"))
    return {
        "fruit": schemas.FruitOut.model_validate(fruit),
        "stock_history": _dump(schemas.StockHistoryOut, ledger.get_stock_history(db, fruit.id)),
    }


@action("Failed to fetch stock history")
def get_stock_history(db, fruit_id, limit=10):
    fruit = inventory.get_fruit(db, _parse_id(fruit_id, "Fruit"))
    return _dump(schemas.StockHistoryOut, ledger.get_stock_history(db, fruit.id, limit))


@action("Failed to fetch fruits in stock")
def get_fruits_in_stock(db):
    return _dump(schemas.FruitOut, inventory.get_fruits_in_stock(db))


@action("Failed to search fruits")
def search_fruits(db, params=None):
    fruits, pagination = inventory.search_fruits(db, schemas.FruitSearch.model_validate(params or {}))
    return {
        "fruits": _dump(schemas.FruitOut, fruits),
        "pagination": schemas.Pagination(**pagination),
    }


@action("Failed to fetch fruit stats")
def get_fruit_stats(db):
    return inventory.get_fruit_stats(db)


@action("Failed to fetch popular fruits")
def get_popular_fruits(db, limit=6):
    return [
        {**schemas.FruitOut.model_validate(fruit).model_dump(), "total_sold": total_sold}
        for fruit, total_sold in inventory.get_popular_fruits(db, limit)
    ]


# ---- customers ----

@action("Failed to create customer", refresh=("/customers", "/dashboard/pelanggan"))
def create_customer(db, data):
    customer = customers.create_customer(db, schemas.CustomerCreate.model_validate(data))
    return schemas.CustomerOut.model_validate(customer)


@action("Failed to update customer", refresh=("/customers", "/dashboard/pelanggan"))
def update_customer(db, data):
    customer = customers.update_customer(db, schemas.CustomerUpdate.model_validate(data))
    return schemas.CustomerOut.model_validate(customer)


@action("Failed to delete customer", refresh=("/customers", "/dashboard/pelanggan"))
def delete_customer(db, customer_id):
    customers.delete_customer(db, _parse_id(customer_id, "Customer"))


@action("Failed to fetch customers")
def get_customers(db, user_id=None):
    if user_id is not None:
        user_id = _parse_id(user_id, "User")
    return _dump(schemas.CustomerOut, customers.get_customers(db, user_id))


@action("Failed to fetch customer")
def get_customer(db, customer_id):
    customer = customers.get_customer(db, _parse_id(customer_id, "Customer"))
    return schemas.CustomerDetailOut(
        **schemas.CustomerOut.model_validate(customer).model_dump(),
        order_count=customers.order_count(db, customer.id),
        total_spent=customers.total_spent(db, customer.id),
    )


@action("Failed to search customers")
def search_customers(db, params=None):
    found, pagination = customers.search_customers(db, schemas.CustomerSearch.model_validate(params or {}))
    return {
        "customers": _dump(schemas.CustomerOut, found),
        "pagination": schemas.Pagination(**pagination),
    }


# ---- users ----

@action("Failed to create user", refresh=("/users", "/dashboard/users"))
def create_user(db, data):
    return schemas.UserOut.model_validate(users.create_user(db, schemas.UserCreate.model_validate(data)))


@action("Failed to update user", refresh=("/users", "/dashboard/users"))
def update_user(db, data):
    return schemas.UserOut.model_validate(users.update_user(db, schemas.UserUpdate.model_validate(data)))


@action("Failed to delete user", refresh=("/users", "/dashboard/users"))
def delete_user(db, user_id):
    users.delete_user(db, _parse_id(user_id, "User"))


@action("Failed to fetch users")
def get_users(db):
    return _dump(schemas.UserOut, users.get_users(db))


@action("Failed to fetch user")
def get_user(db, user_id):
    return schemas.UserOut.model_validate(users.get_user(db, _parse_id(user_id, "User")))


# ---- reports ----

@action("Failed to fetch sales summary")
def get_sales_summary(db, start=None, end=None):
    return reports.get_sales_summary(db, start, end)


@action("Failed to fetch sales trend")
def get_sales_trend(db, params=None):
    query = schemas.TrendQuery.model_validate(params or {})
    return reports.get_sales_trend(db, query.period, query.start, query.end)


@action("Failed to fetch top products")
def get_top_products(db, start=None, end=None, limit=10):
    return reports.get_top_products(db, start, end, limit)


@action("Failed to fetch payment summary")
def get_payment_summary(db, start=None, end=None):
    return reports.get_payment_summary(db, start, end)


@action("Failed to fetch payment trend")
def get_payment_trend(db, params=None):
    query = schemas.TrendQuery.model_validate(params or {})
    return reports.get_payment_trend(db, query.period, query.start, query.end)


@action("Failed to fetch recent payments")
def get_recent_payments(db, limit=10):
    return reports.get_recent_payments(db, limit)
