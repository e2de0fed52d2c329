import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from fastapi import FastAPI, Depends, Body
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
from . import database, schemas, actions

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    with database.session_scope() as db:
        db.execute(text("select 1"))
        database.Base.metadata.create_all(bind=db.get_bind())
    logger.info("DB ready")
    yield


app = FastAPI(title="Fruit Store API", lifespan=lifespan)


def respond(result: schemas.ActionResult, status_code: int = 200):
    if not result.success:
        status_code = 404 if result.error and result.error.endswith("not found") else 400
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


# ---- orders ----

@app.post("/orders")
def create_order(order: dict = Body(...), db: Session = Depends(database.get_db)):
    return respond(actions.create_order(db, order), status_code=201)


@app.get("/orders")
def list_orders(user_id: Optional[str] = None, db: Session = Depends(database.get_db)):
    return respond(actions.get_orders(db, user_id))


@app.get("/orders/{order_id}")
def get_order(order_id: str, db: Session = Depends(database.get_db)):
    return respond(actions.get_order(db, order_id))


@app.patch("/orders/{order_id}")
def update_order(order_id: str, changes: dict = Body(...), db: Session = Depends(database.get_db)):
    return respond(actions.update_order(db, {**changes, "id": order_id}))


@app.post("/orders/{order_id}/cancel")
def cancel_order(order_id: str, db: Session = Depends(database.get_db)):
    return respond(actions.cancel_order(db, order_id))


@app.get("/orders/{order_id}/payments")
def list_order_payments(order_id: str, db: Session = Depends(database.get_db)):
    return respond(actions.get_payments_by_order(db, order_id))


# ---- payments ----

@app.post("/payments")
def create_payment(payment: dict = Body(...), db: Session = Depends(database.get_db)):
    return respond(actions.create_payment(db, payment), status_code=201)


@app.get("/payments")
def list_payments(db: Session = Depends(database.get_db)):
    return respond(actions.get_payments(db))


@app.patch("/payments/{payment_id}")
def update_payment(payment_id: str, changes: dict = Body(...), db: Session = Depends(database.get_db)):
    return respond(actions.update_payment(db, {**changes, "id": payment_id}))


@app.post("/payments/{payment_id}/approve")
def approve_payment(payment_id: str, db: Session = Depends(database.get_db)):
    return respond(actions.approve_payment(db, payment_id))


@app.post("/payments/{payment_id}/reject")
def reject_payment(payment_id: str, db: Session = Depends(database.get_db)):
    return respond(actions.reject_payment(db, payment_id))


# ---- fruits ----

@app.post("/fruits")
def create_fruit(fruit: dict = Body(...), db: Session = Depends(database.get_db)):
    return respond(actions.create_fruit(db, fruit), status_code=201)


@app.get("/fruits")
def list_fruits(query: Optional[str] = None, sort_by: str = "created_at", sort_order: str = "desc",
                page: int = 1, limit: int = 20, in_stock: Optional[bool] = None,
                db: Session = Depends(database.get_db)):
    params = {"query": query, "sort_by": sort_by, "sort_order": sort_order,
              "page": page, "limit": limit, "in_stock": in_stock}
    return respond(actions.search_fruits(db, params))


@app.get("/fruits/in-stock")
def list_fruits_in_stock(db: Session = Depends(database.get_db)):
    return respond(actions.get_fruits_in_stock(db))


@app.get("/fruits/stats")
def fruit_stats(db: Session = Depends(database.get_db)):
    return respond(actions.get_fruit_stats(db))


@app.get("/fruits/popular")
def popular_fruits(limit: int = 6, db: Session = Depends(database.get_db)):
    return respond(actions.get_popular_fruits(db, limit))


@app.get("/fruits/{fruit_id}")
def get_fruit(fruit_id: str, db: Session = Depends(database.get_db)):
    return respond(actions.get_fruit(db, fruit_id))


@app.get("/fruits/{fruit_id}/stock-history")
def fruit_stock_history(fruit_id: str, limit: int = 10, db: Session = Depends(database.get_db)):
    return respond(actions.get_stock_history(db, fruit_id, limit))


@app.patch("/fruits/{fruit_id}")
def update_fruit(fruit_id: str, changes: dict = Body(...), user_id: Optional[str] = None,
                 db: Session = Depends(database.get_db)):
    return respond(actions.update_fruit(db, {**changes, "id": fruit_id}, user_id))


@app.delete("/fruits/{fruit_id}")
def delete_fruit(fruit_id: str, db: Session = Depends(database.get_db)):
    return respond(actions.delete_fruit(db, fruit_id))


# ---- customers ----

@app.post("/customers")
def create_customer(customer: dict = Body(...), db: Session = Depends(database.get_db)):
    return respond(actions.create_customer(db, customer), status_code=201)


@app.get("/customers")
def list_customers(query: Optional[str] = None, page: int = 1, limit: int = 20,
                   db: Session = Depends(database.get_db)):
    return respond(actions.search_customers(db, {"query": query, "page": page, "limit": limit}))


@app.get("/customers/{customer_id}")
def get_customer(customer_id: str, db: Session = Depends(database.get_db)):
    return respond(actions.get_customer(db, customer_id))


@app.patch("/customers/{customer_id}")
def update_customer(customer_id: str, changes: dict = Body(...), db: Session = Depends(database.get_db)):
    return respond(actions.update_customer(db, {**changes, "id": customer_id}))


@app.delete("/customers/{customer_id}")
def delete_customer(customer_id: str, db: Session = Depends(database.get_db)):
    return respond(actions.delete_customer(db, customer_id))


# ---- users ----

@app.post("/users")
def create_user(user: dict = Body(...), db: Session = Depends(database.get_db)):
    return respond(actions.create_user(db, user), status_code=201)


@app.get("/users")
def list_users(db: Session = Depends(database.get_db)):
    return respond(actions.get_users(db))


@app.get("/users/{user_id}")
def get_user(user_id: str, db: Session = Depends(database.get_db)):
    return respond(actions.get_user(db, user_id))


@app.patch("/users/{user_id}")
def update_user(user_id: str, changes: dict = Body(...), db: Session = Depends(database.get_db)):
    return respond(actions.update_user(db, {**changes, "id": user_id}))


@app.delete("/users/{user_id}")
def delete_user(user_id: str, db: Session = Depends(database.get_db)):
    return respond(actions.delete_user(db, user_id))


# ---- reports ----

@app.get("/reports/sales")
def sales_summary(start: Optional[datetime] = None, end: Optional[datetime] = None,
                  db: Session = Depends(database.get_db)):
    return respond(actions.get_sales_summary(db, start, end))


@app.get("/reports/sales/trend")
def sales_trend(period: str = "monthly", start: Optional[datetime] = None, end: Optional[datetime] = None,
                db: Session = Depends(database.get_db)):
    return respond(actions.get_sales_trend(db, {"period": period, "start": start, "end": end}))


@app.get("/reports/top-products")
def top_products(start: Optional[datetime] = None, end: Optional[datetime] = None, limit: int = 10,
                 db: Session = Depends(database.get_db)):
    return respond(actions.get_top_products(db, start, end, limit))


@app.get("/reports/payments")
def payment_summary(start: Optional[datetime] = None, end: Optional[datetime] = None,
                    db: Session = Depends(database.get_db)):
    return respond(actions.get_payment_summary(db, start, end))


@app.get("/reports/payments/trend")
def payment_trend(period: str = "monthly", start: Optional[datetime] = None, end: Optional[datetime] = None,
                  db: Session = Depends(database.get_db)):
    return respond(actions.get_payment_trend(db, {"period": period, "start": start, "end": end}))


@app.get("/reports/payments/recent")
def recent_payments(limit: int = 10, db: Session = Depends(database.get_db)):
    return respond(actions.get_recent_payments(db, limit))
