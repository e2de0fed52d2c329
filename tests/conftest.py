from decimal import Decimal
import pytest
from fruitstore import database, models
from fruitstore.users import hash_password


@pytest.fixture
def engine():
    engine = database.make_engine("sqlite://")
    database.configure_engine(engine)
    yield engine
    database.Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def user(db):
    u = models.User(name="Admin", email="admin@example.com", password=hash_password("secret1"), role="ADMIN")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def customer(db, user):
    c = models.Customer(name="Budi", email="budi@example.com", user_id=user.id)
    db.add(c)
    db.commit()
    return c


@pytest.fixture
def make_fruit(db):
    def _make(name="Apple", price="1000", stock=10):
        fruit = models.Fruit(name=name, price=Decimal(price), stock=stock)
        db.add(fruit)
        db.commit()
        return fruit
    return _make


def order_payload(customer, *lines, payment="CASH", user=None):
    """lines: (fruit, quantity, price) tuples"""
    return {
        "customer_id": str(customer.id),
        "payment": payment,
        "user_id": str(user.id) if user else None,
        "order_items": [
            {"fruit_id": str(fruit.id), "quantity": qty, "price": str(price)}
            for fruit, qty, price in lines
        ],
    }


def count(db, model):
    return db.query(model).count()
