import re
import uuid
from decimal import Decimal
from fruitstore import actions, crud, ledger, models
from tests.conftest import order_payload, count


def test_create_order_decrements_stock_and_books_ledger(db, customer, user, make_fruit):
    fruit = make_fruit(stock=10)

    result = actions.create_order(db, order_payload(customer, (fruit, 4, 1000), user=user))

    assert result.success, result.error
    order = result.data
    assert order.total == Decimal("4000")
    assert order.status == models.PROCESSING
    assert order.user_id == user.id

    db.refresh(fruit)
    assert fruit.stock == 6

    history = ledger.get_stock_history(db, fruit.id)
    assert len(history) == 1
    assert history[0].quantity == -4
    assert history[0].movement_type == "out"
    assert history[0].description == f"Order {order.order_number}"
    assert history[0].user_id == user.id

    payments = crud.get_payments_by_order(db, order.id)
    assert len(payments) == 1
    assert payments[0].payment_status == models.PENDING
    assert payments[0].amount_paid == Decimal("4000")
    assert payments[0].payment_method == "CASH"


def test_cancel_order_restores_stock_and_fails_payments(db, customer, make_fruit):
    fruit = make_fruit(stock=10)
    order = actions.create_order(db, order_payload(customer, (fruit, 4, 1000))).data

    result = actions.cancel_order(db, str(order.id))

    assert result.success, result.error
    assert result.data.status == models.CANCELLED
    db.refresh(fruit)
    assert fruit.stock == 10

    history = ledger.get_stock_history(db, fruit.id)
    assert [h.quantity for h in history] == [4, -4]
    assert history[0].movement_type == "in"
    assert history[0].description == f"Order {order.order_number} cancelled"
    assert ledger.ledger_balance(db, fruit.id) == 0

    payments = crud.get_payments_by_order(db, order.id)
    assert [p.payment_status for p in payments] == [models.FAILED]


def test_multi_line_order_total_is_sum_of_subtotals(db, customer, make_fruit):
    apple = make_fruit("Apple", "1000", 10)
    mango = make_fruit("Mango", "2500", 5)

    result = actions.create_order(db, order_payload(customer, (apple, 2, 1000), (mango, 3, 2500)))

    assert result.success, result.error
    assert result.data.total == Decimal("9500")
    detail = actions.get_order(db, result.data.id).data
    assert sorted(i.subtotal for i in detail.items) == [Decimal("2000"), Decimal("7500")]


def test_failing_line_leaves_nothing_behind(db, customer, make_fruit):
    apple = make_fruit("Apple", "1000", 10)
    banana = make_fruit("Banana", "500", 2)

    result = actions.create_order(db, order_payload(customer, (apple, 3, 1000), (banana, 5, 500)))

    assert not result.success
    assert result.error == "Insufficient stock for Banana"
    db.refresh(apple)
    db.refresh(banana)
    assert apple.stock == 10
    assert banana.stock == 2
    assert count(db, models.Order) == 0
    assert count(db, models.OrderItem) == 0
    assert count(db, models.StockHistory) == 0
    assert count(db, models.Payment) == 0


def test_unknown_fruit_is_reported_as_insufficient_stock(db, customer, make_fruit):
    payload = order_payload(customer, (make_fruit(), 1, 1000))
    payload["order_items"][0]["fruit_id"] = str(uuid.uuid4())

    result = actions.create_order(db, payload)

    assert not result.success
    assert result.error == "Insufficient stock for fruit"


def test_same_fruit_on_two_lines_cannot_oversell(db, customer, make_fruit):
    fruit = make_fruit(stock=10)

    result = actions.create_order(db, order_payload(customer, (fruit, 6, 1000), (fruit, 6, 1000)))

    assert not result.success
    assert result.error.startswith("Insufficient stock")
    db.refresh(fruit)
    assert fruit.stock == 10


def test_validation_errors_are_reported_before_anything_runs(db, customer, make_fruit):
    fruit = make_fruit()

    empty = actions.create_order(db, order_payload(customer))
    assert not empty.success
    assert "order_items" in empty.error

    negative = actions.create_order(db, order_payload(customer, (fruit, -1, 1000)))
    assert not negative.success
    assert "quantity" in negative.error

    bad_method = actions.create_order(db, order_payload(customer, (fruit, 1, 1000), payment="BARTER"))
    assert not bad_method.success
    assert "payment" in bad_method.error
    assert count(db, models.Order) == 0


def test_unknown_customer(db, make_fruit, customer):
    payload = order_payload(customer, (make_fruit(), 1, 1000))
    payload["customer_id"] = str(uuid.uuid4())

    result = actions.create_order(db, payload)

    assert not result.success
    assert result.error == "Customer not found"


def test_order_numbers_are_unique(db, customer, make_fruit):
    fruit = make_fruit(stock=100)
    numbers = {
        actions.create_order(db, order_payload(customer, (fruit, 1, 1000))).data.order_number
        for _ in range(10)
    }
    assert len(numbers) == 10
    for number in numbers:
        assert re.fullmatch(r"ORD-\d+-[a-z0-9]{9}", number)


def test_second_cancel_fails_without_side_effects(db, customer, make_fruit):
    fruit = make_fruit(stock=10)
    order = actions.create_order(db, order_payload(customer, (fruit, 4, 1000))).data
    assert actions.cancel_order(db, order.id).success

    result = actions.cancel_order(db, order.id)

    assert not result.success
    assert result.error == "Order is already cancelled"
    db.refresh(fruit)
    assert fruit.stock == 10
    assert count(db, models.StockHistory) == 2


def test_cancel_missing_order(db):
    assert actions.cancel_order(db, str(uuid.uuid4())).error == "Order not found"
    assert actions.cancel_order(db, "not-an-id").error == "Order not found"


def test_completed_order_can_still_be_cancelled(db, customer, make_fruit):
    fruit = make_fruit(stock=10)
    order = actions.create_order(db, order_payload(customer, (fruit, 3, 1000))).data
    payment = crud.get_latest_payment(db, order.id)
    assert actions.approve_payment(db, payment.id).success

    result = actions.cancel_order(db, order.id)

    assert result.success
    db.refresh(fruit)
    assert fruit.stock == 10
    assert crud.get_latest_payment(db, order.id).payment_status == models.FAILED


def test_stock_is_conserved_across_creates_and_cancels(db, customer, make_fruit):
    apple = make_fruit("Apple", "1000", 20)
    pear = make_fruit("Pear", "1500", 15)
    initial = {apple.id: 20, pear.id: 15}

    orders = []
    for qty in (1, 4, 2, 7):
        result = actions.create_order(db, order_payload(customer, (apple, qty, 1000), (pear, qty, 1500)))
        assert result.success, result.error
        orders.append(result.data)
    actions.cancel_order(db, orders[1].id)
    actions.cancel_order(db, orders[3].id)
    # only 12 pears are left
    assert not actions.create_order(db, order_payload(customer, (apple, 1, 1000), (pear, 13, 1500))).success

    for fruit in (apple, pear):
        db.refresh(fruit)
        assert fruit.stock == initial[fruit.id] + ledger.ledger_balance(db, fruit.id)
    assert apple.stock == 17
    assert pear.stock == 12


def test_client_price_is_used_by_default(db, customer, make_fruit):
    fruit = make_fruit(price="1000")

    result = actions.create_order(db, order_payload(customer, (fruit, 2, 900)))

    assert result.success
    assert result.data.total == Decimal("1800")


def test_catalog_price_enforcement(db, customer, make_fruit, monkeypatch):
    monkeypatch.setattr(crud, "ENFORCE_CATALOG_PRICES", True)
    fruit = make_fruit(price="1000")

    mismatch = actions.create_order(db, order_payload(customer, (fruit, 2, 900)))
    assert not mismatch.success
    assert mismatch.error == "Price changed for Apple"

    assert actions.create_order(db, order_payload(customer, (fruit, 2, 1000))).success


def test_update_order_payment_method(db, customer, make_fruit):
    order = actions.create_order(db, order_payload(customer, (make_fruit(), 1, 1000))).data

    result = actions.update_order(db, {"id": str(order.id), "payment": "TRANSFER"})

    assert result.success
    assert result.data.payment == "TRANSFER"
    assert result.data.status == models.PROCESSING


def test_update_order_to_cancelled_reverses_stock(db, customer, make_fruit):
    fruit = make_fruit(stock=10)
    order = actions.create_order(db, order_payload(customer, (fruit, 5, 1000))).data

    result = actions.update_order(db, {"id": str(order.id), "status": "CANCELLED"})

    assert result.success
    assert result.data.status == models.CANCELLED
    db.refresh(fruit)
    assert fruit.stock == 10

    reopen = actions.update_order(db, {"id": str(order.id), "status": "PROCESSING"})
    assert reopen.error == "Order is already cancelled"


def test_update_missing_order(db):
    result = actions.update_order(db, {"id": str(uuid.uuid4()), "status": "COMPLETED"})
    assert result.error == "Order not found"


def test_get_orders_filters_by_creator(db, customer, user, make_fruit):
    fruit = make_fruit(stock=10)
    actions.create_order(db, order_payload(customer, (fruit, 1, 1000), user=user))
    actions.create_order(db, order_payload(customer, (fruit, 1, 1000)))

    assert len(actions.get_orders(db).data) == 2
    assert len(actions.get_orders(db, str(user.id)).data) == 1


def test_sub_cent_prices_are_rejected(db, customer, make_fruit):
    fruit = make_fruit(price="0.01", stock=10)

    result = actions.create_order(db, order_payload(customer, *[(fruit, 1, "0.005")] * 3))

    assert not result.success
    assert result.error.startswith("order_items.0.price: ")
    assert count(db, models.Order) == 0
    db.refresh(fruit)
    assert fruit.stock == 10


def test_total_and_payment_match_item_subtotals(db, customer, make_fruit):
    fig = make_fruit("Fig", "0.01", 10)
    lime = make_fruit("Lime", "2.35", 10)

    order = actions.create_order(db, order_payload(customer, (fig, 3, "0.01"), (lime, 7, "2.35"))).data

    items = actions.get_order(db, order.id).data.items
    assert order.total == sum(i.subtotal for i in items) == Decimal("16.48")
    assert crud.get_latest_payment(db, order.id).amount_paid == order.total


def test_completed_order_cannot_be_reopened(db, customer, make_fruit):
    fruit = make_fruit(stock=10)
    order = actions.create_order(db, order_payload(customer, (fruit, 3, 1000))).data
    assert actions.approve_payment(db, crud.get_latest_payment(db, order.id).id).success

    reopen = actions.update_order(db, {"id": str(order.id), "status": "PROCESSING"})

    assert reopen.error == "Order is already completed"
    assert crud.get_order(db, order.id).status == models.COMPLETED

    relabel = actions.update_order(db, {"id": str(order.id), "status": "COMPLETED", "payment": "TRANSFER"})
    assert relabel.success
    assert relabel.data.payment == "TRANSFER"

    cancelled = actions.update_order(db, {"id": str(order.id), "status": "CANCELLED"})
    assert cancelled.success
    db.refresh(fruit)
    assert fruit.stock == 10
