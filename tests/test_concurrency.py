"""
Concurrent checkouts against the same product.

Each worker uses its own session; the row lock (BEGIN IMMEDIATE on SQLite)
must make the second checkout see the already-decremented stock.
"""
import threading

from storefront.models.order import Order
from storefront.models.schemas import OrderCreate
from storefront.services.errors import InsufficientStockError
from tests.conftest import count_rows, stock_of


def race(database, order_service, requests):
    barrier = threading.Barrier(len(requests))
    results = {}

    def worker(user_id, order):
        db = database.session()
        try:
            barrier.wait()
            results[user_id] = order_service.place_order(db, user_id, order)
        except InsufficientStockError as e:
            results[user_id] = e
        finally:
            db.close()

    threads = [threading.Thread(target=worker, args=request) for request in requests]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results


def test_last_units_sold_exactly_once(database, order_service, seed):
    seed("P1", 3)
    order = OrderCreate(items=[{"productId": "P1", "quantity": 3}])

    results = race(database, order_service, [("U1", order), ("U2", order)])

    failures = [r for r in results.values() if isinstance(r, InsufficientStockError)]
    successes = [r for r in results.values() if isinstance(r, str)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert failures[0].product_id == "P1"
    assert failures[0].available == 0
    assert stock_of(database, "P1") == (0, False)
    assert count_rows(database, Order.__table__) == 1


def test_orders_fitting_stock_all_succeed(database, order_service, seed):
    seed("P1", 10)
    seed("P2", 10)
    requests = [
        ("U1", OrderCreate(items=[{"productId": "P1", "quantity": 2}, {"productId": "P2", "quantity": 1}])),
        ("U2", OrderCreate(items=[{"productId": "P2", "quantity": 3}, {"productId": "P1", "quantity": 4}])),
        ("U3", OrderCreate(items=[{"productId": "P1", "quantity": 1}])),
    ]

    results = race(database, order_service, requests)

    assert all(isinstance(r, str) for r in results.values())
    assert stock_of(database, "P1") == (3, True)
    assert stock_of(database, "P2") == (6, True)
