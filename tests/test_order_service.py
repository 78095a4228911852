"""
Tests for the checkout transaction.

Covers the stock invariant, atomic rollback and the validation order of
OrderService.place_order against a real (SQLite) database.
"""
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from storefront.models.order import Order, OrderItem
from storefront.models.schemas import OrderCreate
from storefront.services import order_service as order_service_module
from storefront.services.errors import (
    InsufficientStockError,
    OrderValidationError,
    UnauthenticatedError,
)
from tests.conftest import count_rows, stock_of


def make_order(*items, **fields):
    return OrderCreate(
        items=[
            {"productId": product_id, "quantity": quantity, **extra}
            for product_id, quantity, extra in (
                item if len(item) == 3 else (*item, {}) for item in items
            )
        ],
        **fields,
    )


class TestPlaceOrder:

    def test_order_created_and_stock_decremented(self, database, session, order_service, seed):
        """
        Given: P1 with 5 units
        When: ordering 3 units
        Then: order is pending, stock is 2 and still in stock
        """
        seed("P1", 5, name="Widget")

        order_id = order_service.place_order(
            session, "U1", make_order(("P1", 3, {"price": 100, "name": "Widget"}), paymentMethod="cod")
        )

        assert stock_of(database, "P1") == (2, True)
        order = order_service.get_order(session, order_id)
        assert order.status == "pending"
        assert order.user_id == "U1"
        assert order.is_paid is False
        assert order.payment_method == "cod"
        assert [(item.product_id, item.quantity, item.name) for item in order.items] == [("P1", 3, "Widget")]

    def test_in_stock_flag_cleared_when_sold_out(self, database, session, order_service, seed):
        seed("P1", 3)

        order_service.place_order(session, "U1", make_order(("P1", 3)))

        assert stock_of(database, "P1") == (0, False)

    def test_insufficient_stock_writes_nothing(self, database, session, order_service, seed):
        seed("P1", 2)

        with pytest.raises(InsufficientStockError) as excinfo:
            order_service.place_order(session, "U1", make_order(("P1", 3)))

        assert excinfo.value.product_id == "P1"
        assert excinfo.value.requested == 3
        assert excinfo.value.available == 2
        assert str(excinfo.value) == "Insufficient stock for product P1"
        assert stock_of(database, "P1") == (2, True)
        assert count_rows(database, Order.__table__) == 0
        assert count_rows(database, OrderItem.__table__) == 0

    def test_one_short_item_rejects_whole_order(self, database, session, order_service, seed):
        seed("P1", 10)
        seed("P2", 1)

        with pytest.raises(InsufficientStockError) as excinfo:
            order_service.place_order(session, "U1", make_order(("P1", 4), ("P2", 2)))

        assert excinfo.value.product_id == "P2"
        assert stock_of(database, "P1") == (10, True)
        assert stock_of(database, "P2") == (1, True)

    def test_repeated_product_lines_share_stock(self, database, session, order_service, seed):
        seed("P1", 4)

        with pytest.raises(InsufficientStockError) as excinfo:
            order_service.place_order(session, "U1", make_order(("P1", 3), ("P1", 2)))

        assert excinfo.value.requested == 5
        assert stock_of(database, "P1") == (4, True)

        order_id = order_service.place_order(session, "U1", make_order(("P1", 3), ("P1", 1)))

        assert stock_of(database, "P1") == (0, False)
        assert sum(item.quantity for item in order_service.get_order(session, order_id).items) == 4

    def test_unknown_product_counts_as_out_of_stock(self, database, session, order_service):
        with pytest.raises(InsufficientStockError) as excinfo:
            order_service.place_order(session, "U1", make_order(("missing", 1)))

        assert excinfo.value.product_id == "missing"
        assert excinfo.value.available == 0
        assert count_rows(database, Order.__table__) == 0

    def test_failure_after_writes_rolls_back_everything(
        self, database, session, order_service, seed, monkeypatch
    ):
        """
        Given: two products with stock
        When: the second stock update fails with a database error
        Then: no order rows exist and both stocks are unchanged
        """
        seed("P1", 5)
        seed("P2", 5)

        real_write_stock = order_service_module.write_stock
        calls = []

        def failing_write_stock(db, capabilities, product_id, quantity):
            calls.append(product_id)
            if len(calls) == 2:
                raise OperationalError("UPDATE products", {}, Exception("lock wait timeout"))
            return real_write_stock(db, capabilities, product_id, quantity)

        monkeypatch.setattr(order_service_module, "write_stock", failing_write_stock)

        with pytest.raises(OperationalError):
            order_service.place_order(session, "U1", make_order(("P1", 2), ("P2", 2)))

        assert calls == ["P1", "P2"]
        assert count_rows(database, Order.__table__) == 0
        assert count_rows(database, OrderItem.__table__) == 0
        assert stock_of(database, "P1") == (5, True)
        assert stock_of(database, "P2") == (5, True)


class TestValidation:

    def test_empty_items_rejected(self, session, order_service):
        with pytest.raises(OrderValidationError):
            order_service.place_order(session, "U1", OrderCreate(items=[]))

    def test_empty_items_rejected_before_authentication(self, session, order_service):
        with pytest.raises(OrderValidationError):
            order_service.place_order(session, None, OrderCreate(items=[]))

    def test_missing_user_rejected(self, database, session, order_service, seed):
        seed("P1", 5)

        with pytest.raises(UnauthenticatedError):
            order_service.place_order(session, None, make_order(("P1", 1)))

        assert stock_of(database, "P1") == (5, True)

    def test_non_positive_quantity_is_invalid(self):
        with pytest.raises(ValueError):
            make_order(("P1", 0))


class TestPricing:

    def test_total_is_computed_from_catalog_prices(self, session, order_service, seed):
        seed("P1", 10, price="100.00")
        seed("P2", 10, price="25.50")

        order_id = order_service.place_order(
            session,
            "U1",
            make_order(("P1", 2, {"price": 1}), ("P2", 2, {"price": 1}), total=2),
        )

        order = order_service.get_order(session, order_id)
        assert order.total == Decimal("251.00")
        assert sorted(item.price for item in order.items) == [Decimal("25.50"), Decimal("100.00")]

    def test_snapshot_falls_back_to_catalog(self, session, order_service, seed):
        seed("P1", 10, name="RTX 4070", image="rtx.png")

        order_id = order_service.place_order(session, "U1", make_order(("P1", 1)))

        item = order_service.get_order(session, order_id).items[0]
        assert item.name == "RTX 4070"
        assert item.image == "rtx.png"

    def test_client_snapshot_is_kept(self, session, order_service, seed):
        seed("P1", 10, name="RTX 4070")

        order_id = order_service.place_order(
            session, "U1", make_order(("P1", 1, {"name": "Graphics card", "image": "gc.png"}))
        )

        item = order_service.get_order(session, order_id).items[0]
        assert (item.name, item.image) == ("Graphics card", "gc.png")

    def test_shipping_fields_stored(self, session, order_service, seed):
        seed("P1", 10)

        order_id = order_service.place_order(
            session,
            "U1",
            make_order(("P1", 1), shippingAddress="12 Main St", city="Hanoi", phone="0900", paymentMethod="card"),
        )

        order = order_service.get_order(session, order_id)
        assert (order.shipping_address, order.city, order.phone, order.payment_method) == (
            "12 Main St", "Hanoi", "0900", "card"
        )
