"""
Order business logic

place_order is the checkout transaction: lock the product rows, verify stock,
write the order and its items, decrement stock, commit. Any failure rolls the
whole transaction back.
"""
from collections import defaultdict
from decimal import Decimal
from sqlalchemy import func, insert, select, update
from sqlalchemy.orm import Session
from typing import Dict, List, Optional, Tuple
from uuid import uuid4
from opentelemetry import trace
import logging

from storefront.db.schema import SchemaCapabilities
from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.models.product import Product
from storefront.models.rows import OrderRow, item_row_from
from storefront.models.schemas import OrderCreate
from storefront.services.errors import (
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    OrderValidationError,
    UnauthenticatedError,
)
from storefront.services.product_service import LockedProduct, lock_products, write_stock

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

orders = Order.__table__
order_items = OrderItem.__table__
products = Product.__table__


class OrderService:
    """Order service for business logic"""

    def __init__(self, capabilities: SchemaCapabilities, default_payment_method: str = "cod"):
        self.capabilities = capabilities
        self.default_payment_method = default_payment_method

    # Checkout

    def place_order(self, db: Session, user_id: Optional[str], order_data: OrderCreate) -> str:
        """
        Create an order atomically and return its id

        Process:
        1. Lock every referenced product row (ascending id order)
        2. Check requested quantities against the locked stock
        3. Insert the order row
        4. Insert each item and decrement its product's stock
        5. Commit; roll back everything on any failure
        """
        if not order_data.items:
            raise OrderValidationError("Items are required")
        if not user_id:
            raise UnauthenticatedError()

        with tracer.start_as_current_span("order_service.place_order") as span:
            span.set_attribute("user.id", user_id)
            span.set_attribute("items.count", len(order_data.items))

            logger.info(f"Creating order for user {user_id} with {len(order_data.items)} items")

            # Repeated lines for one product draw on the same stock
            requested: Dict[str, int] = defaultdict(int)
            for item in order_data.items:
                requested[item.product_id] += item.quantity

            try:
                locked = lock_products(db, self.capabilities, requested.keys())
                self._check_stock(requested, locked)

                total = sum(
                    (locked[item.product_id].price * item.quantity for item in order_data.items),
                    Decimal("0"),
                )
                self._compare_client_prices(order_data, locked, total)
                span.set_attribute("order.total", float(total))

                order_id = str(uuid4())
                db.execute(insert(orders).values(**self._order_values(order_id, user_id, total, order_data)))

                remaining = {product_id: product.stock_quantity for product_id, product in locked.items()}
                for item in order_data.items:
                    product = locked[item.product_id]
                    db.execute(insert(order_items).values(**self._item_values(order_id, item, product)))
                    remaining[item.product_id] = write_stock(
                        db, self.capabilities, item.product_id, remaining[item.product_id] - item.quantity
                    )

                db.commit()
            except InsufficientStockError as e:
                db.rollback()
                span.set_attribute("order.rejected", True)
                logger.warning(
                    f"Order rejected for user {user_id}: product {e.product_id} "
                    f"requested {e.requested}, available {e.available}"
                )
                raise
            except Exception as e:
                db.rollback()
                span.record_exception(e)
                logger.error(f"Order creation failed for user {user_id}: {e}", exc_info=True)
                raise

            span.set_attribute("order.id", order_id)
            logger.info(f"Order {order_id} created successfully, total {total}")

            return order_id

    @staticmethod
    def _check_stock(requested: Dict[str, int], locked: Dict[str, LockedProduct]):
        for product_id in sorted(requested):
            # A product that no longer exists has nothing to sell
            available = locked[product_id].stock_quantity if product_id in locked else 0
            if requested[product_id] > available:
                raise InsufficientStockError(product_id, requested[product_id], available)

    @staticmethod
    def _compare_client_prices(order_data: OrderCreate, locked: Dict[str, LockedProduct], total: Decimal):
        # The catalog price is authoritative; client values are only checked
        for item in order_data.items:
            if item.price is not None and item.price != locked[item.product_id].price:
                logger.warning(
                    f"Client price {item.price} for product {item.product_id} differs "
                    f"from catalog price {locked[item.product_id].price}"
                )
        if order_data.total is not None and order_data.total != total:
            logger.warning(f"Client total {order_data.total} differs from computed total {total}")

    def _order_values(self, order_id: str, user_id: str, total: Decimal, order_data: OrderCreate) -> dict:
        caps = self.capabilities
        values = {
            "id": order_id,
            "user_id": user_id,
            "total": total,
            "status": OrderStatus.PENDING.value,
            "shipping_address": order_data.shipping_address or "",
            "payment_method": order_data.payment_method or self.default_payment_method,
            "created_at": func.now(),
        }
        optional = {
            "city": order_data.city or "",
            "phone": order_data.phone or "",
            "note": order_data.note,
            "is_paid": False,
            "is_delivered": False,
            "updated_at": func.now(),
        }
        for column, value in optional.items():
            if caps.order_has(column):
                values[column] = value
        return values

    def _item_values(self, order_id: str, item, product: LockedProduct) -> dict:
        values = {
            "id": str(uuid4()),
            "order_id": order_id,
            "product_id": item.product_id,
            "quantity": item.quantity,
            "price": product.price,
        }
        if self.capabilities.item_has("name"):
            values["name"] = item.name or product.name
        if self.capabilities.item_has("image"):
            values["image"] = item.image or product.image
        for column in ("created_at", "updated_at"):
            if self.capabilities.item_has(column):
                values[column] = func.now()
        return values

    # Reads

    def _order_columns(self):
        return [orders.c[name] for name in sorted(self.capabilities.order_columns)]

    def _load_items(self, db: Session, order_rows: List[OrderRow]) -> List[OrderRow]:
        if not order_rows:
            return order_rows

        caps = self.capabilities
        columns = [order_items.c[name] for name in sorted(caps.item_columns)]
        columns.append(products.c.name.label("catalog_name"))
        if caps.product_has("image"):
            columns.append(products.c.image.label("catalog_image"))

        by_id = {order.id: order for order in order_rows}
        rows = db.execute(
            select(*columns)
            .select_from(order_items.outerjoin(products, order_items.c.product_id == products.c.id))
            .where(order_items.c.order_id.in_(list(by_id)))
            .order_by(order_items.c.order_id, order_items.c.product_id)
        ).mappings().all()

        for row in rows:
            item = item_row_from(row, caps.item_layout)
            by_id[item.order_id].items.append(item)

        return order_rows

    def get_order(self, db: Session, order_id: str) -> OrderRow:
        """Get order with its items"""
        with tracer.start_as_current_span("order_service.get_order") as span:
            span.set_attribute("order.id", order_id)

            row = db.execute(
                select(*self._order_columns()).where(orders.c.id == order_id)
            ).mappings().first()
            if row is None:
                raise NotFoundError("Order not found")

            return self._load_items(db, [OrderRow.from_mapping(row)])[0]

    def get_order_for_user(self, db: Session, order_id: str, user_id: str, is_admin: bool = False) -> OrderRow:
        """Get order if the user owns it (admins may read any order)"""
        order = self.get_order(db, order_id)
        if order.user_id != user_id and not is_admin:
            raise ForbiddenError()
        return order

    def list_user_orders(self, db: Session, user_id: str) -> List[OrderRow]:
        """Get a user's orders, newest first"""
        with tracer.start_as_current_span("order_service.list_user_orders") as span:
            span.set_attribute("user.id", user_id)

            rows = db.execute(
                select(*self._order_columns())
                .where(orders.c.user_id == user_id)
                .order_by(orders.c.created_at.desc())
            ).mappings().all()

            return self._load_items(db, [OrderRow.from_mapping(row) for row in rows])

    def list_orders(
        self,
        db: Session,
        skip: int = 0,
        limit: int = 20,
        status: Optional[OrderStatus] = None
    ) -> Tuple[List[OrderRow], int]:
        """Get all orders with pagination and optional status filter"""
        with tracer.start_as_current_span("order_service.list_orders") as span:
            query = select(*self._order_columns())
            count_query = select(func.count()).select_from(orders)

            if status:
                query = query.where(orders.c.status == status.value)
                count_query = count_query.where(orders.c.status == status.value)
                span.set_attribute("filter.status", status.value)

            total = db.execute(count_query).scalar_one()
            rows = db.execute(
                query.order_by(orders.c.created_at.desc()).offset(skip).limit(limit)
            ).mappings().all()

            span.set_attribute("orders.total", total)
            span.set_attribute("orders.returned", len(rows))

            return self._load_items(db, [OrderRow.from_mapping(row) for row in rows]), total

    # State changes

    def _lock_order(self, db: Session, order_id: str) -> OrderRow:
        row = db.execute(
            select(*self._order_columns()).where(orders.c.id == order_id).with_for_update()
        ).mappings().first()
        if row is None:
            raise NotFoundError("Order not found")
        return OrderRow.from_mapping(row)

    def _restock(self, db: Session, order_id: str):
        """Give an order's quantities back to the catalog under row locks"""
        returned: Dict[str, int] = defaultdict(int)
        for product_id, quantity in db.execute(
            select(order_items.c.product_id, order_items.c.quantity).where(order_items.c.order_id == order_id)
        ):
            returned[str(product_id)] += int(quantity)

        locked = lock_products(db, self.capabilities, returned.keys())
        for product_id in sorted(returned):
            if product_id not in locked:
                logger.warning(f"Product {product_id} of order {order_id} no longer exists, not restocked")
                continue
            write_stock(
                db, self.capabilities, product_id, locked[product_id].stock_quantity + returned[product_id]
            )

    def _write_status(self, db: Session, order_id: str, status: OrderStatus):
        caps = self.capabilities
        values = {"status": status.value}
        if caps.order_has("updated_at"):
            values["updated_at"] = func.now()
        if status in (OrderStatus.DELIVERED, OrderStatus.COMPLETED) and caps.order_has("is_delivered"):
            values["is_delivered"] = True
            if caps.order_has("delivered_at"):
                values["delivered_at"] = func.now()
        db.execute(update(orders).where(orders.c.id == order_id).values(**values))

    def update_order_status(self, db: Session, order_id: str, status: OrderStatus) -> OrderRow:
        """Update order status; cancelling returns the items to stock"""
        with tracer.start_as_current_span("order_service.update_status") as span:
            span.set_attribute("order.id", order_id)
            span.set_attribute("status.new", status.value)

            try:
                order = self._lock_order(db, order_id)
                old_status = order.status

                if old_status == OrderStatus.CANCELLED.value:
                    if status != OrderStatus.CANCELLED:
                        raise OrderValidationError("Cancelled orders cannot be reopened")
                else:
                    if status == OrderStatus.CANCELLED:
                        self._restock(db, order_id)
                    self._write_status(db, order_id, status)

                db.commit()
            except Exception:
                db.rollback()
                raise

            span.set_attribute("status.old", old_status)
            logger.info(f"Order {order_id} status updated: {old_status} -> {status.value}")

            return self.get_order(db, order_id)

    def cancel_own_order(self, db: Session, user_id: Optional[str], order_id: str) -> OrderRow:
        """Cancel a pending order on behalf of its owner"""
        if not user_id:
            raise UnauthenticatedError()

        with tracer.start_as_current_span("order_service.cancel_order") as span:
            span.set_attribute("order.id", order_id)
            span.set_attribute("user.id", user_id)

            try:
                order = self._lock_order(db, order_id)
                if order.user_id != user_id:
                    raise ForbiddenError()
                if order.status != OrderStatus.PENDING.value:
                    raise OrderValidationError("Order can only be cancelled while in pending status")

                self._restock(db, order_id)
                self._write_status(db, order_id, OrderStatus.CANCELLED)
                db.commit()
            except Exception:
                db.rollback()
                raise

            logger.info(f"Order {order_id} cancelled by its owner")
            return self.get_order(db, order_id)

    def mark_paid(self, db: Session, order_id: str) -> OrderRow:
        """Mark order as paid"""
        caps = self.capabilities
        if not caps.order_has("is_paid"):
            raise OrderValidationError("Payment status is not recorded by this store")

        with tracer.start_as_current_span("order_service.mark_paid") as span:
            span.set_attribute("order.id", order_id)

            try:
                self._lock_order(db, order_id)
                values = {"is_paid": True}
                if caps.order_has("paid_at"):
                    values["paid_at"] = func.now()
                if caps.order_has("updated_at"):
                    values["updated_at"] = func.now()
                db.execute(update(orders).where(orders.c.id == order_id).values(**values))
                db.commit()
            except Exception:
                db.rollback()
                raise

            logger.info(f"Order {order_id} marked as paid")
            return self.get_order(db, order_id)
