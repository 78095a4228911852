"""
Schema capability detection

Deployments created by older migrations lack some optional columns
(orders.city/phone/is_paid, order_items.name/image, ...). The columns are
introspected once at startup and the resulting SchemaCapabilities is handed
to every write and read, so no statement ever names a column that is not
there.
"""
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet
from sqlalchemy import inspect
from sqlalchemy.engine import Engine
import logging

from storefront.services.errors import SchemaMismatchError

logger = logging.getLogger(__name__)

ORDER_REQUIRED = frozenset({
    "id", "user_id", "total", "status", "shipping_address", "payment_method", "created_at",
})
ORDER_OPTIONAL = frozenset({
    "city", "phone", "note", "is_paid", "paid_at", "is_delivered", "delivered_at", "updated_at",
})

ITEM_REQUIRED = frozenset({"id", "order_id", "product_id", "quantity", "price"})
ITEM_SNAPSHOT = frozenset({"name", "image"})
ITEM_OPTIONAL = frozenset({"created_at", "updated_at"})

PRODUCT_REQUIRED = frozenset({"id", "name", "price", "stock_quantity"})
PRODUCT_OPTIONAL = frozenset({"image", "in_stock", "updated_at"})


class ItemLayout(str, Enum):
    """Shape of the order_items table"""
    EXTENDED = "extended"  # has a name and/or image snapshot column
    LEGACY = "legacy"      # snapshot lives only in the product catalog


@dataclass(frozen=True)
class SchemaCapabilities:
    """Optional columns available in this deployment"""
    order_columns: FrozenSet[str]
    item_layout: ItemLayout
    item_columns: FrozenSet[str]
    product_columns: FrozenSet[str]
    
    def order_has(self, column: str) -> bool:
        return column in self.order_columns
    
    def item_has(self, column: str) -> bool:
        return column in self.item_columns
    
    def product_has(self, column: str) -> bool:
        return column in self.product_columns
    
    @classmethod
    def full(cls) -> "SchemaCapabilities":
        """Capabilities of a schema created from the current models"""
        return cls(
            order_columns=ORDER_REQUIRED | ORDER_OPTIONAL,
            item_layout=ItemLayout.EXTENDED,
            item_columns=ITEM_REQUIRED | ITEM_SNAPSHOT | ITEM_OPTIONAL,
            product_columns=PRODUCT_REQUIRED | PRODUCT_OPTIONAL,
        )


def _columns(inspector, table: str, required: FrozenSet[str], known: FrozenSet[str]) -> FrozenSet[str]:
    present = {column["name"] for column in inspector.get_columns(table)}
    missing = required - present
    if missing:
        raise SchemaMismatchError(table, missing)
    return frozenset(present & known)


def detect_capabilities(engine: Engine) -> SchemaCapabilities:
    """Introspect the order tables once and describe what they support"""
    inspector = inspect(engine)
    
    order_columns = _columns(inspector, "orders", ORDER_REQUIRED, ORDER_REQUIRED | ORDER_OPTIONAL)
    item_columns = _columns(
        inspector, "order_items", ITEM_REQUIRED, ITEM_REQUIRED | ITEM_SNAPSHOT | ITEM_OPTIONAL
    )
    product_columns = _columns(
        inspector, "products", PRODUCT_REQUIRED, PRODUCT_REQUIRED | PRODUCT_OPTIONAL
    )
    
    # Each snapshot column is written on its own; the table is legacy only
    # when it has neither
    if item_columns & ITEM_SNAPSHOT:
        item_layout = ItemLayout.EXTENDED
    else:
        item_layout = ItemLayout.LEGACY
    
    capabilities = SchemaCapabilities(
        order_columns=order_columns,
        item_layout=item_layout,
        item_columns=item_columns,
        product_columns=product_columns,
    )
    
    missing_optional = sorted(ORDER_OPTIONAL - order_columns)
    if missing_optional:
        logger.warning(f"orders table lacks optional columns: {', '.join(missing_optional)}")
    if item_layout is ItemLayout.LEGACY:
        logger.warning("order_items table has no name/image columns, using catalog snapshots")
    else:
        for column in sorted(ITEM_SNAPSHOT - item_columns):
            logger.warning(f"order_items table lacks {column}, using the catalog value")
    logger.info(f"Schema capabilities detected: item_layout={item_layout.value}")
    
    return capabilities
