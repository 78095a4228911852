"""
Typed row shapes read back from the order tables

The order_items layout is decided once by SchemaCapabilities; item_row_from
is the only place that branches on it.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Union

from storefront.db.schema import ItemLayout


@dataclass(frozen=True)
class ExtendedItemRow:
    """order_items row with name and/or image snapshot columns; a missing
    column or NULL value falls back to the catalog"""
    id: str
    order_id: str
    product_id: str
    quantity: int
    price: Decimal
    snapshot_name: Optional[str]
    snapshot_image: Optional[str]
    catalog_name: Optional[str]
    catalog_image: Optional[str]
    created_at: Optional[datetime] = None
    
    @property
    def name(self) -> Optional[str]:
        return self.snapshot_name if self.snapshot_name is not None else self.catalog_name
    
    @property
    def image(self) -> Optional[str]:
        return self.snapshot_image if self.snapshot_image is not None else self.catalog_image


@dataclass(frozen=True)
class LegacyItemRow:
    """order_items row without snapshot columns, named from the catalog"""
    id: str
    order_id: str
    product_id: str
    quantity: int
    price: Decimal
    catalog_name: Optional[str]
    catalog_image: Optional[str]
    created_at: Optional[datetime] = None
    
    @property
    def name(self) -> Optional[str]:
        return self.catalog_name
    
    @property
    def image(self) -> Optional[str]:
        return self.catalog_image


ItemRow = Union[ExtendedItemRow, LegacyItemRow]


def item_row_from(row: Mapping[str, Any], layout: ItemLayout) -> ItemRow:
    """Build the row shape matching the table layout"""
    common = dict(
        id=str(row["id"]),
        order_id=str(row["order_id"]),
        product_id=str(row["product_id"]),
        quantity=int(row["quantity"]),
        price=Decimal(str(row["price"])),
        catalog_name=row.get("catalog_name"),
        catalog_image=row.get("catalog_image"),
        created_at=row.get("created_at"),
    )
    if layout is ItemLayout.EXTENDED:
        return ExtendedItemRow(
            snapshot_name=row.get("name"),
            snapshot_image=row.get("image"),
            **common,
        )
    return LegacyItemRow(**common)


@dataclass
class OrderRow:
    """Order header; optional columns missing from the table read as None"""
    id: str
    user_id: str
    total: Decimal
    status: str
    shipping_address: str
    payment_method: str
    created_at: Optional[datetime]
    city: Optional[str] = None
    phone: Optional[str] = None
    note: Optional[str] = None
    is_paid: Optional[bool] = None
    paid_at: Optional[datetime] = None
    is_delivered: Optional[bool] = None
    delivered_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[ItemRow] = field(default_factory=list)
    
    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "OrderRow":
        is_paid = row.get("is_paid")
        is_delivered = row.get("is_delivered")
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            total=Decimal(str(row["total"])),
            status=row["status"],
            shipping_address=row["shipping_address"] or "",
            payment_method=row["payment_method"],
            created_at=row.get("created_at"),
            city=row.get("city"),
            phone=row.get("phone"),
            note=row.get("note"),
            is_paid=None if is_paid is None else bool(is_paid),
            paid_at=row.get("paid_at"),
            is_delivered=None if is_delivered is None else bool(is_delivered),
            delivered_at=row.get("delivered_at"),
            updated_at=row.get("updated_at"),
        )
