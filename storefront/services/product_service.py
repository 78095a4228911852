"""
Product catalog stock access

Every path that changes products.stock_quantity goes through lock_products
and write_stock so they all follow the same locking order.
"""
from dataclasses import dataclass
from decimal import Decimal
from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import func
from typing import Dict, Iterable, Optional
from opentelemetry import trace
import logging

from storefront.db.schema import SchemaCapabilities
from storefront.models.product import Product
from storefront.services.errors import NotFoundError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

products = Product.__table__


@dataclass(frozen=True)
class LockedProduct:
    """Catalog row read under a row lock"""
    id: str
    name: str
    price: Decimal
    image: Optional[str]
    stock_quantity: int


def _catalog_columns(capabilities: SchemaCapabilities):
    columns = [products.c.id, products.c.name, products.c.price, products.c.stock_quantity]
    if capabilities.product_has("image"):
        columns.append(products.c.image)
    return columns


def lock_products(
    db: Session,
    capabilities: SchemaCapabilities,
    product_ids: Iterable[str]
) -> Dict[str, LockedProduct]:
    """
    Read each product with SELECT ... FOR UPDATE, in ascending id order
    
    Unknown ids are absent from the result. The locks are held until the
    caller's transaction ends.
    """
    locked = {}
    for product_id in sorted(set(product_ids)):
        row = db.execute(
            select(*_catalog_columns(capabilities))
            .where(products.c.id == product_id)
            .with_for_update()
        ).mappings().first()
        
        if row is None:
            logger.debug(f"Product {product_id} not found while locking")
            continue
        
        locked[product_id] = LockedProduct(
            id=str(row["id"]),
            name=row["name"],
            price=Decimal(str(row["price"])),
            image=row.get("image"),
            stock_quantity=int(row["stock_quantity"] or 0),
        )
        logger.debug(f"Locked product {product_id} with stock {locked[product_id].stock_quantity}")
    
    return locked


def write_stock(db: Session, capabilities: SchemaCapabilities, product_id: str, quantity: int):
    """Store a new stock quantity (clamped at zero) and the matching in_stock flag"""
    quantity = max(0, quantity)
    values = {"stock_quantity": quantity}
    if capabilities.product_has("in_stock"):
        values["in_stock"] = quantity > 0
    if capabilities.product_has("updated_at"):
        values["updated_at"] = func.now()
    
    db.execute(update(products).where(products.c.id == product_id).values(**values))
    return quantity


class ProductService:
    """Product service for stock reads and admin stock changes"""
    
    @staticmethod
    def get_product(db: Session, capabilities: SchemaCapabilities, product_id: str) -> dict:
        """Get product stock view by ID"""
        with tracer.start_as_current_span("product_service.get_product") as span:
            span.set_attribute("product.id", product_id)
            
            columns = _catalog_columns(capabilities)
            if capabilities.product_has("in_stock"):
                columns.append(products.c.in_stock)
            
            row = db.execute(select(*columns).where(products.c.id == product_id)).mappings().first()
            if row is None:
                raise NotFoundError(f"Product {product_id} not found")
            
            stock = int(row["stock_quantity"] or 0)
            in_stock = row.get("in_stock")
            return {
                "id": str(row["id"]),
                "name": row["name"],
                "price": float(row["price"]),
                "image": row.get("image"),
                "stock_quantity": stock,
                "in_stock": bool(in_stock) if in_stock is not None else stock > 0,
            }
    
    @staticmethod
    def set_stock(db: Session, capabilities: SchemaCapabilities, product_id: str, quantity: int) -> dict:
        """Set absolute stock quantity under the product row lock"""
        with tracer.start_as_current_span("product_service.set_stock") as span:
            span.set_attribute("product.id", product_id)
            span.set_attribute("stock.new", quantity)
            
            try:
                locked = lock_products(db, capabilities, [product_id])
                if product_id not in locked:
                    raise NotFoundError(f"Product {product_id} not found")
                
                write_stock(db, capabilities, product_id, quantity)
                db.commit()
            except Exception:
                db.rollback()
                raise
            
            logger.info(
                f"Stock for product {product_id} set: "
                f"{locked[product_id].stock_quantity} -> {quantity}"
            )
            return ProductService.get_product(db, capabilities, product_id)
