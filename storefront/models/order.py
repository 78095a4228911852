"""
Order database models

These declare the full schema used for fresh installs. Older deployments may
lack some optional columns; see storefront.db.schema.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.sql import func
from storefront.db.database import Base
import enum


class OrderStatus(str, enum.Enum):
    """Order status enum"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Order(Base):
    """Order model"""
    __tablename__ = "orders"
    
    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), nullable=False, index=True)
    total = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, server_default=OrderStatus.PENDING.value)
    
    shipping_address = Column(Text, nullable=False, server_default="")
    city = Column(String(100))
    phone = Column(String(30))
    payment_method = Column(String(30), nullable=False, server_default="cod")
    note = Column(Text)
    
    is_paid = Column(Boolean, nullable=False, server_default="0")
    paid_at = Column(DateTime(timezone=True))
    is_delivered = Column(Boolean, nullable=False, server_default="0")
    delivered_at = Column(DateTime(timezone=True))
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
    
    def __repr__(self):
        return f"<Order(id={self.id}, status={self.status}, total={self.total})>"


class OrderItem(Base):
    """Order item model"""
    __tablename__ = "order_items"
    
    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    name = Column(String(255))
    image = Column(Text)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
    
    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, qty={self.quantity})>"
