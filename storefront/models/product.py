"""
Product catalog table (only the columns the order flow touches)
"""
from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from storefront.db.database import Base


class Product(Base):
    """Product model"""
    __tablename__ = "products"
    
    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    image = Column(Text)
    stock_quantity = Column(Integer, nullable=False, server_default="0")
    in_stock = Column(Boolean, nullable=False, server_default="0")
    
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
    
    def __repr__(self):
        return f"<Product(id={self.id}, stock={self.stock_quantity})>"
