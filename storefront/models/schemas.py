"""
Pydantic schemas for request/response validation

Fields are snake_case in Python and camelCase on the wire.
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from storefront.models.order import OrderStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class OrderItemCreate(CamelModel):
    """Schema for one line item of an order request"""
    product_id: str = Field(..., min_length=1, max_length=36, description="Product ID")
    quantity: int = Field(..., gt=0, description="Quantity")
    price: Optional[Decimal] = Field(None, ge=0, description="Unit price seen by the client")
    name: Optional[str] = Field(None, max_length=255)
    image: Optional[str] = None


class OrderCreate(CamelModel):
    """Schema for creating an order"""
    # Emptiness is checked by the service so it maps to a 400
    items: List[OrderItemCreate] = Field(default_factory=list)
    shipping_address: Optional[str] = Field(None, max_length=1000)
    city: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    payment_method: Optional[str] = Field(None, max_length=30)
    note: Optional[str] = None
    total: Optional[Decimal] = Field(None, ge=0, description="Client-declared total (advisory)")


class OrderStatusUpdate(CamelModel):
    """Schema for updating order status"""
    status: OrderStatus


class OrderItemResponse(CamelModel):
    """Schema for order item response"""
    id: str
    order_id: str
    product_id: str
    quantity: int
    price: float
    name: Optional[str] = None
    image: Optional[str] = None


class OrderResponse(CamelModel):
    """Schema for order response"""
    id: str
    user_id: str
    status: OrderStatus
    total: float
    shipping_address: str
    city: Optional[str] = None
    phone: Optional[str] = None
    payment_method: str
    note: Optional[str] = None
    is_paid: Optional[bool] = None
    paid_at: Optional[datetime] = None
    is_delivered: Optional[bool] = None
    delivered_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderCreatedResponse(CamelModel):
    success: bool = True
    message: str = "Order created"
    order_id: str


class OrderEnvelope(CamelModel):
    success: bool = True
    data: OrderResponse


class OrderListEnvelope(CamelModel):
    success: bool = True
    data: List[OrderResponse]


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class PaginatedOrderEnvelope(OrderListEnvelope):
    pagination: Pagination


class StockUpdate(CamelModel):
    """Schema for setting absolute stock"""
    quantity: int = Field(..., ge=0)


class ProductResponse(CamelModel):
    """Schema for product stock view"""
    id: str
    name: str
    price: float
    image: Optional[str] = None
    stock_quantity: int
    in_stock: bool


class ProductEnvelope(CamelModel):
    success: bool = True
    data: ProductResponse


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error: Optional[str] = None
