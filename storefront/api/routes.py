"""
FastAPI routes for the storefront order service
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Optional
import logging
import math

from storefront.api.deps import (
    get_capabilities,
    get_current_user,
    get_order_service,
    require_admin,
    require_user,
)
from storefront.db.database import get_db
from storefront.db.schema import SchemaCapabilities
from storefront.models.order import OrderStatus
from storefront.models.schemas import (
    ErrorResponse,
    OrderCreate,
    OrderCreatedResponse,
    OrderEnvelope,
    OrderListEnvelope,
    OrderResponse,
    OrderStatusUpdate,
    PaginatedOrderEnvelope,
    Pagination,
    ProductEnvelope,
    ProductResponse,
    StockUpdate,
)
from storefront.services.auth import CurrentUser
from storefront.services.errors import DatabaseFailureError
from storefront.services.order_service import OrderService
from storefront.services.product_service import ProductService

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["orders"],
    responses={
        code: {"model": ErrorResponse}
        for code in (400, 401, 403, 404, 500)
    }
)


@router.post(
    "/orders",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED
)
def create_order(
    order: OrderCreate,
    user: Optional[CurrentUser] = Depends(get_current_user),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """
    Create a new order

    This endpoint:
    1. Locks the ordered products and checks stock
    2. Creates the order and its items
    3. Decrements product stock

    - **items**: line items `{productId, quantity, price?, name?, image?}` (at least one)
    - **shippingAddress**, **city**, **phone**, **paymentMethod**, **note**: optional
    - **total**: client-declared total, checked against the computed one
    """
    try:
        order_id = order_service.place_order(db, user.id if user else None, order)
    except SQLAlchemyError as e:
        raise DatabaseFailureError("Error creating order", detail=str(e)) from e

    return OrderCreatedResponse(order_id=order_id)


@router.get("/orders/my-orders", response_model=OrderListEnvelope)
@router.get("/orders/history", response_model=OrderListEnvelope)
def get_my_orders(
    user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """List the current user's orders, newest first"""
    orders = order_service.list_user_orders(db, user.id)
    return OrderListEnvelope(data=[OrderResponse.model_validate(o) for o in orders])


@router.get("/orders", response_model=PaginatedOrderEnvelope)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None, description="Filter by status"),
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """List all orders (admin)"""
    logger.info(f"Listing orders: page={page}, limit={limit}, status={status}")

    orders, total = order_service.list_orders(db, skip=(page - 1) * limit, limit=limit, status=status)

    return PaginatedOrderEnvelope(
        data=[OrderResponse.model_validate(o) for o in orders],
        pagination=Pagination(total=total, page=page, limit=limit, pages=math.ceil(total / limit))
    )


@router.get("/orders/{order_id}", response_model=OrderEnvelope)
def get_order(
    order_id: str,
    user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """Get an order (owner or admin)"""
    order = order_service.get_order_for_user(db, order_id, user.id, is_admin=user.is_admin)
    return OrderEnvelope(data=OrderResponse.model_validate(order))


@router.put("/orders/{order_id}/status", response_model=OrderEnvelope)
def update_order_status(
    order_id: str,
    status_update: OrderStatusUpdate,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """
    Update order status (admin)

    Moving an order to `cancelled` returns its items to stock.
    """
    logger.info(f"Updating order {order_id} status to {status_update.status.value}")
    order = order_service.update_order_status(db, order_id, status_update.status)
    return OrderEnvelope(data=OrderResponse.model_validate(order))


@router.put("/orders/{order_id}/pay", response_model=OrderEnvelope)
def mark_order_paid(
    order_id: str,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """Mark an order as paid (admin)"""
    order = order_service.mark_paid(db, order_id)
    return OrderEnvelope(data=OrderResponse.model_validate(order))


@router.put("/orders/{order_id}/cancel", response_model=OrderEnvelope)
def cancel_order(
    order_id: str,
    user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """Cancel one of your own pending orders"""
    order = order_service.cancel_own_order(db, user.id, order_id)
    return OrderEnvelope(data=OrderResponse.model_validate(order))


@router.get("/products/{product_id}", response_model=ProductEnvelope, tags=["products"])
def get_product(
    product_id: str,
    db: Session = Depends(get_db),
    capabilities: SchemaCapabilities = Depends(get_capabilities)
):
    """Get a product's stock"""
    product = ProductService.get_product(db, capabilities, product_id)
    return ProductEnvelope(data=ProductResponse.model_validate(product))


@router.put("/products/{product_id}/stock", response_model=ProductEnvelope, tags=["products"])
def set_product_stock(
    product_id: str,
    stock: StockUpdate,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
    capabilities: SchemaCapabilities = Depends(get_capabilities)
):
    """Set a product's absolute stock quantity (admin)"""
    product = ProductService.set_stock(db, capabilities, product_id, stock.quantity)
    return ProductEnvelope(data=ProductResponse.model_validate(product))
