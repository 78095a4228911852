"""FastAPI dependencies shared by the routes"""
from fastapi import Depends, Header, Request
from typing import Optional

from storefront.config import Settings
from storefront.db.schema import SchemaCapabilities
from storefront.services.auth import CurrentUser, decode_access_token
from storefront.services.errors import ForbiddenError, UnauthenticatedError
from storefront.services.order_service import OrderService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_capabilities(request: Request) -> SchemaCapabilities:
    return request.app.state.capabilities


def get_order_service(request: Request) -> OrderService:
    """Dependency for Order Service (built at startup)"""
    return request.app.state.order_service


def get_current_user(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings)
) -> Optional[CurrentUser]:
    """User from the bearer token, None when absent or invalid"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return decode_access_token(token.strip(), settings.jwt_secret, settings.jwt_algorithm)


def require_user(user: Optional[CurrentUser] = Depends(get_current_user)) -> CurrentUser:
    if user is None:
        raise UnauthenticatedError("Access token required")
    return user


def require_admin(user: CurrentUser = Depends(require_user)) -> CurrentUser:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user
