"""Errors raised by the order and catalog services"""


class StorefrontError(Exception):
    """Base error carrying the HTTP status it maps to"""
    status_code = 500
    
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnauthenticatedError(StorefrontError):
    status_code = 401
    
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ForbiddenError(StorefrontError):
    status_code = 403
    
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFoundError(StorefrontError):
    status_code = 404


class OrderValidationError(StorefrontError):
    """Raised when an order request or state change is invalid"""
    status_code = 400


class InsufficientStockError(StorefrontError):
    """Raised when there's not enough stock for an order item."""
    status_code = 400
    
    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(f"Insufficient stock for product {product_id}")


class SchemaMismatchError(StorefrontError):
    """Raised at startup when a table lacks a column the service cannot work without"""
    
    def __init__(self, table: str, missing):
        self.table = table
        self.missing = sorted(missing)
        super().__init__(f"Table '{table}' is missing required columns: {', '.join(self.missing)}")


class DatabaseFailureError(StorefrontError):
    """Unexpected database failure; detail is only shown outside production"""
    
    def __init__(self, message: str, detail: str = None):
        self.detail = detail
        super().__init__(message)
