"""
Custom exception classes
Ledger operations raise these; the cart and coupon engines convert
collaborator failures into typed outcomes instead of raising
"""

from fastapi import HTTPException, status
from typing import Any, Dict, Optional

class CartLedgerException(HTTPException):
    """Base exception class for the application"""
    
    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code

class BadRequestException(CartLedgerException):
    """400 Bad Request"""
    
    def __init__(self, detail: str, error_code: str = "BAD_REQUEST"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code
        )

class UnauthorizedException(CartLedgerException):
    """401 Unauthorized"""
    
    def __init__(self, detail: str = "Unauthorized", error_code: str = "UNAUTHORIZED"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code=error_code
        )

class ForbiddenException(CartLedgerException):
    """403 Forbidden"""
    
    def __init__(self, detail: str = "Forbidden", error_code: str = "FORBIDDEN"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=error_code
        )

class NotFoundException(CartLedgerException):
    """404 Not Found"""
    
    def __init__(self, detail: str = "Not found", error_code: str = "NOT_FOUND"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code=error_code
        )

class ConflictException(CartLedgerException):
    """409 Conflict"""
    
    def __init__(self, detail: str, error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code
        )

class ValidationException(CartLedgerException):
    """422 Unprocessable Entity"""
    
    def __init__(self, detail: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )

class ServiceUnavailableException(CartLedgerException):
    """503 Service Unavailable"""
    
    def __init__(
        self, 
        detail: str = "Service temporarily unavailable", 
        error_code: str = "SERVICE_UNAVAILABLE"
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code=error_code
        )

# Business logic exceptions
class StockCheckFailed(ServiceUnavailableException):
    """Stock oracle timed out or errored"""
    
    def __init__(self, product_id: str, reason: str = "stock check failed"):
        super().__init__(
            detail=f"Could not verify stock for {product_id}: {reason}",
            error_code="STOCK_CHECK_FAILED"
        )
        self.product_id = product_id

class PersistenceFailure(ServiceUnavailableException):
    """Backing store write failed"""
    
    def __init__(self, detail: str = "Failed to persist changes"):
        super().__init__(
            detail=detail,
            error_code="PERSISTENCE_FAILURE"
        )

class OrderTransitionException(BadRequestException):
    """Order cannot move to the requested status"""
    
    def __init__(self, current: str, requested: str):
        super().__init__(
            detail=f"Order cannot move from {current} to {requested}",
            error_code="INVALID_ORDER_TRANSITION"
        )

class ReturnNotAllowedException(BadRequestException):
    """Return request cannot be created or adjudicated"""
    
    def __init__(self, detail: str = "Return is not allowed for this item"):
        super().__init__(
            detail=detail,
            error_code="RETURN_NOT_ALLOWED"
        )

class DuplicateResourceException(ConflictException):
    """Resource already exists"""
    
    def __init__(self, resource: str, field: str, value: str):
        super().__init__(
            detail=f"{resource} with {field} '{value}' already exists",
            error_code="DUPLICATE_RESOURCE"
        )
