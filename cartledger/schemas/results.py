"""
Typed outcomes returned across the engine boundary
Cart and coupon operations report failures here instead of raising
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from decimal import Decimal
import enum

from .cart import CartState
from .order import OrderTotals

class MutationStatus(str, enum.Enum):
    OK = "ok"
    CLAMPED = "clamped"
    REJECTED = "rejected"
    FAILED = "failed"

class RejectionReason(str, enum.Enum):
    INVALID_QUANTITY = "invalid_quantity"
    OUT_OF_STOCK = "out_of_stock"
    PRODUCT_UNAVAILABLE = "product_unavailable"
    STOCK_CHECK_FAILED = "stock_check_failed"
    LINE_NOT_FOUND = "line_not_found"
    PERSISTENCE_FAILED = "persistence_failed"

class CartMutationResult(BaseModel):
    status: MutationStatus
    line_key: Optional[str] = None
    quantity: Optional[int] = None
    reason: Optional[RejectionReason] = None
    notices: List[str] = Field(default_factory=list)
    
    @property
    def succeeded(self) -> bool:
        return self.status in (MutationStatus.OK, MutationStatus.CLAMPED)

class CouponRejection(str, enum.Enum):
    INVALID = "invalid"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    BELOW_MINIMUM = "below_minimum"
    ALREADY_APPLIED = "already_applied"
    PERSISTENCE_FAILED = "persistence_failed"

class CouponStatus(str, enum.Enum):
    APPLIED = "applied"
    REVALIDATED = "revalidated"
    DETACHED = "detached"
    REMOVED = "removed"
    REJECTED = "rejected"
    FAILED = "failed"

class CouponResult(BaseModel):
    status: CouponStatus
    code: Optional[str] = None
    discount: Decimal = Decimal("0")
    reason: Optional[CouponRejection] = None
    message: str = ""
    
    @property
    def accepted(self) -> bool:
        return self.status in (CouponStatus.APPLIED, CouponStatus.REVALIDATED)

class CheckoutStatus(str, enum.Enum):
    PLACED = "placed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    FAILED = "failed"

class CheckoutResult(BaseModel):
    status: CheckoutStatus
    order_id: Optional[str] = None
    totals: Optional[OrderTotals] = None
    reason: Optional[str] = None
    notices: List[str] = Field(default_factory=list)

class CartResponse(BaseModel):
    """Cart state after an action, with the action's outcome"""
    cart: CartState
    result: Optional[CartMutationResult] = None
    coupon: Optional[CouponResult] = None
