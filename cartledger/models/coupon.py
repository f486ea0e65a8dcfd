"""
Coupon and discount models
"""

from sqlalchemy import Column, String, Numeric, Boolean, Date, Enum, Index, CheckConstraint
import enum

from .base import Base, TimestampedModel, UUIDModel

class CouponKind(str, enum.Enum):
    FLAT = "flat"
    PERCENTAGE = "percentage"

class Coupon(Base, TimestampedModel, UUIDModel):
    """Discount coupons and promo codes"""
    
    __tablename__ = "coupons"
    
    code = Column(String(50), unique=True, nullable=False, index=True)  # stored uppercase
    
    # Discount details
    kind = Column(Enum(CouponKind), nullable=False)
    value = Column(Numeric(12, 2), nullable=False)
    
    # Conditions
    min_order_value = Column(Numeric(12, 2), nullable=True)
    expiry_date = Column(Date, nullable=True)  # inclusive, valid until end of day
    
    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Constraints
    __table_args__ = (
        CheckConstraint("value > 0", name="check_positive_discount"),
        Index("idx_coupons_active_expiry", "is_active", "expiry_date"),
    )
