"""Coupon schemas"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import date
from decimal import Decimal

from cartledger.models.coupon import CouponKind

class CouponBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    kind: CouponKind
    value: Decimal = Field(..., gt=0)
    min_order_value: Optional[Decimal] = None
    expiry_date: Optional[date] = None
    
    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

class CouponCreate(CouponBase):
    """Schema for creating a coupon"""
    pass

class CouponRecord(CouponBase):
    """Coupon as read from the store"""
    model_config = ConfigDict(from_attributes=True)
    
    id: Optional[str] = None
    is_active: bool = True
    usage_count: int = 0
