"""Revenue reporting schemas"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
import enum

class SellerOrderShare(BaseModel):
    """One seller's slice of a (possibly multi-seller) order"""
    order_id: str
    seller_subtotal: Decimal
    discount_share: Decimal
    seller_total: Decimal
    recognizable: bool

class SellerRevenueSummary(BaseModel):
    seller_id: str
    gross_revenue: Decimal = Decimal("0")
    return_deductions: Decimal = Decimal("0")
    net_revenue: Decimal = Decimal("0")
    pending_return_deductions: Decimal = Decimal("0")
    recognized_orders: int = 0
    anomalies: List[str] = Field(default_factory=list)

class PayoutStatus(str, enum.Enum):
    PROCESSING = "Processing"
    COMPLETED = "Completed"

class PayoutRecord(BaseModel):
    id: Optional[str] = None
    seller_id: str
    amount: Decimal
    status: PayoutStatus
    requested_at: Optional[datetime] = None

class PlatformRevenueSummary(BaseModel):
    total_revenue: Decimal = Decimal("0")
    total_tax: Decimal = Decimal("0")
    total_platform_fee: Decimal = Decimal("0")
    total_shipping_fee: Decimal = Decimal("0")
    total_admin_profit: Decimal = Decimal("0")
    recognized_orders: int = 0
