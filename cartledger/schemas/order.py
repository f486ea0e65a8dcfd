"""Order, return and actor schemas"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
import enum

from cartledger.models.order import OrderStatus, PaymentMethod
from cartledger.models.return_request import ReturnStatus
from .cart import SelectedVariant

class ActorRole(str, enum.Enum):
    CUSTOMER = "customer"
    SELLER = "seller"
    ADMIN = "admin"

class Actor(BaseModel):
    """Who is performing an action"""
    user_id: str
    role: ActorRole = ActorRole.CUSTOMER

class OrderTotals(BaseModel):
    """Money breakdown of an order"""
    subtotal: Decimal
    tax_rate_percent: Decimal
    tax_amount: Decimal
    platform_fee: Decimal
    shipping_fee: Decimal
    coupon_discount: Decimal = Decimal("0")
    grand_total: Decimal

class OrderItemSnapshot(BaseModel):
    """Product data frozen at purchase time"""
    model_config = ConfigDict(frozen=True)
    
    product_id: str
    seller_id: str
    name: str = ""
    unit_price: Decimal
    quantity: int = Field(..., gt=0)
    variant: Optional[SelectedVariant] = None
    return_days: Optional[int] = None
    
    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

class OrderCreate(BaseModel):
    """Order as assembled at checkout, before the ledger assigns an id"""
    buyer_id: str
    items: List[OrderItemSnapshot]
    subtotal: Decimal
    tax_amount: Decimal = Decimal("0")
    platform_fee: Decimal = Decimal("0")
    shipping_fee: Decimal = Decimal("0")
    coupon_code: Optional[str] = None
    coupon_discount: Optional[Decimal] = None
    total_price: Decimal
    payment_method: PaymentMethod
    payment_reference: Optional[str] = None
    status: OrderStatus = OrderStatus.PROCESSING
    placed_at: datetime
    delivered_at: Optional[datetime] = None

class OrderRecord(OrderCreate):
    """Placed order"""
    model_config = ConfigDict(from_attributes=True)
    
    id: str
    
    def item_for(self, product_id: str) -> Optional[OrderItemSnapshot]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None
    
    def seller_items(self, seller_id: str) -> List[OrderItemSnapshot]:
        return [item for item in self.items if item.seller_id == seller_id]

class OrderFilter(BaseModel):
    buyer_id: Optional[str] = None
    seller_id: Optional[str] = None
    status: Optional[OrderStatus] = None

class OrderStatusUpdate(BaseModel):
    status: OrderStatus

class ReturnRequestRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    
    id: str
    order_id: str
    product_id: str
    buyer_id: str
    reason: str
    status: ReturnStatus = ReturnStatus.PENDING
    status_reason: Optional[str] = None
    created_at: Optional[datetime] = None

class ReturnRequestCreate(BaseModel):
    product_id: str
    reason: str = Field(..., min_length=1, max_length=2000)

class ReturnDecision(BaseModel):
    status: ReturnStatus
    reason: Optional[str] = None
