"""Order model; items are an immutable JSON snapshot taken at checkout"""

from sqlalchemy import Column, String, Numeric, Enum, Index, DateTime, JSON
import enum

from .base import Base, TimestampedModel, UUIDModel

class OrderStatus(str, enum.Enum):
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

class PaymentMethod(str, enum.Enum):
    PREPAID = "prepaid"
    CASH_ON_DELIVERY = "cash_on_delivery"
    
    @classmethod
    def _missing_(cls, value):
        # Cash on delivery labels seen on stored orders
        aliases = {
            "cod": cls.CASH_ON_DELIVERY,
            "cash on delivery": cls.CASH_ON_DELIVERY,
        }
        if isinstance(value, str):
            return aliases.get(value.strip().lower())
        return None

class Order(Base, TimestampedModel, UUIDModel):
    """Placed order, possibly spanning several sellers"""
    
    __tablename__ = "orders"
    
    buyer_id = Column(String(36), nullable=False, index=True)
    
    # Item snapshots: [{product_id, seller_id, name, unit_price, quantity, variant, return_days}]
    items = Column(JSON, nullable=False)
    
    # Amounts
    subtotal = Column(Numeric(12, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), default=0, nullable=False)
    platform_fee = Column(Numeric(12, 2), default=0, nullable=False)
    shipping_fee = Column(Numeric(12, 2), default=0, nullable=False)
    coupon_code = Column(String(50), nullable=True, index=True)
    coupon_discount = Column(Numeric(12, 2), nullable=True)
    total_price = Column(Numeric(12, 2), nullable=False)
    
    # Payment
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    payment_reference = Column(String(200), nullable=True)
    
    # Status
    status = Column(Enum(OrderStatus), default=OrderStatus.PROCESSING, nullable=False, index=True)
    placed_at = Column(DateTime(timezone=True), nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    
    __table_args__ = (
        Index("idx_orders_buyer_status", "buyer_id", "status"),
        Index("idx_orders_placed", "placed_at"),
    )
