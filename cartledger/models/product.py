"""Product catalog model, the source of truth for price and stock"""

from sqlalchemy import Column, String, Numeric, Integer, Boolean, Index, CheckConstraint

from .base import Base, TimestampedModel, UUIDModel

class Product(Base, TimestampedModel, UUIDModel):
    """Sellable product with live stock"""
    
    __tablename__ = "products"
    
    name = Column(String(255), nullable=False, index=True)
    seller_id = Column(String(36), nullable=False, index=True)
    
    # Pricing
    price = Column(Numeric(12, 2), nullable=False)
    original_price = Column(Numeric(12, 2), nullable=True)
    cost_price = Column(Numeric(12, 2), nullable=True)
    
    # Inventory
    stock_quantity = Column(Integer, default=0, nullable=False)
    
    # Returns
    return_days = Column(Integer, nullable=True)
    
    is_active = Column(Boolean, default=True, nullable=False)
    
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="check_non_negative_stock"),
        Index("idx_products_seller_active", "seller_id", "is_active"),
    )
