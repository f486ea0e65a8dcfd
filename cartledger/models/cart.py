"""
Persisted cart for authenticated users
Anonymous carts live in the cache, keyed by session
"""

from sqlalchemy import Column, String, JSON, DateTime
from sqlalchemy.sql import func

from .base import Base

class UserCart(Base):
    """One cart snapshot per user, stored as a JSON list of lines"""
    
    __tablename__ = "user_carts"
    
    user_id = Column(String(36), primary_key=True)
    cart_items = Column(JSON, nullable=False, default=list)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )
