"""Return request model"""

from sqlalchemy import Column, String, Text, Enum, ForeignKey, Index, UniqueConstraint
import enum

from .base import Base, TimestampedModel, UUIDModel

class ReturnStatus(str, enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"

class ReturnRequest(Base, TimestampedModel, UUIDModel):
    """Buyer request to return one item of a delivered order"""
    
    __tablename__ = "return_requests"
    
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False)
    product_id = Column(String(36), nullable=False)
    buyer_id = Column(String(36), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(Enum(ReturnStatus), default=ReturnStatus.PENDING, nullable=False)
    status_reason = Column(String(500), nullable=True)
    
    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_return_order_product"),
        Index("idx_return_requests_status", "status"),
    )
