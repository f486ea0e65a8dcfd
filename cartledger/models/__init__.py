"""Models package initialization"""

from .base import Base
from .product import Product
from .cart import UserCart
from .coupon import Coupon, CouponKind
from .order import Order, OrderStatus, PaymentMethod
from .return_request import ReturnRequest, ReturnStatus

__all__ = [
    "Base",
    "Product",
    "UserCart",
    "Coupon",
    "CouponKind",
    "Order",
    "OrderStatus",
    "PaymentMethod",
    "ReturnRequest",
    "ReturnStatus",
]
