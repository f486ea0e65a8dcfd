"""Cart, coupon and seller revenue reconciliation engine"""

__version__ = "1.0.0"
