"""
Order total calculation
Pure functions over the fee schedule; no state and no I/O
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from cartledger.core.config import settings
from cartledger.models.order import PaymentMethod
from cartledger.schemas.order import OrderTotals

Number = Union[Decimal, int, str]

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

def _d(value: Optional[Number]) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))

def to_cents(value: Optional[Number]) -> Decimal:
    """Round a money amount to whole cents, half up"""
    return _d(value).quantize(CENT, rounding=ROUND_HALF_UP)

def compute_tax(subtotal: Number, tax_rate_percent: Number) -> Decimal:
    """taxAmount = subtotal * rate / 100, in cents"""
    return to_cents(_d(subtotal) * _d(tax_rate_percent) / HUNDRED)

def compute_total(
    subtotal: Number,
    tax_rate_percent: Number,
    platform_fee: Number,
    shipping_fee: Number,
    coupon_discount: Optional[Number] = None,
) -> Decimal:
    """
    Compute the payable grand total
    
    Every part is rounded to cents before summing, so the total is exactly
    the sum of the amounts shown and stored. The result is floored at zero
    so a large flat coupon can never produce a negative payable amount.
    """
    total = (
        to_cents(subtotal)
        + compute_tax(subtotal, tax_rate_percent)
        + to_cents(platform_fee)
        + to_cents(shipping_fee)
        - to_cents(coupon_discount)
    )
    return max(ZERO, total)

def compute_totals(
    subtotal: Number,
    tax_rate_percent: Number,
    platform_fee: Number,
    shipping_fee: Number,
    coupon_discount: Optional[Number] = None,
) -> OrderTotals:
    """Full money breakdown for display and order snapshots"""
    return OrderTotals(
        subtotal=to_cents(subtotal),
        tax_rate_percent=_d(tax_rate_percent),
        tax_amount=compute_tax(subtotal, tax_rate_percent),
        platform_fee=to_cents(platform_fee),
        shipping_fee=to_cents(shipping_fee),
        coupon_discount=to_cents(coupon_discount),
        grand_total=compute_total(
            subtotal, tax_rate_percent, platform_fee, shipping_fee, coupon_discount
        ),
    )

def compute_shipping_fee(
    payment_method: Optional[PaymentMethod],
    base_fee: Optional[Number] = None,
    discount_percent: Optional[Number] = None,
    cod_fee: Optional[Number] = None,
) -> Decimal:
    """
    Shipping fee for a checkout
    
    Args:
        payment_method: Selected payment method; cash on delivery adds the COD surcharge
        base_fee: Base shipping fee (defaults to settings)
        discount_percent: Global shipping discount percentage (defaults to settings)
        cod_fee: Cash on delivery surcharge (defaults to settings)
        
    Returns:
        (base + surcharge) reduced by the global discount, in cents, never negative
    """
    base = _d(settings.BASE_SHIPPING_FEE if base_fee is None else base_fee)
    discount = _d(settings.SHIPPING_DISCOUNT_PERCENTAGE if discount_percent is None else discount_percent)
    surcharge = ZERO
    if payment_method == PaymentMethod.CASH_ON_DELIVERY:
        surcharge = _d(settings.COD_FEE if cod_fee is None else cod_fee)
    
    fee = (base + surcharge) * (1 - discount / HUNDRED)
    return max(ZERO, to_cents(fee))
