"""
Cart schemas
CartLine identity is the composite key of product and selected variant
"""

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from typing import Dict, List, Optional
from decimal import Decimal

def composite_key(product_id: str, size: Optional[str] = None, color: Optional[str] = None) -> str:
    """Build the cart line identity from product and variant"""
    key = str(product_id)
    if size:
        key += f"-{size}"
    if color:
        key += f"-{color.replace('#', '')}"
    return key

class SelectedVariant(BaseModel):
    """Size/colour chosen by the shopper"""
    size: Optional[str] = None
    color: Optional[str] = None

class ProductSnapshot(BaseModel):
    """Product data as known when the shopper adds it"""
    id: str
    name: str = ""
    seller_id: str
    price: Decimal
    original_price: Optional[Decimal] = None
    return_days: Optional[int] = None

class ProductInfo(BaseModel):
    """Authoritative product data used to revalidate cart lines"""
    id: str
    name: str = ""
    price: Decimal
    original_price: Optional[Decimal] = None
    stock_quantity: int = Field(0, ge=0)

class CartLine(BaseModel):
    """One line of a cart"""
    model_config = ConfigDict(frozen=True)
    
    product_id: str
    name: str = ""
    seller_id: str
    unit_price: Decimal
    original_unit_price: Optional[Decimal] = None
    quantity: int = Field(..., gt=0)
    variant: Optional[SelectedVariant] = None
    return_days: Optional[int] = None
    
    @computed_field
    @property
    def key(self) -> str:
        size = self.variant.size if self.variant else None
        color = self.variant.color if self.variant else None
        return composite_key(self.product_id, size, color)
    
    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

class CartSnapshot(BaseModel):
    """Ordered set of cart lines; at most one line per composite key"""
    model_config = ConfigDict(frozen=True)
    
    lines: List[CartLine] = Field(default_factory=list)
    
    @model_validator(mode="after")
    def check_unique_keys(self):
        keys = [line.key for line in self.lines]
        if len(keys) != len(set(keys)):
            raise ValueError("cart lines must have unique composite keys")
        return self
    
    def get(self, key: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.key == key:
                return line
        return None
    
    def as_dict(self) -> Dict[str, CartLine]:
        return {line.key: line for line in self.lines}
    
    def with_line(self, line: CartLine) -> "CartSnapshot":
        """Replace the line with the same key in place, or append it"""
        lines = list(self.lines)
        for index, existing in enumerate(lines):
            if existing.key == line.key:
                lines[index] = line
                break
        else:
            lines.append(line)
        return CartSnapshot(lines=lines)
    
    def without(self, key: str) -> "CartSnapshot":
        return CartSnapshot(lines=[line for line in self.lines if line.key != key])
    
    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))
    
    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)
    
    @property
    def is_empty(self) -> bool:
        return not self.lines

class CartState(BaseModel):
    """Read-only projection of a session's cart"""
    lines: List[CartLine]
    item_count: int
    subtotal: Decimal
    tax_rate_percent: Decimal
    tax_amount: Decimal
    platform_fee: Decimal
    shipping_fee: Decimal
    discount: Decimal = Decimal("0")
    grand_total: Decimal
    coupon_code: Optional[str] = None
    notices: List[str] = Field(default_factory=list)

# Request bodies

class CartItemCreate(BaseModel):
    """Schema for adding item to cart"""
    product_id: str
    quantity: int = Field(1, gt=0)
    size: Optional[str] = None
    color: Optional[str] = None

class CartItemUpdate(BaseModel):
    """Schema for updating cart item"""
    quantity: int

class ApplyCouponRequest(BaseModel):
    """Request to apply coupon to cart"""
    coupon_code: str = Field(..., min_length=1, max_length=50)
