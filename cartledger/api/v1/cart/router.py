"""Cart router: guest and authenticated carts with coupon application"""

from fastapi import APIRouter, Depends

from cartledger.api.dependencies import (
    get_cart,
    get_current_actor,
    get_guest_cart,
    get_stock_oracle,
    get_user_store,
)
from cartledger.core.exceptions import NotFoundException
from cartledger.schemas.cart import ApplyCouponRequest, CartItemCreate, CartItemUpdate, SelectedVariant
from cartledger.schemas.order import Actor
from cartledger.schemas.results import CartResponse
from cartledger.services.cart_service import CartManager
from cartledger.services.cart_store import CartStore, user_owner_key
from cartledger.services.stock_oracle import DatabaseStockOracle

router = APIRouter()

@router.get("", response_model=CartResponse)
async def get_cart_state(cart: CartManager = Depends(get_cart)):
    """Get the cart, revalidated against current price and stock"""
    return CartResponse(cart=cart.state)

@router.post("/items", response_model=CartResponse)
async def add_to_cart(
    item_data: CartItemCreate,
    cart: CartManager = Depends(get_cart),
    oracle: DatabaseStockOracle = Depends(get_stock_oracle),
):
    """Add item to cart"""
    product = await oracle.get_snapshot(item_data.product_id)
    if not product:
        raise NotFoundException("Product not found")
    
    variant = None
    if item_data.size or item_data.color:
        variant = SelectedVariant(size=item_data.size, color=item_data.color)
    
    result = await cart.add_item(product, item_data.quantity, variant)
    return CartResponse(cart=cart.state, result=result)

@router.put("/items/{line_key}", response_model=CartResponse)
async def update_cart_item(
    line_key: str,
    update_data: CartItemUpdate,
    cart: CartManager = Depends(get_cart),
):
    """Update cart item quantity"""
    result = await cart.set_quantity(line_key, update_data.quantity)
    return CartResponse(cart=cart.state, result=result)

@router.delete("/items/{line_key}", response_model=CartResponse)
async def remove_cart_item(line_key: str, cart: CartManager = Depends(get_cart)):
    """Remove item from cart"""
    result = await cart.remove_item(line_key)
    return CartResponse(cart=cart.state, result=result)

@router.post("/clear", response_model=CartResponse)
async def clear_cart(cart: CartManager = Depends(get_cart)):
    """Clear all items from cart"""
    result = await cart.clear()
    return CartResponse(cart=cart.state, result=result)

@router.post("/coupon", response_model=CartResponse)
async def apply_coupon(
    coupon_data: ApplyCouponRequest,
    cart: CartManager = Depends(get_cart),
):
    """Apply coupon to cart"""
    result = await cart.apply_coupon(coupon_data.coupon_code)
    return CartResponse(cart=cart.state, coupon=result)

@router.delete("/coupon", response_model=CartResponse)
async def remove_coupon(cart: CartManager = Depends(get_cart)):
    """Remove applied coupon"""
    result = await cart.remove_coupon()
    return CartResponse(cart=cart.state, coupon=result)

@router.post("/merge", response_model=CartResponse)
async def merge_guest_cart(
    actor: Actor = Depends(get_current_actor),
    cart: CartManager = Depends(get_guest_cart),
    user_store: CartStore = Depends(get_user_store),
):
    """Merge the session's guest cart into the user's cart after login"""
    result = await cart.login(user_owner_key(actor.user_id), user_store)
    return CartResponse(cart=cart.state, result=result)
