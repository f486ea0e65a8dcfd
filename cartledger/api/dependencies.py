"""
Request-scoped dependencies
Identity comes from upstream headers; services are built per request and
can be overridden in tests
"""

from typing import Optional

from fastapi import Depends, Header, Request

from cartledger.core.cache import cache
from cartledger.core.exceptions import BadRequestException, ForbiddenException, UnauthorizedException
from cartledger.core.feed import ChangeFeed
from cartledger.schemas.order import Actor, ActorRole
from cartledger.services.cart_service import CartManager
from cartledger.services.cart_store import (
    CartStore,
    CouponSlot,
    GuestCartStore,
    SessionCouponSlot,
    UserCartStore,
    guest_owner_key,
    user_owner_key,
)
from cartledger.services.coupon_service import CouponEngine, CouponRepository
from cartledger.services.order_service import OrderLedger
from cartledger.services.return_service import ReturnLedger
from cartledger.services.stock_oracle import DatabaseStockOracle

async def get_current_actor_optional(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Optional[Actor]:
    """Authenticated actor if the gateway forwarded one"""
    if not x_user_id:
        return None
    try:
        role = ActorRole(x_user_role.lower()) if x_user_role else ActorRole.CUSTOMER
    except ValueError:
        raise BadRequestException(f"Unknown role {x_user_role}")
    return Actor(user_id=x_user_id, role=role)

async def get_current_actor(
    actor: Optional[Actor] = Depends(get_current_actor_optional),
) -> Actor:
    if not actor:
        raise UnauthorizedException("Authentication required")
    return actor

async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != ActorRole.ADMIN:
        raise ForbiddenException("Administrator access required")
    return actor

async def get_session_id(x_session_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_session_id

def get_feed(request: Request) -> ChangeFeed:
    return request.app.state.feed

def get_stock_oracle() -> DatabaseStockOracle:
    return DatabaseStockOracle()

def get_coupon_engine() -> CouponEngine:
    return CouponEngine(CouponRepository())

def get_guest_store() -> CartStore:
    return GuestCartStore(cache)

def get_user_store() -> CartStore:
    return UserCartStore()

def get_coupon_slot() -> CouponSlot:
    return SessionCouponSlot(cache)

def get_order_ledger(feed: ChangeFeed = Depends(get_feed)) -> OrderLedger:
    return OrderLedger(feed=feed)

def get_return_ledger(feed: ChangeFeed = Depends(get_feed)) -> ReturnLedger:
    return ReturnLedger(feed=feed)

async def get_guest_cart(
    session_id: Optional[str] = Depends(get_session_id),
    oracle: DatabaseStockOracle = Depends(get_stock_oracle),
    coupons: CouponEngine = Depends(get_coupon_engine),
    guest_store: CartStore = Depends(get_guest_store),
    coupon_slot: CouponSlot = Depends(get_coupon_slot),
) -> CartManager:
    """Loaded cart of the anonymous browser session"""
    if not session_id:
        raise BadRequestException("X-Session-Id header is required for guest carts")
    manager = CartManager(guest_owner_key(session_id), guest_store, oracle, coupons, coupon_slot)
    await manager.load()
    return manager

async def get_cart(
    actor: Optional[Actor] = Depends(get_current_actor_optional),
    session_id: Optional[str] = Depends(get_session_id),
    oracle: DatabaseStockOracle = Depends(get_stock_oracle),
    coupons: CouponEngine = Depends(get_coupon_engine),
    guest_store: CartStore = Depends(get_guest_store),
    user_store: CartStore = Depends(get_user_store),
    coupon_slot: CouponSlot = Depends(get_coupon_slot),
) -> CartManager:
    """Loaded and revalidated cart of the caller, authenticated or guest"""
    if actor:
        manager = CartManager(user_owner_key(actor.user_id), user_store, oracle, coupons, coupon_slot)
    elif session_id:
        manager = CartManager(guest_owner_key(session_id), guest_store, oracle, coupons, coupon_slot)
    else:
        raise BadRequestException("X-Session-Id header is required for guest carts")
    await manager.load()
    return manager
