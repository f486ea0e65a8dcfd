"""
Cart persistence
Guest carts live in the cache per session, authenticated carts in the database
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from cartledger.core.cache import RedisCache, cache
from cartledger.core.config import settings
from cartledger.core.database import AsyncSessionLocal, get_db_context
from cartledger.models.cart import UserCart
from cartledger.schemas.cart import CartSnapshot

logger = logging.getLogger(__name__)

def guest_owner_key(session_id: str) -> str:
    return f"guest:{session_id}"

def user_owner_key(user_id: str) -> str:
    return f"user:{user_id}"

class CartStore(ABC):
    """Persistent cart store contract"""
    
    @abstractmethod
    async def load(self, owner_key: str) -> CartSnapshot:
        """Load the snapshot for an owner; empty when none is stored"""
    
    @abstractmethod
    async def save(self, owner_key: str, snapshot: CartSnapshot) -> bool:
        """Persist the snapshot; False when the write failed"""
    
    async def discard(self, owner_key: str) -> bool:
        """Forget the owner's snapshot entirely"""
        return await self.save(owner_key, CartSnapshot())

class CouponSlot(ABC):
    """Holds the single coupon code attached to a cart owner"""
    
    @abstractmethod
    async def get(self, owner_key: str) -> Optional[str]:
        pass
    
    @abstractmethod
    async def set(self, owner_key: str, code: Optional[str]) -> bool:
        """Attach code, or detach when code is None; False when the write failed"""

class GuestCartStore(CartStore):
    """Anonymous carts kept in Redis under the browser session"""
    
    def __init__(self, backend: RedisCache = cache, ttl_days: Optional[int] = None):
        self.backend = backend
        self.ttl = timedelta(days=ttl_days or settings.GUEST_CART_TTL_DAYS)
    
    def _key(self, owner_key: str) -> str:
        return f"cart:{owner_key}"
    
    async def load(self, owner_key: str) -> CartSnapshot:
        data = await self.backend.get(self._key(owner_key))
        if not data:
            return CartSnapshot()
        return CartSnapshot.model_validate({"lines": data})
    
    async def save(self, owner_key: str, snapshot: CartSnapshot) -> bool:
        payload = snapshot.model_dump(mode="json")["lines"]
        saved = await self.backend.set(self._key(owner_key), payload, expire=self.ttl)
        if not saved:
            logger.warning(f"Failed to save guest cart {owner_key}")
        return saved
    
    async def discard(self, owner_key: str) -> bool:
        return await self.backend.delete(self._key(owner_key))

class UserCartStore(CartStore):
    """Authenticated carts, one JSON row per user"""
    
    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self.session_factory = session_factory
    
    @staticmethod
    def _user_id(owner_key: str) -> str:
        return owner_key.split(":", 1)[1] if owner_key.startswith("user:") else owner_key
    
    async def load(self, owner_key: str) -> CartSnapshot:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserCart.cart_items).where(UserCart.user_id == self._user_id(owner_key))
            )
            items = result.scalar_one_or_none()
        return CartSnapshot.model_validate({"lines": items or []})
    
    async def save(self, owner_key: str, snapshot: CartSnapshot) -> bool:
        user_id = self._user_id(owner_key)
        payload = snapshot.model_dump(mode="json")["lines"]
        try:
            async with get_db_context(self.session_factory) as session:
                cart = await session.get(UserCart, user_id)
                if cart:
                    cart.cart_items = payload
                else:
                    session.add(UserCart(user_id=user_id, cart_items=payload))
            return True
        except Exception as e:
            logger.error(f"Failed to update cart in DB for {user_id}: {e}")
            return False

class SessionCouponSlot(CouponSlot):
    """Attached coupon code kept in Redis alongside the session"""
    
    def __init__(self, backend: RedisCache = cache):
        self.backend = backend
    
    def _key(self, owner_key: str) -> str:
        return f"coupon:{owner_key}"
    
    async def get(self, owner_key: str) -> Optional[str]:
        value = await self.backend.get(self._key(owner_key))
        return value or None
    
    async def set(self, owner_key: str, code: Optional[str]) -> bool:
        if code is None:
            return await self.backend.delete(self._key(owner_key))
        return await self.backend.set(self._key(owner_key), code)
