"""
Redis cache configuration
Backs anonymous carts and the per-session attached coupon
"""

import redis.asyncio as redis
from typing import Optional, Any, Union
import json
from datetime import timedelta, datetime
import logging

from .config import settings

logger = logging.getLogger(__name__)

class RedisCache:
    """Redis cache manager with in-memory fallback"""
    
    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self.redis_client: Optional[redis.Redis] = None
        self._fallback_cache: dict = {}  # In-memory fallback for development
        self._use_redis = False
        
    async def connect(self):
        """Initialize Redis connection"""
        try:
            self.redis_client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=settings.REDIS_DECODE_RESPONSES,
                max_connections=settings.REDIS_MAX_CONNECTIONS
            )
            await self.redis_client.ping()
            logger.info("Redis connection established")
            self._use_redis = True
        except Exception as e:
            logger.warning(f"Failed to connect to Redis, using in-memory fallback: {e}")
            self._use_redis = False
    
    async def disconnect(self):
        """Close Redis connection"""
        if self.redis_client:
            await self.redis_client.close()
            logger.info("Redis connection closed")
    
    async def get(self, key: str) -> Optional[Any]:
        """
        Get a JSON value from cache
        
        Raises whatever the Redis client raises; callers decide how a
        read failure surfaces.
        """
        if self._use_redis and self.redis_client:
            value = await self.redis_client.get(key)
            return json.loads(value) if value else None
        
        cache_item = self._fallback_cache.get(key)
        if cache_item:
            # Check expiry
            if cache_item.get('expires_at') and datetime.now() > cache_item['expires_at']:
                del self._fallback_cache[key]
                return None
            return json.loads(cache_item['value'])
        return None
    
    async def set(
        self, 
        key: str, 
        value: Any, 
        expire: Optional[Union[int, timedelta]] = None
    ) -> bool:
        """Set a JSON value in cache with optional expiration"""
        try:
            payload = json.dumps(value)
            if isinstance(expire, timedelta):
                expire = int(expire.total_seconds())
            
            if self._use_redis and self.redis_client:
                if expire:
                    return bool(await self.redis_client.setex(key, expire, payload))
                return bool(await self.redis_client.set(key, payload))
            
            # Use in-memory fallback
            cache_item = {'value': payload}
            if expire:
                cache_item['expires_at'] = datetime.now() + timedelta(seconds=expire)
            self._fallback_cache[key] = cache_item
            return True
        except Exception as e:
            logger.error(f"Cache set error for {key}: {e}")
            return False
    
    async def delete(self, key: str) -> bool:
        """Delete key from cache"""
        try:
            if self._use_redis and self.redis_client:
                await self.redis_client.delete(key)
                return True
            self._fallback_cache.pop(key, None)
            return True
        except Exception as e:
            logger.error(f"Cache delete error for {key}: {e}")
            return False

# Global cache instance
cache = RedisCache()
