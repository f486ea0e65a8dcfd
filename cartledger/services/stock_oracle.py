"""
Stock oracle
Authoritative per-product availability, consulted before every cart mutation
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional
from decimal import Decimal
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from cartledger.core.database import AsyncSessionLocal
from cartledger.models.product import Product
from cartledger.schemas.cart import ProductInfo, ProductSnapshot

logger = logging.getLogger(__name__)

class StockOracle(ABC):
    """Source of truth for product availability"""
    
    @abstractmethod
    async def get_available(self, product_id: str) -> Optional[int]:
        """Available quantity (>= 0), or None when the product does not exist"""
    
    @abstractmethod
    async def get_products(self, product_ids: Iterable[str]) -> Dict[str, ProductInfo]:
        """Fresh price and stock for the given products; missing ids are omitted"""

class DatabaseStockOracle(StockOracle):
    """Reads stock straight from the product catalog, never from a cache"""
    
    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self.session_factory = session_factory
    
    async def get_available(self, product_id: str) -> Optional[int]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Product.stock_quantity)
                .where(Product.id == product_id, Product.is_active.is_(True))
            )
            stock = result.scalar_one_or_none()
        return None if stock is None else max(0, stock)
    
    async def get_products(self, product_ids: Iterable[str]) -> Dict[str, ProductInfo]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        async with self.session_factory() as session:
            result = await session.execute(
                select(Product)
                .where(Product.id.in_(ids), Product.is_active.is_(True))
            )
            products = result.scalars().all()
        return {
            product.id: ProductInfo(
                id=product.id,
                name=product.name,
                price=product.price,
                original_price=product.original_price,
                stock_quantity=max(0, product.stock_quantity),
            )
            for product in products
        }
    
    async def get_snapshot(self, product_id: str) -> Optional[ProductSnapshot]:
        """Catalog data needed to add a product to a cart"""
        async with self.session_factory() as session:
            product = await session.get(Product, product_id)
        if not product or not product.is_active:
            return None
        return ProductSnapshot(
            id=product.id,
            name=product.name,
            seller_id=product.seller_id,
            price=product.price,
            original_price=product.original_price,
            return_days=product.return_days,
        )
    
    async def get_cost_prices(self, product_ids: Iterable[str]) -> Dict[str, Decimal]:
        """Cost prices for margin reporting; products without one are omitted"""
        ids = list(set(product_ids))
        if not ids:
            return {}
        async with self.session_factory() as session:
            result = await session.execute(
                select(Product.id, Product.cost_price)
                .where(Product.id.in_(ids), Product.cost_price.is_not(None))
            )
            return {product_id: cost for product_id, cost in result.all()}
