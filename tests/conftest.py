"""Shared fixtures: in-memory collaborators and a throwaway SQLite database"""

import os

os.environ.setdefault("ENVIRONMENT", "test")

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cartledger.models.base import Base
from cartledger.models.coupon import CouponKind
from cartledger.models.order import OrderStatus, PaymentMethod
from cartledger.schemas.cart import CartSnapshot, ProductInfo, ProductSnapshot
from cartledger.schemas.coupon import CouponRecord
from cartledger.schemas.order import OrderItemSnapshot, OrderRecord
from cartledger.services.cart_service import CartManager
from cartledger.services.cart_store import CartStore, CouponSlot
from cartledger.services.coupon_service import CouponEngine, CouponLookup
from cartledger.services.payment_service import PaymentCollaborator, PaymentOutcome
from cartledger.services.stock_oracle import StockOracle

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)

class FakeStockOracle(StockOracle):
    """Catalog held in memory; stock can be changed between calls"""
    
    def __init__(self):
        self.catalog: Dict[str, ProductSnapshot] = {}
        self.stock: Dict[str, int] = {}
        self.error: Optional[Exception] = None
        self.delay: float = 0
        self.calls: List[str] = []
    
    def add(self, product_id: str, price: str, stock: int, seller_id: str = "seller-1", return_days: Optional[int] = 7) -> ProductSnapshot:
        product = ProductSnapshot(
            id=product_id,
            name=f"Product {product_id}",
            seller_id=seller_id,
            price=Decimal(price),
            return_days=return_days,
        )
        self.catalog[product_id] = product
        self.stock[product_id] = stock
        return product
    
    def remove(self, product_id: str) -> None:
        self.catalog.pop(product_id, None)
        self.stock.pop(product_id, None)
    
    async def _wait(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
    
    async def get_available(self, product_id: str) -> Optional[int]:
        self.calls.append(product_id)
        await self._wait()
        return self.stock.get(product_id)
    
    async def get_products(self, product_ids: Iterable[str]) -> Dict[str, ProductInfo]:
        await self._wait()
        return {
            pid: ProductInfo(
                id=pid,
                name=self.catalog[pid].name,
                price=self.catalog[pid].price,
                stock_quantity=self.stock[pid],
            )
            for pid in product_ids
            if pid in self.catalog
        }
    
    async def get_snapshot(self, product_id: str) -> Optional[ProductSnapshot]:
        return self.catalog.get(product_id)
    
    async def get_cost_prices(self, product_ids: Iterable[str]) -> Dict[str, Decimal]:
        return {}

class FakeCartStore(CartStore):
    def __init__(self):
        self.carts: Dict[str, CartSnapshot] = {}
        self.fail_saves = False
        self.saves = 0
    
    async def load(self, owner_key: str) -> CartSnapshot:
        return self.carts.get(owner_key, CartSnapshot())
    
    async def save(self, owner_key: str, snapshot: CartSnapshot) -> bool:
        if self.fail_saves:
            return False
        self.saves += 1
        self.carts[owner_key] = snapshot
        return True
    
    async def discard(self, owner_key: str) -> bool:
        self.carts.pop(owner_key, None)
        return True

class FakeCouponSlot(CouponSlot):
    def __init__(self):
        self.codes: Dict[str, str] = {}
        self.fail_writes = False
    
    async def get(self, owner_key: str) -> Optional[str]:
        return self.codes.get(owner_key)
    
    async def set(self, owner_key: str, code: Optional[str]) -> bool:
        if self.fail_writes:
            return False
        if code is None:
            self.codes.pop(owner_key, None)
        else:
            self.codes[owner_key] = code
        return True

class FakeCouponLookup(CouponLookup):
    def __init__(self):
        self.coupons: Dict[str, CouponRecord] = {}
        self.lookups = 0
        self.error: Optional[Exception] = None
    
    def add(self, code: str, kind: CouponKind, value: str, **kwargs) -> CouponRecord:
        coupon = CouponRecord(code=code, kind=kind, value=Decimal(value), **kwargs)
        self.coupons[coupon.code] = coupon
        return coupon
    
    async def get_by_code(self, code: str) -> Optional[CouponRecord]:
        self.lookups += 1
        if self.error:
            raise self.error
        return self.coupons.get(code)

class FakePayments(PaymentCollaborator):
    def __init__(self, outcome: Optional[PaymentOutcome] = None):
        self.outcome = outcome or PaymentOutcome.succeeded("pay_123")
        self.amounts: List[Decimal] = []
    
    async def collect(self, amount: Decimal, buyer_id: str) -> PaymentOutcome:
        self.amounts.append(amount)
        return self.outcome

def make_order(
    order_id: str,
    items: List[tuple],
    payment_method: PaymentMethod = PaymentMethod.PREPAID,
    status: OrderStatus = OrderStatus.PROCESSING,
    coupon_discount: Optional[str] = None,
    buyer_id: str = "buyer-1",
    tax_amount: str = "0",
    platform_fee: str = "0",
    shipping_fee: str = "0",
    delivered_at: Optional[datetime] = None,
) -> OrderRecord:
    """Build an order from (product_id, seller_id, unit_price, quantity) tuples"""
    snapshots = [
        OrderItemSnapshot(product_id=pid, seller_id=sid, unit_price=Decimal(price), quantity=qty, return_days=7)
        for pid, sid, price, qty in items
    ]
    subtotal = sum((item.line_total for item in snapshots), Decimal("0"))
    discount = Decimal(coupon_discount) if coupon_discount else None
    return OrderRecord(
        id=order_id,
        buyer_id=buyer_id,
        items=snapshots,
        subtotal=subtotal,
        tax_amount=Decimal(tax_amount),
        platform_fee=Decimal(platform_fee),
        shipping_fee=Decimal(shipping_fee),
        coupon_code="PROMO" if discount else None,
        coupon_discount=discount,
        total_price=subtotal - (discount or 0),
        payment_method=payment_method,
        status=status,
        placed_at=NOW,
        delivered_at=delivered_at,
    )

@pytest.fixture
def oracle():
    return FakeStockOracle()

@pytest.fixture
def store():
    return FakeCartStore()

@pytest.fixture
def slot():
    return FakeCouponSlot()

@pytest.fixture
def lookup():
    return FakeCouponLookup()

@pytest.fixture
def coupons(lookup):
    return CouponEngine(lookup)

@pytest.fixture
def cart(store, oracle, coupons, slot):
    return CartManager(
        "guest:session-1",
        store,
        oracle,
        coupons,
        slot,
        tax_rate_percent=Decimal("18"),
        platform_fee=Decimal("5"),
        stock_timeout=0.5,
    )

@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
