from decimal import Decimal

import pytest

from cartledger.core.cache import RedisCache
from cartledger.models.product import Product
from cartledger.schemas.cart import CartLine, CartSnapshot, SelectedVariant
from cartledger.services.cart_store import GuestCartStore, SessionCouponSlot, UserCartStore
from cartledger.services.stock_oracle import DatabaseStockOracle

def sample_cart() -> CartSnapshot:
    return CartSnapshot(lines=[
        CartLine(product_id="p1", name="Tee", seller_id="s1", unit_price=Decimal("199.50"), quantity=2,
                 variant=SelectedVariant(size="M", color="#000")),
        CartLine(product_id="p2", seller_id="s2", unit_price=Decimal("10"), quantity=1, return_days=7),
    ])

@pytest.fixture
def memory_cache():
    # Never connected, so it serves from the in-process fallback
    return RedisCache("redis://unused:6379")

async def test_guest_store_round_trip(memory_cache):
    store = GuestCartStore(memory_cache, ttl_days=1)
    
    assert await store.save("guest:abc", sample_cart())
    loaded = await store.load("guest:abc")
    
    assert loaded.model_dump() == sample_cart().model_dump()
    assert loaded.get("p1-M-000").unit_price == Decimal("199.50")

async def test_guest_store_discard(memory_cache):
    store = GuestCartStore(memory_cache)
    await store.save("guest:abc", sample_cart())
    
    await store.discard("guest:abc")
    
    assert (await store.load("guest:abc")).is_empty

async def test_coupon_slot(memory_cache):
    slot = SessionCouponSlot(memory_cache)
    
    await slot.set("guest:abc", "TEN")
    assert await slot.get("guest:abc") == "TEN"
    await slot.set("guest:abc", None)
    assert await slot.get("guest:abc") is None

async def test_user_store_upserts(session_factory):
    store = UserCartStore(session_factory)
    assert (await store.load("user:u1")).is_empty
    
    assert await store.save("user:u1", sample_cart())
    assert await store.save("user:u1", sample_cart().without("p2"))
    
    loaded = await store.load("user:u1")
    assert [line.key for line in loaded.lines] == ["p1-M-000"]

async def test_database_oracle_reads_live_stock(session_factory):
    async with session_factory() as session:
        session.add_all([
            Product(id="p1", name="Tee", seller_id="s1", price=Decimal("100"), cost_price=Decimal("60"), stock_quantity=4, return_days=7),
            Product(id="p2", name="Cap", seller_id="s1", price=Decimal("50"), stock_quantity=0),
            Product(id="p3", name="Old", seller_id="s1", price=Decimal("20"), stock_quantity=9, is_active=False),
        ])
        await session.commit()
    oracle = DatabaseStockOracle(session_factory)
    
    assert await oracle.get_available("p1") == 4
    assert await oracle.get_available("p2") == 0
    assert await oracle.get_available("p3") is None
    assert await oracle.get_available("missing") is None
    
    products = await oracle.get_products(["p1", "p3", "missing"])
    assert set(products) == {"p1"}
    assert products["p1"].price == Decimal("100")
    
    snapshot = await oracle.get_snapshot("p1")
    assert snapshot.seller_id == "s1"
    assert snapshot.return_days == 7
    assert await oracle.get_cost_prices(["p1", "p2"]) == {"p1": Decimal("60")}
